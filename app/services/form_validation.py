"""
Form validation for the questionnaire and the audit decision form.

Every rule is checked; violations are collected rather than raised so the
caller can show all of them at once.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Union

from app.schemas.questionnaire import CustomerForm, QuestionnaireAnswers
from app.scoring.questionnaire import CATEGORIES

MIN_OPINION_LENGTH = 5

PHONE_PATTERN = re.compile(r"1[0-9]\d{9}", re.ASCII)
ID_CARD_PATTERN = re.compile(r"\d{17}[\dX]", re.ASCII)

# Question key → customer form field name used for error placement
QUESTION_FIELDS = {
    "age": "age",
    "income": "income",
    "experience": "experience",
    "risk-tolerance": "riskTolerance",
    "goal": "goal",
    "period": "period",
}


@dataclass
class AuditFormValidation:
    is_valid: bool
    errors: list[str] = field(default_factory=list)


def validate_audit_form(approved: bool, risk_score: float, opinion: Optional[str]) -> AuditFormValidation:
    errors: list[str] = []

    if risk_score < 0 or risk_score > 100:
        errors.append("风险评分必须在0-100之间")

    text = (opinion or "").strip()
    if not text:
        errors.append("请输入审核意见")
    elif len(text) < MIN_OPINION_LENGTH:
        errors.append(f"审核意见至少需要{MIN_OPINION_LENGTH}个字符")

    return AuditFormValidation(is_valid=not errors, errors=errors)


def validate_customer_form(form: CustomerForm, answers: QuestionnaireAnswers) -> dict[str, str]:
    """Returns field → message; empty when the form can be submitted."""
    errors: dict[str, str] = {}

    if not form.name.strip():
        errors["name"] = "请输入姓名"

    phone = form.phone.strip()
    if not phone:
        errors["phone"] = "请输入手机号"
    elif not PHONE_PATTERN.fullmatch(phone):
        errors["phone"] = "请输入正确的手机号格式"

    id_card = form.id_card.strip()
    if not id_card:
        errors["idCard"] = "请输入身份证号"
    elif not ID_CARD_PATTERN.fullmatch(id_card):
        errors["idCard"] = "请输入正确的身份证号格式"

    if form.invest_amount is None:
        errors["investAmount"] = "请输入投资金额"
    elif form.invest_amount <= 0:
        errors["investAmount"] = "投资金额必须大于0"

    for key, (attr, _) in CATEGORIES.items():
        if not getattr(answers, attr):
            errors[QUESTION_FIELDS[key]] = "请选择此项"

    return errors


# ── Display helpers ──

def mask_phone(phone: Optional[str]) -> Optional[str]:
    if not phone or len(phone) != 11:
        return phone
    return f"{phone[:3]}****{phone[7:]}"


def format_datetime(value: Union[str, datetime, None]) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return value
    return value.strftime("%Y/%m/%d %H:%M")
