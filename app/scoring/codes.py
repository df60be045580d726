"""
Questionnaire text ↔ backend code mappings.

The backend stores income and maximum-loss answers as integer codes and
reports risk types as codes as well. One table per mapping; earlier page
variants carried a second, different max-loss text table which is gone.
"""
from __future__ import annotations

from typing import Optional, Union

from app.schemas.questionnaire import (
    CustomerForm,
    CustomerInfo,
    CustomerQuestionnaireRequest,
    QuestionnaireAnswers,
    RiskAssessment,
)
from app.scoring.questionnaire import calculate_risk_score

DEFAULT_CODE = 2
TEN_THOUSAND = 10_000  # invest amounts are entered in 万

INCOME_CODES: dict[str, int] = {
    "10万以下": 1,
    "10-30万": 2,
    "30-50万": 3,
    "50万以上": 4,
}

MAX_LOSS_CODES: dict[str, int] = {
    "5%以内": 1,
    "5-15%": 2,
    "15-30%": 3,
    "30%以上": 4,
}

EXPERIENCE_TEXT: dict[str, str] = {
    "无经验": "无投资经验",
    "1-3年": "1-3年投资经验",
    "3-5年": "3-5年投资经验",
    "5年以上": "5年以上投资经验",
}

# Backend risk type codes (order is the backend's, not ascending risk)
RISK_TYPE_TEXT: dict[int, str] = {
    0: "稳健型",
    1: "保守型",
    2: "激进型",
}

RISK_TYPE_BADGES: dict[str, str] = {
    "保守型": "badge-conservative",
    "稳健型": "badge-moderate",
    "激进型": "badge-aggressive",
}


def income_code(text: Optional[str]) -> int:
    return INCOME_CODES.get(text or "", DEFAULT_CODE)


def max_loss_code(text: Optional[str]) -> int:
    return MAX_LOSS_CODES.get(text or "", DEFAULT_CODE)


def max_loss_text(code: Optional[int]) -> Optional[str]:
    for text, c in MAX_LOSS_CODES.items():
        if c == code:
            return text
    return None


def experience_text(text: Optional[str]) -> Optional[str]:
    if text is None:
        return None
    return EXPERIENCE_TEXT.get(text, text)


def risk_type_text(code: Optional[int]) -> str:
    return RISK_TYPE_TEXT.get(code, "未知类型")


def risk_type_label(risk_type: Union[str, int, None]) -> Optional[str]:
    """Backend variants send either the display text or the numeric code."""
    if isinstance(risk_type, int) or (risk_type or "").isdigit():
        return risk_type_text(int(risk_type))
    return risk_type or None


def risk_type_badge(risk_type: Union[str, int, None]) -> str:
    return RISK_TYPE_BADGES.get(risk_type_label(risk_type) or "", "badge-moderate")


def build_questionnaire_request(
    customer: CustomerForm,
    answers: QuestionnaireAnswers,
) -> CustomerQuestionnaireRequest:
    """
    Assemble the backend questionnaire payload. Expects a validated form.
    """
    amount = float(customer.invest_amount or 0) * TEN_THOUSAND
    return CustomerQuestionnaireRequest(
        customer_info=CustomerInfo(
            name=customer.name.strip(),
            phone=customer.phone.strip(),
            id_card=customer.id_card.strip(),
            email=customer.email or None,
            occupation=customer.occupation or None,
            invest_amount=amount,
        ),
        risk_assessment=RiskAssessment(
            annual_income=income_code(answers.income),
            investment_amount=amount,
            investment_experience=experience_text(answers.experience),
            max_loss=max_loss_code(answers.risk_tolerance),
            investment_target=answers.goal,
            investment_expire=answers.period,
            score=calculate_risk_score(answers),
        ),
    )
