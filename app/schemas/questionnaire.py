"""
Customer questionnaire payloads.

Answers are the literal option strings shown on the questionnaire, e.g.
``{"age": "31-45岁", "risk-tolerance": "15-30%"}``. Every answer is optional
until the customer has worked through the whole form.
"""
from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from app.schemas.audit import CamelModel


class RiskTier(str, Enum):
    CONSERVATIVE = "conservative"
    MODERATE = "moderate"
    AGGRESSIVE = "aggressive"


class QuestionnaireAnswers(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    age: Optional[str] = None
    income: Optional[str] = None
    experience: Optional[str] = None
    risk_tolerance: Optional[str] = Field(None, alias="risk-tolerance")
    goal: Optional[str] = None
    period: Optional[str] = None


class ScoreFactor(BaseModel):
    category: str
    answer: Optional[str] = None
    delta: int


class RiskProfile(BaseModel):
    """What the questionnaire page shows next to the live score."""
    score: int = Field(ge=0, le=100)
    tier: RiskTier
    level: str
    badge_class: str
    description: str


class ScoreResponse(RiskProfile):
    factors: list[ScoreFactor]
    complete: bool
    missing: list[str] = []


class CustomerForm(CamelModel):
    """Raw customer form; invest_amount is entered in 万 (10,000 yuan)."""
    name: str = ""
    phone: str = ""
    id_card: str = ""
    email: Optional[str] = None
    occupation: Optional[str] = None
    invest_amount: Optional[float] = None


class QuestionnaireSubmission(BaseModel):
    customer: CustomerForm
    answers: QuestionnaireAnswers


class FormValidationResult(CamelModel):
    is_valid: bool
    errors: dict[str, str] = {}


# ── Backend request (POST /api/customer/questionnaire) ──

class CustomerInfo(CamelModel):
    name: str
    phone: str
    id_card: str
    email: Optional[str] = None
    occupation: Optional[str] = None
    invest_amount: float


class RiskAssessment(CamelModel):
    annual_income: int
    investment_amount: float
    investment_experience: Optional[str] = None
    max_loss: int
    investment_target: Optional[str] = None
    investment_expire: Optional[str] = None
    score: int


class CustomerQuestionnaireRequest(CamelModel):
    customer_info: CustomerInfo
    risk_assessment: RiskAssessment
