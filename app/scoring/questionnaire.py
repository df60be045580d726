"""
Questionnaire Risk Score

Maps the six questionnaire answers to a 0-100 appetite score:
  1. Start from a base of 50
  2. Each category adds a fixed delta from its lookup table
  3. Unanswered / unknown options contribute 0
  4. Clamp the sum to [0, 100]

Convention: HIGHER score = MORE risk appetite.

Pure functions, no I/O. Cheap enough to run on every keystroke.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from app.schemas.questionnaire import (
    QuestionnaireAnswers,
    RiskProfile,
    RiskTier,
    ScoreFactor,
)

BASE_SCORE = 50
MIN_SCORE = 0
MAX_SCORE = 100


@dataclass(frozen=True)
class FactorResult:
    category: str
    answer: Optional[str]
    delta: int


# ═══════════════════════════════════════════════════════════════
# Category weight tables (option → delta)
# ═══════════════════════════════════════════════════════════════
AGE_WEIGHTS: dict[str, int] = {
    "18-30岁": 15,
    "31-45岁": 10,
    "46-60岁": 5,
    "60岁以上": -10,
}

INCOME_WEIGHTS: dict[str, int] = {
    "10万以下": 0,
    "10-30万": 5,
    "30-50万": 10,
    "50万以上": 15,
}

EXPERIENCE_WEIGHTS: dict[str, int] = {
    "无经验": 0,
    "1-3年": 5,
    "3-5年": 10,
    "5年以上": 15,
}

LOSS_TOLERANCE_WEIGHTS: dict[str, int] = {
    "5%以内": -10,
    "5-15%": 5,
    "15-30%": 10,
    "30%以上": 20,
}

GOAL_WEIGHTS: dict[str, int] = {
    "资产保值": -5,
    "稳健增值": 5,
    "积极增长": 10,
    "追求高收益": 15,
}

PERIOD_WEIGHTS: dict[str, int] = {
    "1年以内": -10,
    "1-3年": 0,
    "3-5年": 5,
    "5年以上": 10,
}

# Question key (as used on the wire) → (answer attribute, weight table)
CATEGORIES: dict[str, tuple[str, dict[str, int]]] = {
    "age": ("age", AGE_WEIGHTS),
    "income": ("income", INCOME_WEIGHTS),
    "experience": ("experience", EXPERIENCE_WEIGHTS),
    "risk-tolerance": ("risk_tolerance", LOSS_TOLERANCE_WEIGHTS),
    "goal": ("goal", GOAL_WEIGHTS),
    "period": ("period", PERIOD_WEIGHTS),
}


# ═══════════════════════════════════════════════════════════════
# Tier thresholds
#   score >= 70  → aggressive
#   score >= 40  → moderate
#   score <  40  → conservative
#
# The audit backend classifies with inclusive 0-40 / 41-70 / 71-100
# ranges instead, so scores 40 and 70 land one tier apart. This table
# is the single rule used everywhere in the portal.
# ═══════════════════════════════════════════════════════════════
TIER_THRESHOLDS = [
    (70, RiskTier.AGGRESSIVE),
    (40, RiskTier.MODERATE),
]

TIER_DISPLAY = {
    RiskTier.CONSERVATIVE: ("保守型投资者", "badge-conservative", "适合低风险投资产品"),
    RiskTier.MODERATE: ("稳健型投资者", "badge-moderate", "适合中等风险投资产品"),
    RiskTier.AGGRESSIVE: ("激进型投资者", "badge-aggressive", "适合高风险投资产品"),
}


def score_category(category: str, answer: Optional[str]) -> FactorResult:
    _, table = CATEGORIES[category]
    if answer is None:
        return FactorResult(category, None, 0)
    return FactorResult(category, answer, table.get(answer, 0))


def score_breakdown(answers: QuestionnaireAnswers) -> list[FactorResult]:
    return [
        score_category(category, getattr(answers, attr))
        for category, (attr, _) in CATEGORIES.items()
    ]


def calculate_risk_score(answers: QuestionnaireAnswers) -> int:
    """
    Base 50 plus every category delta, clamped to [0, 100].
    """
    total = BASE_SCORE + sum(f.delta for f in score_breakdown(answers))
    return max(MIN_SCORE, min(MAX_SCORE, total))


def risk_tier(score: int) -> RiskTier:
    for threshold, tier in TIER_THRESHOLDS:
        if score >= threshold:
            return tier
    return RiskTier.CONSERVATIVE


def risk_profile(score: int) -> RiskProfile:
    tier = risk_tier(score)
    level, badge_class, suitability = TIER_DISPLAY[tier]
    return RiskProfile(
        score=score,
        tier=tier,
        level=level,
        badge_class=badge_class,
        description=f"评分：{score}/100 - {suitability}",
    )


def missing_questions(answers: QuestionnaireAnswers) -> list[str]:
    return [
        category for category, (attr, _) in CATEGORIES.items()
        if not getattr(answers, attr)
    ]


def is_complete(answers: QuestionnaireAnswers) -> bool:
    return not missing_questions(answers)


def to_score_factors(results: list[FactorResult]) -> list[ScoreFactor]:
    return [ScoreFactor(category=r.category, answer=r.answer, delta=r.delta) for r in results]
