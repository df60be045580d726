"""
Audit stage rules as the portal expects them.

The audit backend runs the real state machine. These rules only drive
what the workstation renders: which earlier opinions an auditor may read,
and the "what happens next" hint next to the decision form. When a
backend response disagrees, the backend's answer is shown as-is.

Expected progression:
  junior(0) → intermediate(1) → senior(2) → committee(3)
  conservative clients finish after intermediate approval
  moderate clients finish after senior approval
  aggressive clients always reach committee
  any rejection ends the workflow
"""
from __future__ import annotations

from enum import IntEnum
from typing import Iterable, Optional

from app.schemas.audit import AuditHistoryEntry
from app.schemas.questionnaire import RiskTier


class AuditStage(IntEnum):
    JUNIOR = 0
    INTERMEDIATE = 1
    SENIOR = 2
    COMMITTEE = 3


STAGE_TEXT = {
    AuditStage.JUNIOR: "初审",
    AuditStage.INTERMEDIATE: "中审",
    AuditStage.SENIOR: "高审",
    AuditStage.COMMITTEE: "委员会审核",
}

AUDITOR_LEVEL_NAMES = {
    AuditStage.JUNIOR: "初级审核员",
    AuditStage.INTERMEDIATE: "中级审核员",
    AuditStage.SENIOR: "高级审核员",
    AuditStage.COMMITTEE: "投资委员会",
}

WORKFLOW_STATUS_TEXT = {
    "forwarded": "已转交",
    "completed": "已完成",
}


def stage_text(stage: int) -> str:
    try:
        return STAGE_TEXT[AuditStage(stage)]
    except ValueError:
        return "未知阶段"


def workflow_status_text(status: Optional[str]) -> str:
    return WORKFLOW_STATUS_TEXT.get(status or "", "已处理")


def visible_history(
    entries: Iterable[AuditHistoryEntry],
    auditor_level: int,
) -> list[AuditHistoryEntry]:
    """
    Opinions from stages strictly below the auditor's own, in stage order.
    """
    return sorted(
        (e for e in entries if e.stage < auditor_level),
        key=lambda e: e.stage,
    )


# ═══════════════════════════════════════════════════════════════
# Next-stage rules, one per stage
# ═══════════════════════════════════════════════════════════════

def _after_junior(tier: RiskTier) -> Optional[AuditStage]:
    return AuditStage.INTERMEDIATE


def _after_intermediate(tier: RiskTier) -> Optional[AuditStage]:
    if tier == RiskTier.CONSERVATIVE:
        return None
    return AuditStage.SENIOR


def _after_senior(tier: RiskTier) -> Optional[AuditStage]:
    if tier == RiskTier.AGGRESSIVE:
        return AuditStage.COMMITTEE
    # Conservative cases are not expected here; if one shows up it ends too.
    return None


def _after_committee(tier: RiskTier) -> Optional[AuditStage]:
    return None


NEXT_STAGE_RULES = {
    AuditStage.JUNIOR: _after_junior,
    AuditStage.INTERMEDIATE: _after_intermediate,
    AuditStage.SENIOR: _after_senior,
    AuditStage.COMMITTEE: _after_committee,
}


def expected_next_stage(
    stage: int,
    tier: RiskTier,
    approved: bool = True,
) -> Optional[AuditStage]:
    """
    None means the workflow is expected to finish with this decision.
    """
    if not approved:
        return None
    return NEXT_STAGE_RULES[AuditStage(stage)](tier)


def describe_next_step(stage: int, tier: RiskTier, approved: bool = True) -> str:
    if not approved:
        return "审核被拒绝，流程结束"
    nxt = expected_next_stage(stage, tier, approved)
    if nxt is None:
        return f"{stage_text(stage)}通过后流程结束"
    return f"{stage_text(stage)}通过后转交{AUDITOR_LEVEL_NAMES[nxt]}"
