"""
Audit workstation configuration.

The junior, intermediate, senior and committee desks are the same view
with different settings; everything level-specific lives in one
WorkstationConfig per level.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional

from app.schemas.audit import AuditTask
from app.schemas.questionnaire import RiskTier
from app.schemas.workstation import TaskCardView
from app.scoring.codes import max_loss_text, risk_type_badge, risk_type_label
from app.services.form_validation import format_datetime, mask_phone
from app.workflow.stages import AUDITOR_LEVEL_NAMES, NEXT_STAGE_RULES, AuditStage, stage_text


@dataclass(frozen=True)
class WorkstationConfig:
    level: AuditStage
    level_label: str
    theme_color: str
    visible_history_stages: tuple[int, ...]
    next_stage_rule: Callable[[RiskTier], Optional[AuditStage]] = field(compare=False)

    def next_stage_for(self) -> dict[str, Optional[int]]:
        """Expected next stage per tier, for rendering the routing hint."""
        return {tier.value: self.next_stage_rule(tier) for tier in RiskTier}


THEME_COLORS = {
    AuditStage.JUNIOR: "#1890ff",
    AuditStage.INTERMEDIATE: "#52c41a",
    AuditStage.SENIOR: "#fa8c16",
    AuditStage.COMMITTEE: "#722ed1",
}

WORKSTATIONS: dict[int, WorkstationConfig] = {
    stage.value: WorkstationConfig(
        level=stage,
        level_label=AUDITOR_LEVEL_NAMES[stage],
        theme_color=THEME_COLORS[stage],
        visible_history_stages=tuple(range(stage.value)),
        next_stage_rule=NEXT_STAGE_RULES[stage],
    )
    for stage in AuditStage
}


def get_workstation(level: int) -> WorkstationConfig:
    try:
        return WORKSTATIONS[level]
    except KeyError:
        raise ValueError(f"Unknown auditor level: {level}")


@dataclass(frozen=True)
class TaskStats:
    pending: int
    total_amount: float
    total_amount_text: str


def task_stats(tasks: Iterable[AuditTask]) -> TaskStats:
    tasks = list(tasks)
    total = sum(t.invest_amount or 0 for t in tasks)
    return TaskStats(
        pending=len(tasks),
        total_amount=total,
        total_amount_text=f"{total / 10_000:.1f}万",
    )


def task_card(task: AuditTask) -> TaskCardView:
    return TaskCardView(
        audit_id=task.audit_id,
        stage_text=stage_text(task.stage),
        masked_phone=mask_phone(task.customer_phone),
        created_at_text=format_datetime(task.created_at),
        risk_type=risk_type_label(task.risk_type),
        risk_type_badge=risk_type_badge(task.risk_type),
        max_loss_text=max_loss_text(task.max_loss),
    )
