"""
Views returned by the workstation API.
"""
from __future__ import annotations

from typing import Optional

from app.schemas.audit import AuditResultSubmissionResponse, AuditTask, CamelModel


class WorkstationView(CamelModel):
    level: int
    level_label: str
    theme_color: str
    visible_history_stages: list[int]
    next_stage_by_tier: dict[str, Optional[int]]


class TaskStatsView(CamelModel):
    pending: int
    total_amount: float
    total_amount_text: str


class TaskCardView(CamelModel):
    """Display fields for one task in the list."""
    audit_id: int
    stage_text: str
    masked_phone: Optional[str] = None
    created_at_text: str = ""
    risk_type: Optional[str] = None
    risk_type_badge: str
    max_loss_text: Optional[str] = None


class TaskListView(CamelModel):
    level: int
    tasks: list[AuditTask]
    cards: list[TaskCardView] = []
    new_ids: list[int] = []
    dropped_ids: list[int] = []
    timestamp: int
    stats: TaskStatsView


class DecisionView(CamelModel):
    result: AuditResultSubmissionResponse
    status_text: str
    # What the portal expected; informational, the backend result stands.
    expected_next_stage: Optional[int] = None
    expected_next_step: Optional[str] = None


class NotificationView(CamelModel):
    level: int
    audit_ids: list[int]
    message: str
    expires_at: float


class PollerView(CamelModel):
    level: int
    auditor_id: Optional[int] = None
    running: bool
    interval_seconds: float
