"""
Audit backend payloads.

The external audit service owns every one of these records; the portal
only holds read-only, possibly stale copies. Field names on the wire are
the backend's camelCase, Python code uses snake_case.
"""
from __future__ import annotations

from datetime import datetime
from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ApiEnvelope(BaseModel, Generic[T]):
    """Uniform response envelope shared with the audit backend."""
    success: bool
    message: str = ""
    data: Optional[T] = None

    @classmethod
    def error(cls, message: str) -> "ApiEnvelope":
        return cls(success=False, message=message, data=None)


# ── Tasks ──

class AuditTask(CamelModel):
    """One case waiting for a decision at the auditor's stage."""
    audit_id: int
    customer_id: Optional[int] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    stage: int = Field(0, ge=0, le=3)
    risk_score: Optional[int] = None
    risk_type: Optional[str] = None
    created_at: Optional[str] = None
    invest_amount: Optional[float] = None
    ai_audit: Optional[str] = Field(None, description="AI-generated advisory note")

    # Customer snapshot
    customer_email: Optional[str] = None
    customer_occupation: Optional[str] = None
    customer_id_card: Optional[str] = None

    # Risk snapshot
    annual_income: Optional[int] = None
    investment_amount: Optional[float] = None
    investment_experience: Optional[str] = None
    max_loss: Optional[int] = None
    investment_target: Optional[str] = None
    investment_expire: Optional[str] = None


class AuditTaskResponse(CamelModel):
    auditor_level: int
    task_count: int = 0
    tasks: list[AuditTask] = []


class AuditHistoryEntry(CamelModel):
    """A single stage decision. Append-only on the backend."""
    model_config = ConfigDict(frozen=True)

    stage: int
    risk_score: int
    opinion: str
    created_at: Optional[datetime] = None


# ── Decisions ──

class AuditDecision(CamelModel):
    """Decision form as entered on the workstation."""
    approved: bool = True
    risk_score: int = 50
    opinion: str = ""
    auditor_id: Optional[int] = None


class AuditResultSubmission(CamelModel):
    audit_id: int
    auditor_level: int
    auditor_id: Optional[int] = None
    approved: bool
    risk_score: int
    opinion: str


class AuditResultSubmissionResponse(CamelModel):
    audit_id: int
    customer_id: Optional[int] = None
    workflow_status: str
    message: str = ""
    next_stage: Optional[int] = None
    is_completed: bool = False


class AuditStatus(CamelModel):
    customer_id: int
    status: str = Field(description="not_found | in_progress | completed")
    message: str = ""
    results: Optional[list[AuditHistoryEntry]] = None


class AuditorHistoryEntry(CamelModel):
    """A decision made by one auditor, across cases."""
    audit_id: Optional[int] = None
    customer_id: Optional[int] = None
    customer_name: Optional[str] = None
    stage: int
    risk_score: Optional[int] = None
    opinion: Optional[str] = None
    approved: Optional[bool] = None
    created_at: Optional[datetime] = None
