"""
Audit workstation API — one parameterised desk for all four auditor levels.

GET    /v1/workstations/{level}                          → desk configuration
GET    /v1/workstations/{level}/tasks                    → cached + newly assigned tasks
DELETE /v1/workstations/{level}/cache                    → forget cached tasks
GET    /v1/workstations/{level}/tasks/{audit_id}/history → earlier-stage opinions
POST   /v1/workstations/{level}/tasks/{audit_id}/decision → validate + submit a decision
POST   /v1/workstations/{level}/tasks/{audit_id}/release → hand the task back
POST   /v1/workstations/{level}/poller                   → start new-task polling
DELETE /v1/workstations/{level}/poller                   → stop new-task polling
GET    /v1/workstations/{level}/notifications            → active new-task notifications
GET    /v1/auditors/{auditor_id}/history                 → an auditor's past decisions

``auditor_id`` is an optional query parameter on every desk route; it
selects the auditor's own cache partition and is passed to the backend.
"""
from __future__ import annotations

from typing import Optional

import structlog
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from app.api.deps import get_backend, get_merger, get_pollers, get_workstation_config
from app.schemas.audit import (
    ApiEnvelope,
    AuditDecision,
    AuditHistoryEntry,
    AuditorHistoryEntry,
    AuditResultSubmission,
)
from app.schemas.workstation import (
    DecisionView,
    NotificationView,
    PollerView,
    TaskListView,
    TaskStatsView,
    WorkstationView,
)
from app.scoring.questionnaire import risk_tier
from app.services.backend_client import BackendClient
from app.services.form_validation import validate_audit_form
from app.services.task_merger import TaskMerger
from app.services.task_poller import PollerRegistry
from app.workflow.stages import describe_next_step, expected_next_stage, visible_history, workflow_status_text
from app.workflow.workstation import WorkstationConfig, task_card, task_stats

logger = structlog.get_logger()
router = APIRouter(prefix="/v1", tags=["workstation"])


@router.get("/workstations/{level}", response_model=WorkstationView)
async def workstation(config: WorkstationConfig = Depends(get_workstation_config)) -> WorkstationView:
    return WorkstationView(
        level=int(config.level),
        level_label=config.level_label,
        theme_color=config.theme_color,
        visible_history_stages=list(config.visible_history_stages),
        next_stage_by_tier=config.next_stage_for(),
    )


@router.get("/workstations/{level}/tasks", response_model=ApiEnvelope[TaskListView])
async def list_tasks(
    auditor_id: Optional[int] = None,
    config: WorkstationConfig = Depends(get_workstation_config),
    merger: TaskMerger = Depends(get_merger),
):
    result = await merger.merge_tasks(int(config.level), auditor_id)
    stats = task_stats(result.tasks)
    view = TaskListView(
        level=int(config.level),
        tasks=result.tasks,
        cards=[task_card(t) for t in result.tasks],
        new_ids=result.new_ids,
        dropped_ids=result.dropped_ids,
        timestamp=result.timestamp,
        stats=TaskStatsView(
            pending=stats.pending,
            total_amount=stats.total_amount,
            total_amount_text=stats.total_amount_text,
        ),
    )
    return ApiEnvelope[TaskListView](success=True, message=result.message, data=view)


@router.delete("/workstations/{level}/cache", response_model=ApiEnvelope[None])
async def clear_cache(
    auditor_id: Optional[int] = None,
    config: WorkstationConfig = Depends(get_workstation_config),
    merger: TaskMerger = Depends(get_merger),
):
    merger.clear(int(config.level), auditor_id)
    return ApiEnvelope[None](success=True, message="本地缓存已清空")


@router.get(
    "/workstations/{level}/tasks/{audit_id}/history",
    response_model=ApiEnvelope[list[AuditHistoryEntry]],
)
async def task_history(
    audit_id: int,
    config: WorkstationConfig = Depends(get_workstation_config),
    backend: BackendClient = Depends(get_backend),
):
    entries = await backend.get_audit_history(audit_id)
    return ApiEnvelope[list[AuditHistoryEntry]](
        success=True,
        message="审核历史获取成功",
        data=visible_history(entries, int(config.level)),
    )


@router.post(
    "/workstations/{level}/tasks/{audit_id}/decision",
    response_model=ApiEnvelope[DecisionView],
)
async def submit_decision(
    audit_id: int,
    decision: AuditDecision,
    config: WorkstationConfig = Depends(get_workstation_config),
    merger: TaskMerger = Depends(get_merger),
    backend: BackendClient = Depends(get_backend),
):
    validation = validate_audit_form(decision.approved, decision.risk_score, decision.opinion)
    if not validation.is_valid:
        return JSONResponse(
            status_code=422,
            content={"success": False, "message": "；".join(validation.errors), "data": validation.errors},
        )

    level = int(config.level)
    cached = merger.cache.for_auditor(decision.auditor_id).load(level)
    task = next((t for t in cached.tasks if t.audit_id == audit_id), None)

    result = await backend.submit_result(AuditResultSubmission(
        audit_id=audit_id,
        auditor_level=level,
        auditor_id=decision.auditor_id,
        approved=decision.approved,
        risk_score=decision.risk_score,
        opinion=decision.opinion.strip(),
    ))
    merger.complete_task(level, audit_id, decision.auditor_id)

    view = DecisionView(result=result, status_text=workflow_status_text(result.workflow_status))
    if task is not None and task.risk_score is not None:
        tier = risk_tier(task.risk_score)
        nxt = expected_next_stage(level, tier, decision.approved)
        view.expected_next_stage = int(nxt) if nxt is not None else None
        view.expected_next_step = describe_next_step(level, tier, decision.approved)
        if view.expected_next_stage != result.next_stage:
            logger.info(
                "workflow_differs_from_expected",
                audit_id=audit_id,
                expected=view.expected_next_stage,
                backend=result.next_stage,
            )

    logger.info(
        "audit_decision_submitted",
        audit_id=audit_id,
        level=level,
        approved=decision.approved,
        workflow_status=result.workflow_status,
    )
    return ApiEnvelope[DecisionView](success=True, message="审核结果提交成功", data=view)


@router.post("/workstations/{level}/tasks/{audit_id}/release", response_model=ApiEnvelope[None])
async def release_task(
    audit_id: int,
    auditor_id: Optional[int] = None,
    config: WorkstationConfig = Depends(get_workstation_config),
    merger: TaskMerger = Depends(get_merger),
):
    await merger.release_task(int(config.level), audit_id, auditor_id)
    return ApiEnvelope[None](success=True, message="任务已释放")


# ── New-task polling ──

def _poller_view(level: int, auditor_id: Optional[int], pollers: PollerRegistry) -> PollerView:
    poller = pollers.get(level, auditor_id)
    return PollerView(
        level=level,
        auditor_id=auditor_id,
        running=poller is not None and poller.running,
        interval_seconds=pollers.interval_seconds,
    )


@router.post("/workstations/{level}/poller", response_model=PollerView)
async def start_poller(
    auditor_id: Optional[int] = None,
    config: WorkstationConfig = Depends(get_workstation_config),
    merger: TaskMerger = Depends(get_merger),
    pollers: PollerRegistry = Depends(get_pollers),
) -> PollerView:
    shown = merger.cache.for_auditor(auditor_id).cached_ids(int(config.level))
    pollers.start(int(config.level), auditor_id, already_shown=shown)
    return _poller_view(int(config.level), auditor_id, pollers)


@router.delete("/workstations/{level}/poller", response_model=PollerView)
async def stop_poller(
    auditor_id: Optional[int] = None,
    config: WorkstationConfig = Depends(get_workstation_config),
    pollers: PollerRegistry = Depends(get_pollers),
) -> PollerView:
    await pollers.stop(int(config.level), auditor_id)
    return _poller_view(int(config.level), auditor_id, pollers)


@router.get("/workstations/{level}/notifications", response_model=list[NotificationView])
async def notifications(
    auditor_id: Optional[int] = None,
    config: WorkstationConfig = Depends(get_workstation_config),
    pollers: PollerRegistry = Depends(get_pollers),
) -> list[NotificationView]:
    poller = pollers.get(int(config.level), auditor_id)
    if poller is None:
        return []
    return [
        NotificationView(
            level=n.level,
            audit_ids=list(n.audit_ids),
            message=n.message,
            expires_at=n.expires_at,
        )
        for n in poller.notifier.active()
    ]


@router.get("/auditors/{auditor_id}/history", response_model=ApiEnvelope[list[AuditorHistoryEntry]])
async def auditor_history(auditor_id: int, backend: BackendClient = Depends(get_backend)):
    entries = await backend.get_auditor_history(auditor_id)
    return ApiEnvelope[list[AuditorHistoryEntry]](success=True, message="审核历史获取成功", data=entries)
