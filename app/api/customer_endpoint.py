"""
Customer-facing endpoints.

POST /v1/questionnaire/score        → live risk score (every answer optional)
POST /v1/questionnaire/validate     → form check before submission
POST /v1/customer/questionnaire     → submit customer + risk profile to the backend
GET  /v1/customer/{id}/audit-status → audit progress / results for a customer
"""
from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from app.api.deps import get_backend
from app.schemas.audit import ApiEnvelope, AuditStatus
from app.schemas.questionnaire import (
    FormValidationResult,
    QuestionnaireAnswers,
    QuestionnaireSubmission,
    ScoreResponse,
)
from app.scoring.codes import build_questionnaire_request
from app.scoring.questionnaire import (
    calculate_risk_score,
    missing_questions,
    risk_profile,
    score_breakdown,
    to_score_factors,
)
from app.services.backend_client import BackendClient
from app.services.form_validation import validate_customer_form

logger = structlog.get_logger()
router = APIRouter(prefix="/v1", tags=["customer"])


@router.post("/questionnaire/score", response_model=ScoreResponse)
async def score_questionnaire(answers: QuestionnaireAnswers) -> ScoreResponse:
    score = calculate_risk_score(answers)
    missing = missing_questions(answers)
    return ScoreResponse(
        **risk_profile(score).model_dump(),
        factors=to_score_factors(score_breakdown(answers)),
        complete=not missing,
        missing=missing,
    )


@router.post("/questionnaire/validate", response_model=FormValidationResult)
async def validate_questionnaire(submission: QuestionnaireSubmission) -> FormValidationResult:
    errors = validate_customer_form(submission.customer, submission.answers)
    return FormValidationResult(is_valid=not errors, errors=errors)


@router.post("/customer/questionnaire", response_model=ApiEnvelope[int])
async def submit_questionnaire(
    submission: QuestionnaireSubmission,
    backend: BackendClient = Depends(get_backend),
):
    errors = validate_customer_form(submission.customer, submission.answers)
    if errors:
        return JSONResponse(
            status_code=422,
            content={"success": False, "message": "请填写所有必填信息并完成风险评估问卷！", "data": errors},
        )

    request = build_questionnaire_request(submission.customer, submission.answers)
    customer_id = await backend.submit_questionnaire(request)
    logger.info(
        "questionnaire_submitted",
        customer_id=customer_id,
        score=request.risk_assessment.score,
    )
    return ApiEnvelope[int](success=True, message="风险评估提交成功", data=customer_id)


@router.get("/customer/{customer_id}/audit-status", response_model=ApiEnvelope[AuditStatus])
async def audit_status(customer_id: int, backend: BackendClient = Depends(get_backend)):
    status = await backend.get_audit_status(customer_id)
    return ApiEnvelope[AuditStatus](success=True, message=status.message, data=status)
