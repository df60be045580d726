"""
Audit backend client.

Every business decision (task assignment, locking, workflow transitions,
persistence) is made by the external audit service. This client is the
only way the portal talks to it. All responses use the
``{success, message, data}`` envelope.

Errors:
  BackendUnavailableError — connection refused / timed out
  BackendError            — HTTP error status, unparseable body, or success=false
No retries: the user re-runs the action.
"""
from __future__ import annotations

import time
from typing import Any, Iterable, Optional

import httpx
import structlog
from pydantic import BaseModel, TypeAdapter, ValidationError

from app.core.metrics import BACKEND_LATENCY
from app.schemas.audit import (
    AuditHistoryEntry,
    AuditorHistoryEntry,
    AuditResultSubmission,
    AuditResultSubmissionResponse,
    AuditStatus,
    AuditTaskResponse,
)
from app.schemas.questionnaire import CustomerQuestionnaireRequest

logger = structlog.get_logger()

SERVER_ERROR_MESSAGE = "服务器内部错误"
UNAVAILABLE_MESSAGE = "后端服务暂不可用，请稍后重试"


class BackendError(Exception):
    def __init__(self, message: str, status_code: int = 500, payload: Any = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload


class BackendUnavailableError(BackendError):
    def __init__(self, message: str = UNAVAILABLE_MESSAGE):
        super().__init__(message, status_code=503)


class BackendClient:

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
            headers={"Content-Type": "application/json"},
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    # ═══════════════════════════════════════════════════════════════
    # Raw forwarding (used by the proxy as-is)
    # ═══════════════════════════════════════════════════════════════

    async def forward(
        self,
        method: str,
        path: str,
        *,
        params: Any = None,
        json: Any = None,
        content: Optional[bytes] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> httpx.Response:
        t0 = time.perf_counter()
        try:
            return await self._client.request(
                method.upper(),
                path,
                params=params,
                json=json,
                content=content,
                headers=headers,
            )
        except (httpx.ConnectError, httpx.TimeoutException) as e:
            logger.error("backend_unreachable", method=method, path=path, error=str(e))
            raise BackendUnavailableError() from e
        except httpx.HTTPError as e:
            logger.error("backend_request_failed", method=method, path=path, error=str(e))
            raise BackendError(SERVER_ERROR_MESSAGE) from e
        finally:
            BACKEND_LATENCY.labels(method=method.upper()).observe(time.perf_counter() - t0)

    # ═══════════════════════════════════════════════════════════════
    # Envelope handling
    # ═══════════════════════════════════════════════════════════════

    async def _call(self, method: str, path: str, data_type: Any, **kwargs) -> Any:
        response = await self.forward(method, path, **kwargs)

        try:
            body = response.json()
        except ValueError:
            logger.error("backend_invalid_json", path=path, status=response.status_code)
            raise BackendError(SERVER_ERROR_MESSAGE, status_code=502)

        if not isinstance(body, dict):
            raise BackendError(SERVER_ERROR_MESSAGE, status_code=502, payload=body)

        message = body.get("message") or SERVER_ERROR_MESSAGE
        if response.is_error or not body.get("success", False):
            logger.warning(
                "backend_call_rejected",
                path=path,
                status=response.status_code,
                message=message,
            )
            status = response.status_code if response.is_error else 400
            raise BackendError(message, status_code=status, payload=body)

        if data_type is None:
            return None
        try:
            return TypeAdapter(data_type).validate_python(body.get("data"))
        except ValidationError as e:
            logger.error("backend_unexpected_payload", path=path, errors=e.error_count())
            raise BackendError(SERVER_ERROR_MESSAGE, status_code=502, payload=body) from e

    @staticmethod
    def _body(model: BaseModel) -> dict:
        return model.model_dump(mode="json", by_alias=True, exclude_none=True)

    # ═══════════════════════════════════════════════════════════════
    # Customer endpoints
    # ═══════════════════════════════════════════════════════════════

    async def submit_questionnaire(self, request: CustomerQuestionnaireRequest) -> int:
        """Returns the new customer id."""
        return await self._call("POST", "/api/customer/questionnaire", int, json=self._body(request))

    async def get_audit_status(self, customer_id: int) -> AuditStatus:
        return await self._call(
            "POST", "/api/customer/audit-status", AuditStatus, json={"customerId": customer_id},
        )

    # ═══════════════════════════════════════════════════════════════
    # Auditor endpoints
    # ═══════════════════════════════════════════════════════════════

    async def get_tasks(self, level: int, auditor_id: Optional[int] = None) -> AuditTaskResponse:
        payload: dict[str, int] = {"level": level}
        if auditor_id is not None:
            payload["auditorId"] = auditor_id
        return await self._call("POST", "/api/auditor/tasks", AuditTaskResponse, json=payload)

    async def get_new_tasks(self, level: int, exclude_ids: Iterable[int] = ()) -> AuditTaskResponse:
        params: dict[str, Any] = {"level": level}
        exclude = ",".join(str(i) for i in exclude_ids)
        if exclude:
            params["excludeIds"] = exclude
        return await self._call("GET", "/api/auditor/tasks/new", AuditTaskResponse, params=params)

    async def submit_result(self, submission: AuditResultSubmission) -> AuditResultSubmissionResponse:
        return await self._call(
            "POST", "/api/auditor/result", AuditResultSubmissionResponse, json=self._body(submission),
        )

    async def get_audit_history(self, audit_id: int) -> list[AuditHistoryEntry]:
        return await self._call(
            "GET", f"/api/auditor/audit-history/{audit_id}", Optional[list[AuditHistoryEntry]],
        ) or []

    async def get_auditor_history(self, auditor_id: int) -> list[AuditorHistoryEntry]:
        return await self._call(
            "GET", f"/api/auditor/history/{auditor_id}", Optional[list[AuditorHistoryEntry]],
        ) or []

    async def release_task(self, audit_id: int) -> None:
        await self._call("POST", f"/api/auditor/release-task/{audit_id}", None)
