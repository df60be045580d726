"""
/api/proxy — same-origin pass-through to the audit backend.

Two request forms are accepted:

  Legacy:  <METHOD> /api/proxy?path=customer/questionnaire&x=1
           path is relative to /api/, other query params and the raw body
           are forwarded unchanged with the original method.

  Newer:   POST /api/proxy  {"path": "/api/auditor/tasks", "method": "POST", "data": {...}}
           path is absolute, data becomes the backend request body
           (query params for GET/DELETE).

Backend responses are passed through with their status. An unreachable
backend gives 503, anything else that breaks gives 500; both in the
standard envelope.
"""
from __future__ import annotations

import json
from typing import Any, Optional

import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, ValidationError

from app.api.deps import get_backend
from app.core.metrics import PROXY_REQUESTS
from app.schemas.audit import ApiEnvelope
from app.services.backend_client import BackendClient, BackendError, BackendUnavailableError

logger = structlog.get_logger()
router = APIRouter(tags=["proxy"])

PROXY_METHODS = ["GET", "POST", "PUT", "DELETE", "PATCH"]
QUERY_ONLY_METHODS = {"GET", "DELETE"}


class ProxyRequest(BaseModel):
    path: str
    method: str = "POST"
    data: Optional[Any] = None


def _envelope_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=ApiEnvelope.error(message).model_dump())


def _safe_path(path: str) -> Optional[str]:
    if not path.startswith("/api/") or ".." in path.split("/"):
        return None
    return path


def _passthrough(response) -> Response:
    content_type = response.headers.get("content-type", "application/json")
    return Response(content=response.content, status_code=response.status_code, media_type=content_type)


@router.api_route("/api/proxy", methods=PROXY_METHODS, summary="Forward a request to the audit backend")
async def proxy(request: Request, backend: BackendClient = Depends(get_backend)) -> Response:
    query = request.query_params
    if "path" in query:
        form = "legacy"
        relative = "/".join(query.getlist("path")).lstrip("/")
        target = _safe_path(f"/api/{relative}")
        method = request.method
        params = [(k, v) for k, v in query.multi_items() if k != "path" and v]
        body = await request.body()
        call: dict[str, Any] = {"params": params or None, "content": body or None}
    else:
        form = "json"
        if request.method != "POST":
            return _envelope_response(405, "代理请求需使用POST方法")
        try:
            payload = ProxyRequest.model_validate(json.loads(await request.body() or b"null"))
        except (ValueError, ValidationError):
            PROXY_REQUESTS.labels(form=form, outcome="bad_request").inc()
            return _envelope_response(400, "缺少path参数")
        target = _safe_path(payload.path)
        method = payload.method.upper()
        if method in QUERY_ONLY_METHODS:
            call = {"params": payload.data if isinstance(payload.data, dict) else None}
        else:
            call = {"json": payload.data}

    if target is None:
        PROXY_REQUESTS.labels(form=form, outcome="bad_request").inc()
        return _envelope_response(400, "非法的代理路径")

    headers = {}
    if "authorization" in request.headers:
        headers["Authorization"] = request.headers["authorization"]

    try:
        response = await backend.forward(method, target, headers=headers or None, **call)
    except BackendUnavailableError as e:
        PROXY_REQUESTS.labels(form=form, outcome="unavailable").inc()
        return _envelope_response(503, e.message)
    except BackendError as e:
        PROXY_REQUESTS.labels(form=form, outcome="error").inc()
        return _envelope_response(500, e.message)

    outcome = "ok" if response.is_success else "backend_error"
    PROXY_REQUESTS.labels(form=form, outcome=outcome).inc()
    logger.info("proxy_forwarded", form=form, method=method, path=target, status=response.status_code)
    return _passthrough(response)
