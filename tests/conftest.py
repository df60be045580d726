"""
Shared fixtures: an in-process fake of the audit backend served through
httpx.MockTransport, so no network is touched.
"""
import json
from typing import Optional

import httpx
import pytest
from fastapi.testclient import TestClient

from app.core.config import Settings
from app.main import create_app
from app.services.backend_client import BackendClient
from app.services.task_cache import InMemoryBackend, TaskCacheStore
from app.services.task_merger import TaskMerger


def make_task(audit_id: int, stage: int = 0, risk_score: int = 55, **extra) -> dict:
    task = {
        "auditId": audit_id,
        "customerId": audit_id + 1000,
        "customerName": f"客户{audit_id}",
        "customerPhone": "13812345678",
        "stage": stage,
        "riskScore": risk_score,
        "riskType": "稳健型",
        "createdAt": "2024-05-01T09:30:00",
        "investAmount": 100_000,
    }
    task.update(extra)
    return task


def envelope(data=None, success: bool = True, message: str = "ok") -> dict:
    return {"success": success, "message": message, "data": data}


class FakeAuditBackend:
    """
    Minimal stand-in for the audit service.

    new_tasks[level]  → pool handed out by /tasks/new (minus excludeIds)
    assigned[level]   → what /tasks reports as assigned
    """

    def __init__(self):
        self.new_tasks: dict[int, list[dict]] = {}
        self.assigned: dict[int, list[dict]] = {}
        self.history: dict[int, list[dict]] = {}
        self.auditor_history: dict[int, list[dict]] = {}
        self.released: list[int] = []
        self.results: list[dict] = []
        self.requests: list[httpx.Request] = []
        self.result_response: dict = {
            "auditId": 0,
            "customerId": 1,
            "workflowStatus": "forwarded",
            "message": "初级审核通过，转交中级审核员",
            "nextStage": 1,
            "isCompleted": False,
        }
        self.fail_release = False
        self.reject_result: Optional[str] = None

    def calls(self, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path == path]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        body = json.loads(request.content) if request.content else None

        if path == "/api/auditor/tasks/new":
            level = int(request.url.params["level"])
            exclude = {int(i) for i in request.url.params.get("excludeIds", "").split(",") if i}
            tasks = [t for t in self.new_tasks.get(level, []) if t["auditId"] not in exclude]
            return httpx.Response(200, json=envelope(
                {"auditorLevel": level, "taskCount": len(tasks), "tasks": tasks}, message="新任务获取成功",
            ))
        if path == "/api/auditor/tasks":
            level = body["level"]
            tasks = self.assigned.get(level, [])
            return httpx.Response(200, json=envelope(
                {"auditorLevel": level, "taskCount": len(tasks), "tasks": tasks}, message="任务获取成功",
            ))
        if path == "/api/auditor/result":
            if self.reject_result:
                return httpx.Response(200, json=envelope(success=False, message=self.reject_result))
            self.results.append(body)
            return httpx.Response(200, json=envelope(
                {**self.result_response, "auditId": body["auditId"]}, message="审核结果提交成功",
            ))
        if path.startswith("/api/auditor/audit-history/"):
            audit_id = int(path.rsplit("/", 1)[1])
            return httpx.Response(200, json=envelope(self.history.get(audit_id, [])))
        if path.startswith("/api/auditor/history/"):
            auditor_id = int(path.rsplit("/", 1)[1])
            return httpx.Response(200, json=envelope(self.auditor_history.get(auditor_id, [])))
        if path.startswith("/api/auditor/release-task/"):
            if self.fail_release:
                return httpx.Response(500, json=envelope(success=False, message="服务器内部错误"))
            self.released.append(int(path.rsplit("/", 1)[1]))
            return httpx.Response(200, json=envelope(message="任务已释放"))
        if path == "/api/customer/questionnaire":
            return httpx.Response(200, json=envelope(42, message="提交成功"))
        if path == "/api/customer/audit-status":
            return httpx.Response(200, json=envelope({
                "customerId": body["customerId"],
                "status": "in_progress",
                "message": "审核中，请等待审核完成",
            }))
        if path == "/api/echo":
            return httpx.Response(200, json=envelope({
                "method": request.method,
                "query": dict(request.url.params),
                "body": body,
            }))
        return httpx.Response(404, json=envelope(success=False, message="not found"))


@pytest.fixture
def fake_backend() -> FakeAuditBackend:
    return FakeAuditBackend()


@pytest.fixture
def transport(fake_backend) -> httpx.MockTransport:
    return httpx.MockTransport(fake_backend.handler)


@pytest.fixture
def backend_client(transport):
    return BackendClient("http://backend.test", transport=transport)


@pytest.fixture
def cache_store() -> TaskCacheStore:
    return TaskCacheStore(InMemoryBackend())


@pytest.fixture
def merger(backend_client, cache_store) -> TaskMerger:
    return TaskMerger(backend_client, cache_store)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        backend_url="http://backend.test",
        task_cache_backend="memory",
        poll_interval_seconds=3600,
        _env_file=None,
    )


@pytest.fixture
def client(settings, transport):
    app = create_app(settings, transport=transport)
    with TestClient(app) as c:
        yield c


def unreachable_transport(message: Optional[str] = "connection refused") -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError(message, request=request)
    return httpx.MockTransport(handler)
