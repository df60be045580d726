"""
Shared FastAPI dependencies.

Long-lived collaborators (backend client, task merger, pollers) are built
once in the application lifespan and kept on ``app.state``.
"""
from __future__ import annotations

from fastapi import HTTPException, Request

from app.services.backend_client import BackendClient
from app.services.task_merger import TaskMerger
from app.services.task_poller import PollerRegistry
from app.workflow.workstation import WorkstationConfig, get_workstation


def get_backend(request: Request) -> BackendClient:
    return request.app.state.backend


def get_merger(request: Request) -> TaskMerger:
    return request.app.state.merger


def get_pollers(request: Request) -> PollerRegistry:
    return request.app.state.pollers


def get_workstation_config(level: int) -> WorkstationConfig:
    try:
        return get_workstation(level)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))
