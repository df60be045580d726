"""
Risk Audit Portal — FastAPI Application Entry Point

POST /v1/questionnaire/score        → live questionnaire risk score
POST /v1/customer/questionnaire     → submit a customer risk profile
GET  /v1/workstations/{level}/tasks → auditor task list (cache + new tasks)
ANY  /api/proxy                     → pass-through to the audit backend
GET  /health                        → health check
GET  /docs                          → OpenAPI / Swagger UI

The audit workflow itself lives in the external audit backend.
"""
from contextlib import asynccontextmanager
from typing import Optional

import httpx
import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app

from app.api.customer_endpoint import router as customer_router
from app.api.proxy_endpoint import router as proxy_router
from app.api.workstation_endpoint import router as workstation_router
from app.core.config import Settings, get_settings
from app.schemas.audit import ApiEnvelope
from app.services.backend_client import BackendClient, BackendError
from app.services.task_cache import TaskCacheStore, create_backend
from app.services.task_merger import TaskMerger
from app.services.task_poller import PollerRegistry

structlog.configure(
    processors=[
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.ConsoleRenderer() if get_settings().app_env == "development"
        else structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.make_filtering_bound_logger(get_settings().log_level),
)
logger = structlog.get_logger()

VERSION = "1.0.0"


def create_app(
    settings: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """
    transport replaces the network layer of the backend client (tests).
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        backend = BackendClient(
            settings.backend_url,
            timeout=settings.backend_timeout_seconds,
            transport=transport,
        )
        cache = TaskCacheStore(
            create_backend(settings.task_cache_backend, settings.redis_url),
            storage_key=settings.task_cache_storage_key,
        )
        merger = TaskMerger(backend, cache, revalidate_on_idle=settings.revalidate_cache_on_idle)
        app.state.backend = backend
        app.state.merger = merger
        app.state.pollers = PollerRegistry(
            merger,
            interval_seconds=settings.poll_interval_seconds,
            notification_ttl_seconds=settings.notification_ttl_seconds,
        )
        logger.info(
            "portal_starting",
            backend_url=settings.backend_url,
            task_cache_backend=settings.task_cache_backend,
        )
        try:
            yield
        finally:
            try:
                await app.state.pollers.stop_all()
            finally:
                await backend.aclose()
                logger.info("portal_shutting_down")

    app = FastAPI(
        title="Risk Audit Portal",
        description="Investment risk questionnaire and four-stage audit workstation",
        version=VERSION,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # ── CORS (browser UI) ──
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # tighten in production
        allow_methods=["POST", "GET", "PUT", "DELETE", "PATCH"],
        allow_headers=["*"],
    )

    # ── Prometheus metrics ──
    app.mount("/metrics", make_asgi_app())

    # ── Backend failures → envelope ──
    @app.exception_handler(BackendError)
    async def backend_error_handler(request: Request, exc: BackendError):
        logger.warning("backend_error", path=request.url.path, status=exc.status_code, error=exc.message)
        return JSONResponse(status_code=exc.status_code, content=ApiEnvelope.error(exc.message).model_dump())

    # ── Routes ──
    app.include_router(proxy_router)
    app.include_router(customer_router)
    app.include_router(workstation_router)

    @app.get("/", include_in_schema=False)
    async def root():
        return {
            "service": settings.app_name,
            "version": VERSION,
            "docs": "/docs",
            "score": "POST /v1/questionnaire/score",
            "tasks": "GET /v1/workstations/{level}/tasks",
        }

    @app.get("/health", tags=["health"])
    async def health():
        return {"status": "ok", "service": settings.app_name}

    return app


app = create_app()
