from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator
from uuid import uuid4

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.openapi.utils import get_openapi
from starlette.exceptions import HTTPException as StarletteHTTPException

from amlguard.apps.api.errors import (
    amlguard_exception_handler,
    http_exception_handler,
    starlette_http_exception_handler,
    unhandled_exception_handler,
    validation_exception_handler,
)
from amlguard.apps.api.response import API_PREFIX, API_VERSION
from amlguard.apps.api.routes.audit_logs import router as audit_logs_router
from amlguard.apps.api.routes.audit_trail import router as audit_trail_router
from amlguard.apps.api.routes.auth import router as auth_router
from amlguard.apps.api.routes.dashboard import router as dashboard_router
from amlguard.apps.api.routes.health import router as health_router
from amlguard.apps.api.routes.inspections import router as inspections_router
from amlguard.apps.api.routes.institutions import router as institutions_router
from amlguard.apps.api.routes.ops import router as ops_router
from amlguard.apps.api.routes.registry import router as registry_router
from amlguard.apps.api.routes.risk_assessment import router as risk_assessment_router
from amlguard.apps.api.routes.risk_profiles import router as risk_profiles_router
from amlguard.apps.api.routes.supervisors import router as supervisors_router
from amlguard.apps.api.routes.surveillance import router as surveillance_router
from amlguard.core.config import Settings
from amlguard.core.errors import AmlGuardError
from amlguard.core.logging import configure_logging
from amlguard.persistence.store import Store
from amlguard.services.context import AppContext
from amlguard.services.telemetry import record_request


logger = logging.getLogger(__name__)

# Requests under these paths are never audited.
_AUDIT_EXEMPT_PREFIXES = (
    f"{API_PREFIX}/health",
    f"{API_PREFIX}/openapi.json",
    f"{API_PREFIX}/docs",
)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    context: AppContext = app.state.context
    context.session_monitor.start()
    try:
        yield
    finally:
        await context.aclose()


def create_app(settings: Settings | None = None, *, store: Store | None = None) -> FastAPI:
    configure_logging(settings.log_level if settings else None)
    context = AppContext.build(settings, store=store)
    app = FastAPI(
        title="AMLGuard Supervision API",
        version=API_VERSION,
        lifespan=lifespan,
        openapi_url=f"{API_PREFIX}/openapi.json",
        docs_url=f"{API_PREFIX}/docs",
        redoc_url=None,
    )
    # The context is built eagerly so in-process test clients work without lifespan events.
    app.state.context = context

    @app.middleware("http")
    async def request_context_middleware(request: Request, call_next):  # type: ignore[override]
        # Preserve incoming request IDs or assign a new one for traceability.
        request_id = request.headers.get("X-Request-Id") or str(uuid4())
        request.state.request_id = request_id
        start = time.monotonic()
        response = await call_next(request)
        latency_ms = (time.monotonic() - start) * 1000.0
        record_request(
            path=request.url.path,
            method=request.method,
            status_code=response.status_code,
            latency_ms=latency_ms,
        )
        # Only requests that resolved a principal are audited; enqueue never blocks.
        principal = getattr(request.state, "principal", None)
        path = request.url.path
        if principal is not None and path.startswith(API_PREFIX) and not path.startswith(_AUDIT_EXEMPT_PREFIXES):
            context.audit.enqueue(user_id=principal.user_id, path=path, method=request.method)
        response.headers.setdefault("X-Request-Id", request_id)
        return response

    @app.exception_handler(AmlGuardError)
    async def _amlguard_exception_handler(request: Request, exc: AmlGuardError):
        return await amlguard_exception_handler(request, exc)

    @app.exception_handler(StarletteHTTPException)
    async def _starlette_http_exception_handler(request: Request, exc: StarletteHTTPException):
        return await starlette_http_exception_handler(request, exc)

    @app.exception_handler(Exception)
    async def _unhandled_exception_handler(request: Request, exc: Exception):
        return await unhandled_exception_handler(request, exc)

    @app.exception_handler(RequestValidationError)
    async def _validation_exception_handler(request: Request, exc: RequestValidationError):
        return await validation_exception_handler(request, exc)

    @app.exception_handler(HTTPException)
    async def _http_exception_handler(request: Request, exc: HTTPException):
        return await http_exception_handler(request, exc)

    # Health and login stay public; every other router resolves a principal.
    app.include_router(health_router, prefix=API_PREFIX)
    app.include_router(auth_router, prefix=API_PREFIX)
    app.include_router(institutions_router, prefix=API_PREFIX)
    app.include_router(risk_profiles_router, prefix=API_PREFIX)
    app.include_router(risk_assessment_router, prefix=API_PREFIX)
    app.include_router(surveillance_router, prefix=API_PREFIX)
    app.include_router(inspections_router, prefix=API_PREFIX)
    app.include_router(dashboard_router, prefix=API_PREFIX)
    app.include_router(audit_logs_router, prefix=API_PREFIX)
    # Client-held aggregates exposed for the supervisor and administrator dashboards.
    app.include_router(supervisors_router, prefix=API_PREFIX)
    app.include_router(registry_router, prefix=API_PREFIX)
    app.include_router(audit_trail_router, prefix=API_PREFIX)
    app.include_router(ops_router, prefix=API_PREFIX)

    def custom_openapi() -> dict:
        # Inject bearer auth metadata into the OpenAPI schema.
        if app.openapi_schema:
            return app.openapi_schema
        schema = get_openapi(
            title="AMLGuard Supervision API",
            version=API_VERSION,
            routes=app.routes,
        )
        schema["servers"] = [{"url": f"http://localhost:{context.settings.port}"}]
        components = schema.setdefault("components", {})
        security_schemes = components.setdefault("securitySchemes", {})
        security_schemes["BearerAuth"] = {"type": "http", "scheme": "bearer"}
        public_paths = {f"{API_PREFIX}/health", f"{API_PREFIX}/auth/login"}
        for path, operations in schema.get("paths", {}).items():
            if path in public_paths:
                continue
            for operation in operations.values():
                operation.setdefault("security", [{"BearerAuth": []}])
        app.openapi_schema = schema
        return app.openapi_schema

    app.openapi = custom_openapi

    return app


app = create_app()
