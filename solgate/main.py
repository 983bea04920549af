"""
Main FastAPI application for the solgate access gateway.
Serves sessions, payments, admin sweeps, health and metrics.
"""
import logging
import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from solgate.api.routes import admin, health, payments, sessions
from solgate.core.config import Settings, settings as default_settings
from solgate.core.logging import configure_logging
from solgate.services.runtime import Services, build_services
from solgate.utils.metrics import router as metrics_router

logger = logging.getLogger("solgate.http")


def create_app(config: Settings | None = None, services: Services | None = None) -> FastAPI:
    config = config or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        runtime = services or build_services(config)
        app.state.services = runtime
        await runtime.start()
        logger.info("app_started", extra={"status": config.app_env})
        try:
            yield
        finally:
            await runtime.stop()
            logger.info("app_stopped")

    app = FastAPI(
        title="Solgate API",
        description="Pay-per-session access gateway with custodial deposit accounts",
        version="1.0.0",
        lifespan=lifespan,
    )

    # CORS
    origins = [o.strip() for o in config.cors_origins.split(",") if o.strip()]
    if not origins:
        origins = ["http://localhost:3000", "http://127.0.0.1:3000"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def request_logging(request: Request, call_next):
        request_id = request.headers.get(config.request_id_header) or uuid.uuid4().hex
        start = time.perf_counter()
        response = await call_next(request)
        response.headers[config.request_id_header] = request_id
        logger.info(
            "http_request",
            extra={
                "request_id": request_id,
                "path": request.url.path,
                "method": request.method,
                "status_code": response.status_code,
                "latency_ms": int((time.perf_counter() - start) * 1000),
            },
        )
        return response

    # Routers
    app.include_router(health.router, tags=["health"])
    app.include_router(sessions.router)
    app.include_router(payments.router)
    app.include_router(admin.router)
    app.include_router(metrics_router)
    return app


configure_logging()
app = create_app()
