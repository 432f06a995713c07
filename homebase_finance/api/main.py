"""FastAPI application factory"""

from fastapi import FastAPI
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import Response

from homebase_finance.api.errors import http_exception_with_background
from homebase_finance.api.middleware import RequestIDMiddleware, MetricsMiddleware
from homebase_finance.api.v1 import webhooks, providers, referrals, reports
from homebase_finance.infrastructure.observability.logging import setup_logging
from homebase_finance.config import settings

# Setup structured logging
setup_logging(settings.log_level)


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="HomeBase Finance Core",
        description="Subscription billing, transaction fees, payouts and referral credit ledger",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    app.add_exception_handler(StarletteHTTPException, http_exception_with_background)

    # Health check endpoint
    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name}

    # Prometheus metrics endpoint
    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # Register API routers
    app.include_router(webhooks.router, prefix="/v1", tags=["webhooks"])
    app.include_router(providers.router, prefix="/v1", tags=["providers"])
    app.include_router(referrals.router, prefix="/v1", tags=["referrals"])
    app.include_router(reports.router, prefix="/v1", tags=["reports"])

    return app


app = create_app()
