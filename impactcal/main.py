"""
ImpactCal — FastAPI Application.

Entry point for the API server.
Run: uvicorn impactcal.main:app --host 0.0.0.0 --port 8010 --reload

  - POST /api/v1/calibration/runs          ← trigger a calibration run
  - POST /api/v1/calibration/validations   ← validation process pushes samples
  - /api/v1/calibration/weights, /suggestions  ← weight governance
  - GET  /health                           ← health check
"""

import logging
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from impactcal.api.routers.calibration import router as calibration_router
from impactcal.api.routers.weights import router as weights_router
from impactcal.calibration.errors import CalibrationError
from impactcal.config import settings
from impactcal.db.engine import close_db, init_db
from impactcal.middleware.error_handler import ErrorHandlerMiddleware, calibration_error_handler
from impactcal.middleware.request_context import RequestContextMiddleware
from impactcal.middleware.tenant import TenantMiddleware

logging.basicConfig(format="%(message)s", level=settings.log_level.upper())

structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer() if settings.log_format == "json"
        else structlog.dev.ConsoleRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan — startup and shutdown."""
    logger.info("impactcal_starting", version=settings.app_version, environment=settings.environment)
    await init_db()
    yield
    await close_db()
    logger.info("impactcal_shutdown")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="ImpactCal",
        description=(
            "# ImpactCal — Impact Calibration & Weight Suggestions\n\n"
            "Compares predicted impact scores with observed behavior, reports "
            "calibration quality and drafts corrected weight vectors.\n\n"
            "## Authentication\n"
            "All endpoints except /health require `Authorization: Bearer <JWT>`.\n"
        ),
        version=settings.app_version,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_tags=[
            {"name": "health", "description": "Liveness check"},
            {"name": "calibration", "description": "Calibration runs, cells, stats, validation intake"},
            {"name": "weights", "description": "Weight versions and suggestion review"},
        ],
    )

    app.add_exception_handler(CalibrationError, calibration_error_handler)

    # ── Middleware (last added = outermost) ───────────────────────────
    app.add_middleware(TenantMiddleware)
    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(ErrorHandlerMiddleware)

    # CORS: outermost, so OPTIONS preflight is handled before auth
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ── Routes ────────────────────────────────────────────────────────
    app.include_router(calibration_router)
    app.include_router(weights_router)

    @app.get("/health", tags=["health"])
    async def health():
        """Liveness check. Does not check the database."""
        return {
            "status": "ok",
            "version": settings.app_version,
            "service": "impactcal",
        }

    return app


# Application instance
app = create_app()
