"""
Facility Occupancy & Evacuation Service - Main FastAPI Application

Tracks who is inside the facility from the access ledger and runs REAL
evacuations and drills over the people currently present.
"""

import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import structlog

from core.config import get_settings
from api.health import router as health_router
from api.occupancy import router as occupancy_router
from api.evacuations import router as evacuations_router
from api.access import router as access_router
from api.personnel import router as personnel_router
from services.error_handler import EvacuationServiceError


# Get settings early to configure logging appropriately
settings = get_settings()


def configure_logging(debug: bool) -> None:
    """Console output in development, JSON lines otherwise."""
    shared_processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
    ]

    if debug:
        logging.basicConfig(
            level=logging.INFO,
            format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            stream=sys.stdout
        )
        processors = shared_processors + [
            structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S"),
            structlog.dev.ConsoleRenderer(colors=True),
        ]
        logging.getLogger("uvicorn.access").setLevel(logging.INFO)
    else:
        logging.basicConfig(level=logging.WARNING)
        processors = shared_processors + [
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


configure_logging(settings.DEBUG)

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown events."""
    logger.info("Starting Facility Occupancy & Evacuation Service",
                debug_mode=settings.DEBUG,
                host=settings.HOST,
                port=settings.PORT)

    if settings.DEBUG:
        logger.info("Configuration loaded",
                    allowed_origins=settings.allowed_origins_list,
                    storage_backend=settings.STORAGE_BACKEND,
                    local_storage=settings.LOCAL_STORAGE_PATH,
                    ledger_table=settings.LEDGER_TABLE,
                    notifications_enabled=settings.NOTIFY_EVACUATIONS)

    yield

    logger.info("Shutting down Facility Occupancy & Evacuation Service")


def create_application() -> FastAPI:
    """Create and configure the FastAPI application."""

    app = FastAPI(
        title="Facility Occupancy & Evacuation Service",
        description="Occupancy reconciliation over an access ledger with real and simulated evacuations",
        version="1.0.0",
        docs_url="/docs" if settings.DEBUG else None,
        redoc_url="/redoc" if settings.DEBUG else None,
        lifespan=lifespan
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    logger.info("Registering API routes")
    app.include_router(health_router, prefix="/api", tags=["health"])
    app.include_router(occupancy_router, prefix="/api", tags=["occupancy"])
    app.include_router(evacuations_router, prefix="/api", tags=["evacuations"])
    app.include_router(access_router, prefix="/api", tags=["access"])
    app.include_router(personnel_router, prefix="/api", tags=["personnel"])

    @app.exception_handler(EvacuationServiceError)
    async def service_exception_handler(request, exc: EvacuationServiceError):
        """Domain errors that escaped a router."""
        logger.error("Service error", error_code=exc.error_code, error=str(exc), path=request.url.path)
        return JSONResponse(
            status_code=500,
            content={"error": exc.error_code, "detail": str(exc)}
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request, exc):
        """Global exception handler with structured logging."""
        logger.error(
            "Unhandled exception",
            exc_info=exc,
            path=request.url.path,
            method=request.method,
            client_ip=request.client.host if request.client else "unknown"
        )
        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal server error",
                "detail": str(exc) if settings.DEBUG else "An unexpected error occurred"
            }
        )

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "service": "Facility Occupancy & Evacuation Service",
            "version": "1.0.0",
            "status": "operational",
            "features": [
                "occupancy_reconciliation",
                "real_evacuation",
                "evacuation_drills",
                "audit_trail",
                "access_registration",
                "personnel_administration"
            ]
        }

    return app


# Create the application instance
app = create_application()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level="info" if settings.DEBUG else "warning",
        access_log=True
    )
