"""
Shipment Intelligence Core — Main Application

FastAPI application entry point.
"""

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from datetime import datetime, timezone
import structlog

from config import settings, check_connection, configure_logging, create_supabase_client, get_rule_table
from exceptions import AppError, StoreConnectionError
from services.shipment_store import ShipmentStore

configure_logging(settings)

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Startup: Build the store, load the workflow rules
    Shutdown: Drop the store
    """
    # Startup
    logger.info(
        "application_starting",
        environment=settings.environment,
        debug=settings.debug
    )

    rules = get_rule_table()
    logger.info("workflow_rules_ready", version=rules.version, states=len(rules.states()))

    if getattr(app.state, "store", None) is None:
        try:
            app.state.store = ShipmentStore(create_supabase_client(settings))
        except StoreConnectionError as e:
            app.state.store = None
            logger.error("store_unavailable", error=e.message)

    if app.state.store is not None:
        db_status = check_connection(app.state.store.db)
        if db_status["status"] == "healthy":
            logger.info(
                "database_connected",
                shipments=db_status["shipments_count"],
                documents=db_status["documents_count"]
            )
        else:
            logger.error("database_connection_failed", error=db_status.get("error"))

    yield

    # Shutdown
    app.state.store = None
    logger.info("application_shutting_down")


# Create FastAPI app
app = FastAPI(
    title="Shipment Intelligence Core",
    description="Document-to-shipment resolution, workflow state tracking and follow-up prioritization",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)


# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
        "http://localhost:5173",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ===================
# ROUTES
# ===================

@app.get("/health")
async def health_check(request: Request):
    """
    Health check endpoint.

    Returns:
        Basic health status, database connection state and rules version
    """
    store = getattr(request.app.state, "store", None)
    if store is None:
        db_status = {"status": "unhealthy", "error": "store not configured"}
    else:
        db_status = check_connection(store.db)

    return {
        "status": "healthy" if db_status["status"] == "healthy" else "degraded",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "environment": settings.environment,
        "rules_version": get_rule_table().version,
        "database": db_status
    }


@app.get("/")
async def root():
    """
    Root endpoint.

    Returns:
        API information and available endpoints
    """
    return {
        "name": "Shipment Intelligence Core API",
        "version": "0.1.0",
        "docs": "/docs" if settings.debug else "Disabled in production",
        "health": "/health",
        "endpoints": {
            "shipments": "/api/shipments",
            "documents": "/api/documents"
        }
    }


# ===================
# ERROR HANDLERS
# ===================

@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    """Errors raised outside route bodies (e.g. in dependencies)."""
    logger.warning("app_error", path=request.url.path, code=exc.code)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """
    Global exception handler.

    Catches unhandled exceptions and returns standard error format.
    """
    logger.error(
        "unhandled_exception",
        path=request.url.path,
        method=request.method,
        error=str(exc),
        error_type=type(exc).__name__
    )

    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred",
                "details": str(exc) if settings.debug else None,
                "timestamp": datetime.now(timezone.utc).isoformat()
            }
        }
    )


# ===================
# INCLUDE ROUTERS
# ===================
from routes.shipments import router as shipments_router
from routes.documents import router as documents_router

app.include_router(shipments_router)  # Prefix already in router
app.include_router(documents_router)  # Prefix already in router


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug
    )
