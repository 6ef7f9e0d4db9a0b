"""
Report Workflow Service - FastAPI Application Entry Point

Lifecycle engine for citizen-submitted reports: role-gated status
transitions, an append-only audit trail and per-transition notifications.

DESIGN PRINCIPLES:
- One entry point for every status change (WorkflowService)
- Denials are values, mapped to HTTP codes at the route layer
- Report update and audit entry commit together; notifications never
  silently disappear (dead letters)
"""

import logging
from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from app.core.errors import DispatchFailure, StorageFailure, UnknownNotificationType
from app.core.observability import (
    REQUEST_ID_HEADER,
    install_request_id_filter,
    new_request_id,
    reset_request_id,
    set_request_id,
)
from app.core.settings import settings
from app.routes import admin, audit, health, notifications, reports
from app.services.report_store import get_report_store

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] [%(request_id)s] %(message)s",
)
install_request_id_filter()
logger = logging.getLogger(__name__)


# Initialize FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Report lifecycle workflow engine: transitions, audit trail and notifications",
    debug=settings.DEBUG
)


@app.exception_handler(StorageFailure)
async def storage_failure_handler(request: Request, exc: StorageFailure):
    """Store unavailable: nothing was committed, the caller may retry."""
    logger.error(f"🔥 Storage failure on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": {"reason": "StorageFailure", "message": str(exc)}}
    )


@app.exception_handler(DispatchFailure)
async def dispatch_failure_handler(request: Request, exc: DispatchFailure):
    """
    The transition is committed but some notifications were dead-lettered.
    The body carries the committed report so clients can refresh their state.
    """
    logger.error(f"🔥 Dispatch failure on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_502_BAD_GATEWAY,
        content=jsonable_encoder({
            "detail": {"reason": "DispatchFailure", "message": str(exc)},
            "committed": True,
            "report": exc.report,
            "dead_letters": exc.dead_letters,
        })
    )


@app.exception_handler(UnknownNotificationType)
async def unknown_notification_type_handler(request: Request, exc: UnknownNotificationType):
    logger.error(f"🔥 {exc} on {request.url.path}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": {"reason": "UnknownNotificationType", "message": str(exc)}}
    )


# Global exception handler to catch ALL exceptions
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Catch all unhandled exceptions and log them with full traceback."""
    logger.error(
        f"🔥 Unhandled exception on {request.method} {request.url.path}: {exc}",
        exc_info=exc,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": f"Internal server error: {str(exc)}"}
    )


# Pydantic validation error handler
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Catch Pydantic validation errors and log them."""
    logger.warning(f"🔥 Validation error on {request.method} {request.url.path}: {exc.errors()}")
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=jsonable_encoder({"detail": exc.errors(), "body": exc.body})
    )


# Request id: taken from X-Request-Id when the caller sends one, echoed back
# on the response and stamped on every log line written while serving it
@app.middleware("http")
async def add_request_id(request: Request, call_next):
    request_id = request.headers.get(REQUEST_ID_HEADER, "").strip() or new_request_id()
    request.state.request_id = request_id
    token = set_request_id(request_id)
    try:
        response = await call_next(request)
    finally:
        reset_request_id(token)
    response.headers[REQUEST_ID_HEADER] = request_id
    return response


# CORS: explicit origins from settings, never "*"
app.add_middleware(
    CORSMiddleware,
    allow_origins=[origin.strip() for origin in settings.CORS_ORIGINS.split(",") if origin.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Application lifecycle events
@app.on_event("startup")
async def startup_event():
    """
    Initialize the report store on application startup.
    """
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")
    try:
        store = get_report_store()
        logger.info(f"[STARTUP] Report store ready: {type(store).__name__}")
    except RuntimeError as e:
        logger.warning(f"Warning: report store initialization failed: {e}")
        logger.warning("   The app will start but store operations may fail.")


@app.on_event("shutdown")
async def shutdown_event():
    logger.info(f"Shutting down {settings.APP_NAME}")


# Include routers
app.include_router(health.router)
app.include_router(reports.router)
app.include_router(audit.router)
app.include_router(notifications.router)
app.include_router(admin.router)


@app.get("/")
async def root():
    return {
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "docs": "/docs",
    }
