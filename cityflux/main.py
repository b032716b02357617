"""
CityFlux Alerts - FastAPI Application Entry Point

Backend for the CityFlux civic-reporting app: reacts to report, status and
parking events, keeps per-area congestion levels in the Realtime Database and
fans out push notifications by role.

DESIGN PRINCIPLES:
- Handlers are re-runnable; a 5xx response asks the event source to retry
- Rejected reports and missing records are normal outcomes, not errors
- Congestion cools down on a timer, never by deletion
"""

import logging
import traceback
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from cityflux.core.logging_config import setup_logging
from cityflux.core.settings import settings
from cityflux.config.firebase import initialize_firebase
from cityflux.routes import events, health, traffic
from cityflux.services.decay_scheduler import DecayScheduler

setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


# Initialize FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Congestion and alerting pipeline for citizen traffic and parking reports",
    debug=settings.DEBUG
)

_decay_scheduler = None


# Global exception handler to catch ALL exceptions
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Catch all unhandled exceptions and log them with full traceback."""
    logger.error(
        f"Unhandled exception on {request.method} {request.url.path}\n{traceback.format_exc()}"
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": f"Internal server error: {str(exc)}"}
    )


# Pydantic validation error handler
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed event payloads are logged and rejected with 422 (not retried)."""
    logger.warning(f"Validation error on {request.method} {request.url.path}: {exc.errors()}")
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": exc.errors()}
    )


# Application lifecycle events
@app.on_event("startup")
async def startup_event():
    """
    Initialize Firebase and start the decay sweep timer.
    """
    global _decay_scheduler
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")

    try:
        initialize_firebase()
    except Exception as e:
        logger.warning(f"Firebase initialization failed: {e}")
        logger.warning("The app will start but database operations may fail.")
        return

    if not settings.DECAY_SWEEP_ENABLED:
        logger.info("Decay sweep timer disabled; expecting POST /events/congestion/decay")
        return

    from cityflux.services.event_handlers import get_event_handlers

    try:
        handlers = get_event_handlers()
    except RuntimeError as e:
        logger.warning(f"Decay sweep timer not started: {e}")
        return

    _decay_scheduler = DecayScheduler(
        handlers.run_decay_sweep,
        interval_seconds=settings.DECAY_SWEEP_INTERVAL_MINUTES * 60
    )
    _decay_scheduler.start()


@app.on_event("shutdown")
async def shutdown_event():
    """
    Cleanup on application shutdown.
    """
    if _decay_scheduler is not None:
        await _decay_scheduler.stop()
    logger.info(f"Shutting down {settings.APP_NAME}")


# Include routers
app.include_router(health.router)
app.include_router(events.router)
app.include_router(traffic.router)


# Root endpoint
@app.get("/")
async def root():
    """
    Root endpoint - API information.
    """
    return {
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "running",
        "docs": "/docs",
        "health": "/health",
        "traffic": "/traffic"
    }
