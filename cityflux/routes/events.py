"""
Event endpoints - webhook adapter between the database triggers and the handlers.

Whatever delivers the events (Eventarc, Pub/Sub push, a polling bridge) POSTs
the document id and snapshots here. A 5xx response means "retry this event";
rejected reports and no-op outcomes are 200.
"""

import asyncio
import logging

from fastapi import APIRouter, Depends, HTTPException, status

from cityflux.models.events import HandlerOutcome, ParkingChangeEvent, ReportCreatedEvent, ReportUpdatedEvent
from cityflux.models.traffic import DecaySummary
from cityflux.services.event_handlers import EventHandlers, get_event_handlers

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/events", tags=["Events"])


def require_event_handlers() -> EventHandlers:
    """Handlers dependency; an uninitialized Firebase app is a retryable 503."""
    try:
        return get_event_handlers()
    except RuntimeError as e:
        logger.error(f"Event handlers unavailable: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"Backend not ready, retry later: {e}"
        )


async def _run(handler, *args):
    # Firebase SDK calls are blocking; keep them off the event loop
    loop = asyncio.get_running_loop()
    try:
        return await loop.run_in_executor(None, handler, *args)
    except HTTPException:
        raise
    except Exception as e:
        name = getattr(handler, "__name__", "handler")
        logger.error(f"{name} failed: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{name} failed, retry later: {e}"
        )


@router.post("/reports/created", response_model=HandlerOutcome)
async def report_created(event: ReportCreatedEvent, handlers: EventHandlers = Depends(require_event_handlers)):
    """Fires once per new reports/{id} document."""
    return await _run(handlers.on_report_created, event)


@router.post("/reports/updated", response_model=HandlerOutcome)
async def report_updated(event: ReportUpdatedEvent, handlers: EventHandlers = Depends(require_event_handlers)):
    """Fires on every update to reports/{id}; notifies only on status changes."""
    return await _run(handlers.on_report_status_changed, event)


@router.post("/parking-live/changed", response_model=HandlerOutcome)
async def parking_live_changed(event: ParkingChangeEvent, handlers: EventHandlers = Depends(require_event_handlers)):
    """Fires on every write to parking_live/{id}."""
    return await _run(handlers.on_parking_occupancy_changed, event)


@router.post("/parking/written", response_model=HandlerOutcome)
async def parking_written(event: ParkingChangeEvent, handlers: EventHandlers = Depends(require_event_handlers)):
    """Fires on every write to parking/{id}; after=null means the document was deleted."""
    return await _run(handlers.on_parking_written, event)


@router.post("/congestion/decay", response_model=DecaySummary)
async def congestion_decay(handlers: EventHandlers = Depends(require_event_handlers)):
    """Run one decay sweep now (for external schedulers)."""
    return await _run(handlers.run_decay_sweep)
