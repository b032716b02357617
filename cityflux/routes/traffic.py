"""
Traffic routes - read-only view of the congestion buckets.
"""

import asyncio
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status

from cityflux.models.traffic import CongestionBucket
from cityflux.routes.events import require_event_handlers
from cityflux.services.event_handlers import EventHandlers

router = APIRouter(prefix="/traffic", tags=["Traffic"])


@router.get("", response_model=List[CongestionBucket])
async def list_buckets(handlers: EventHandlers = Depends(require_event_handlers)):
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, handlers.congestion.list_buckets)


@router.get("/{bucket_id}", response_model=CongestionBucket)
async def get_bucket(bucket_id: str, handlers: EventHandlers = Depends(require_event_handlers)):
    loop = asyncio.get_running_loop()
    bucket = await loop.run_in_executor(None, handlers.congestion.get_bucket, bucket_id)
    if bucket is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Bucket {bucket_id} not found")
    return bucket
