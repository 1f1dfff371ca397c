"""Event collection endpoints."""

from fastapi import APIRouter, Depends, HTTPException
from typing import Optional
import logging

from ..errors import RunCancelled
from ..lib.run_context import RunContext
from ..service import CalendarFeedService, get_service

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("")
async def collect_all(
    store: bool = True,
    deadline_seconds: Optional[float] = None,
    service: CalendarFeedService = Depends(get_service),
):
    """Collect from every active source (and store new events unless store=false)."""
    ctx = RunContext(deadline_seconds)
    try:
        if store:
            result = await service.collect_and_store(ctx=ctx)
            return {"collected": result.collected, "stored": result.stored, "skipped": result.skipped}
        events = await service.collect_from_all_sources(ctx)
    except RunCancelled as e:
        raise HTTPException(status_code=504, detail=f"Collection aborted: {e}")
    return {"collected": len(events), "events": [e.to_record() for e in events]}


@router.post("/{source_id}")
async def collect_source(
    source_id: str,
    store: bool = False,
    deadline_seconds: Optional[float] = None,
    service: CalendarFeedService = Depends(get_service),
):
    """Collect from one registered source, active or not."""
    source = service.registry.get(source_id)
    if source is None:
        raise HTTPException(status_code=404, detail=f"Unknown source: {source_id}")

    ctx = RunContext(deadline_seconds)
    try:
        if store:
            result = await service.collect_and_store(source, ctx)
            return {"collected": result.collected, "stored": result.stored, "skipped": result.skipped}
        events = await service.collect_from_source(source, ctx)
    except RunCancelled as e:
        raise HTTPException(status_code=504, detail=f"Collection aborted: {e}")
    return {"collected": len(events), "events": [e.to_record() for e in events]}
