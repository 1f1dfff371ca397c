"""Feed discovery endpoints."""

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from typing import Optional
import logging

from ..errors import InvalidLocalityError, RunCancelled
from ..lib.run_context import RunContext
from ..service import CalendarFeedService, get_service

router = APIRouter()
logger = logging.getLogger(__name__)


class DiscoverRequest(BaseModel):
    """Discover feeds for one locality."""
    city: str
    state: str
    accept: bool = False  # Register every discovered feed right away
    deadline_seconds: Optional[float] = Field(default=None, gt=0)


class RegionsRequest(BaseModel):
    """Discover feeds for several 'City, ST' labels."""
    regions: list[str] = Field(min_length=1)
    accept: bool = False
    deadline_seconds: Optional[float] = Field(default=None, gt=0)


async def _respond(service: CalendarFeedService, feeds, accept: bool, ctx: RunContext) -> dict:
    accepted = []
    if accept:
        for feed in feeds:
            if await service.accept_discovered_feed(feed, ctx):
                accepted.append(feed.source.id)
    return {
        "feeds": [feed.to_dict() for feed in feeds],
        "count": len(feeds),
        "accepted": accepted,
    }


@router.post("/feeds")
async def discover_feeds(request: DiscoverRequest, service: CalendarFeedService = Depends(get_service)):
    """Run discovery for a city; 400 on an invalid city/state."""
    ctx = RunContext(request.deadline_seconds)
    try:
        feeds = await service.discover_feeds_for_location(request.city, request.state, ctx)
        return await _respond(service, feeds, request.accept, ctx)
    except InvalidLocalityError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except RunCancelled as e:
        raise HTTPException(status_code=504, detail=f"Discovery aborted: {e}")


@router.post("/regions")
async def discover_regions(request: RegionsRequest, service: CalendarFeedService = Depends(get_service)):
    """Run discovery for several localities one after another."""
    ctx = RunContext(request.deadline_seconds)
    try:
        feeds = await service.discover_feeds_for_regions(request.regions, ctx)
        return await _respond(service, feeds, request.accept, ctx)
    except RunCancelled as e:
        raise HTTPException(status_code=504, detail=f"Discovery aborted: {e}")
