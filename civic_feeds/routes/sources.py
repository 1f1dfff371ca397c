"""Calendar source registry endpoints."""

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from typing import Optional
import logging

from ..errors import InvalidLocalityError
from ..models.locality import Locality
from ..models.source import CalendarSource, FeedType, OrganizationType
from ..service import CalendarFeedService, get_service

router = APIRouter()
logger = logging.getLogger(__name__)


class SourceRequest(BaseModel):
    """A calendar source to register."""
    id: str
    name: str
    city: str
    state: str
    organization_type: OrganizationType = OrganizationType.CITY
    feed_type: FeedType
    feed_url: Optional[str] = None
    website_url: Optional[str] = None
    is_active: bool = True


@router.get("")
async def list_sources(active_only: bool = False, service: CalendarFeedService = Depends(get_service)):
    sources = service.registry.active() if active_only else service.registry.all()
    return {"sources": [s.to_dict() for s in sources], "count": len(sources)}


@router.post("", status_code=201)
async def add_source(request: SourceRequest, service: CalendarFeedService = Depends(get_service)):
    """Register a source; 409 if its id or feed URL is already known."""
    if not request.feed_url and not request.website_url:
        raise HTTPException(status_code=400, detail="feed_url or website_url is required")
    try:
        locality = Locality.parse(request.city, request.state)
    except InvalidLocalityError as e:
        raise HTTPException(status_code=400, detail=str(e))

    source = CalendarSource(
        id=request.id,
        name=request.name,
        city=locality.city,
        state=locality.state,
        organization_type=request.organization_type,
        feed_type=request.feed_type,
        feed_url=request.feed_url,
        website_url=request.website_url,
        is_active=request.is_active,
    )
    if not await service.registry.add(source):
        raise HTTPException(status_code=409, detail="Calendar source already exists")
    return source.to_dict()


@router.get("/priorities")
async def feed_priorities(service: CalendarFeedService = Depends(get_service)):
    return {"domains": service.feed_priorities()}


@router.post("/reprioritize")
async def reprioritize(service: CalendarFeedService = Depends(get_service)):
    """Live-test every multi-feed domain and keep its best working feed active."""
    outcome = await service.reprioritize_all_feeds()
    return {"status": "ok", "domains": outcome}


@router.post("/{source_id}/toggle")
async def toggle_source(source_id: str, service: CalendarFeedService = Depends(get_service)):
    is_active = await service.toggle_source(source_id)
    if is_active is None:
        raise HTTPException(status_code=404, detail=f"Unknown source: {source_id}")
    return {"id": source_id, "is_active": is_active}


@router.delete("/{source_id}")
async def remove_source(source_id: str, service: CalendarFeedService = Depends(get_service)):
    if not await service.registry.remove(source_id):
        raise HTTPException(status_code=404, detail=f"Unknown source: {source_id}")
    return {"id": source_id, "removed": True}


@router.get("/state/{state}")
async def sources_by_state(state: str, service: CalendarFeedService = Depends(get_service)):
    sources = service.registry.by_state(state)
    return {"sources": [s.to_dict() for s in sources], "count": len(sources)}


@router.get("/type/{feed_type}")
async def sources_by_type(feed_type: FeedType, service: CalendarFeedService = Depends(get_service)):
    sources = service.registry.by_type(feed_type)
    return {"sources": [s.to_dict() for s in sources], "count": len(sources)}
