"""Calendar source and discovered-feed models."""

from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from urllib.parse import urlparse


class OrganizationType(str, Enum):
    CITY = "city"
    SCHOOL = "school"
    CHAMBER = "chamber"
    LIBRARY = "library"
    PARKS = "parks"


class FeedType(str, Enum):
    ICAL = "ical"
    WEBCAL = "webcal"
    RSS = "rss"
    JSON = "json"
    HTML = "html"


# Higher wins. Used only by the registry when choosing one feed per organization.
FEED_TYPE_PRIORITY = {
    FeedType.ICAL: 5,
    FeedType.WEBCAL: 4,
    FeedType.RSS: 3,
    FeedType.JSON: 2,
    FeedType.HTML: 1,
}

ORGANIZATION_NAMES = {
    OrganizationType.CITY: "City Government",
    OrganizationType.SCHOOL: "School District",
    OrganizationType.CHAMBER: "Chamber of Commerce",
    OrganizationType.LIBRARY: "Public Library",
    OrganizationType.PARKS: "Parks & Recreation",
}


def feed_type_priority(feed_type) -> int:
    try:
        return FEED_TYPE_PRIORITY[FeedType(feed_type)]
    except ValueError:
        return 0


def host_of(url: Optional[str]) -> str:
    if not url:
        return ""
    return (urlparse(url).hostname or "").lower()


@dataclass
class CalendarSource:
    """An organization's calendar endpoint."""
    id: str
    name: str
    city: str
    state: str
    organization_type: OrganizationType
    feed_type: FeedType
    feed_url: Optional[str] = None
    website_url: Optional[str] = None
    is_active: bool = True
    last_sync: Optional[datetime] = None

    @property
    def domain(self) -> str:
        """Owning domain: feed host, falling back to the website host."""
        return host_of(self.feed_url) or host_of(self.website_url)

    @property
    def cluster_key(self) -> tuple:
        """(city, state, organization type); sources sharing it compete for one active slot."""
        return (self.city.strip().lower(), self.state.strip().upper(), OrganizationType(self.organization_type))

    @property
    def priority(self) -> int:
        return feed_type_priority(self.feed_type)

    @property
    def location_label(self) -> str:
        return f"{self.city}, {self.state}"

    def to_dict(self) -> dict:
        data = asdict(self)
        data["organization_type"] = OrganizationType(self.organization_type).value
        data["feed_type"] = FeedType(self.feed_type).value
        data["last_sync"] = self.last_sync.isoformat() if self.last_sync else None
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "CalendarSource":
        last_sync = data.get("last_sync")
        if isinstance(last_sync, str):
            last_sync = datetime.fromisoformat(last_sync)
        return cls(
            id=data["id"],
            name=data["name"],
            city=data["city"],
            state=data["state"],
            organization_type=OrganizationType(data.get("organization_type", "city")),
            feed_type=FeedType(data["feed_type"]),
            feed_url=data.get("feed_url"),
            website_url=data.get("website_url"),
            is_active=bool(data.get("is_active", True)),
            last_sync=last_sync,
        )


@dataclass
class DiscoveredFeed:
    """An unconfirmed feed candidate produced by discovery."""
    source: CalendarSource
    confidence: float
    last_checked: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def feed_url(self) -> Optional[str]:
        return self.source.feed_url

    @property
    def feed_type(self) -> FeedType:
        return FeedType(self.source.feed_type)

    def to_dict(self) -> dict:
        return {
            "source": self.source.to_dict(),
            "confidence": round(self.confidence, 4),
            "last_checked": self.last_checked.isoformat(),
        }
