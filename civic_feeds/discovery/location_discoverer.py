"""Feed discovery for a whole locality.

    locality → domain candidates → website validation → path discovery → feed validation

Organization types are searched concurrently. Within one type, domains are
tried in template order and the search stops at the first live website.
"""

import asyncio
import logging
import time
from typing import Optional

from ..config import Settings, get_settings
from ..errors import InvalidLocalityError
from ..lib.run_context import RunContext
from ..models.locality import Locality
from ..models.source import DiscoveredFeed, OrganizationType
from .city_lookup import CityLookup
from .domain_candidates import DomainCandidateGenerator
from .feed_validator import FeedValidator, OrgContext
from .path_discoverer import FeedPathDiscoverer
from .website_validator import WebsiteValidation, WebsiteValidator

logger = logging.getLogger(__name__)


class LocationFeedDiscoverer:
    """Discover calendar feeds for every organization type of a locality."""

    def __init__(
        self,
        generator: DomainCandidateGenerator,
        website_validator: WebsiteValidator,
        path_discoverer: FeedPathDiscoverer,
        feed_validator: FeedValidator,
        city_lookup: Optional[CityLookup] = None,
        settings: Optional[Settings] = None,
    ):
        self.generator = generator
        self.website_validator = website_validator
        self.path_discoverer = path_discoverer
        self.feed_validator = feed_validator
        self.city_lookup = city_lookup
        self.settings = settings or get_settings()

    async def discover_feeds_for_location(
        self,
        city: str,
        state: str,
        ctx: Optional[RunContext] = None,
    ) -> list[DiscoveredFeed]:
        """All validated feeds for the locality, highest confidence first.

        Raises InvalidLocalityError for malformed input; everything network
        related is best-effort and only shows up as missing results.
        """
        locality = Locality.parse(city, state)
        ctx = ctx or RunContext()
        candidates = self.generator.generate(locality)
        start = time.time()
        logger.info(f"Discovering feeds for {locality}", extra={"stage": "discovery"})

        results = await asyncio.gather(*(
            self._discover_for_type(locality, org_type, [c.domain for c in domains], ctx)
            for org_type, domains in candidates.items()
        ))

        feeds = self._merge(feed for group in results for feed in group)
        logger.info(
            f"Discovery for {locality}: {len(feeds)} feeds",
            extra={"stage": "discovery", "events": len(feeds),
                   "duration_ms": int((time.time() - start) * 1000)},
        )
        return feeds

    async def discover_feeds_for_regions(
        self,
        labels: list[str],
        ctx: Optional[RunContext] = None,
    ) -> list[DiscoveredFeed]:
        """Run discovery for several 'City, ST' labels one after another."""
        ctx = ctx or RunContext()
        feeds: list[DiscoveredFeed] = []
        for i, label in enumerate(labels):
            if i:
                await ctx.sleep(self.settings.region_delay_seconds)
            try:
                locality = Locality.from_label(label)
            except InvalidLocalityError as e:
                logger.warning(f"Skipping region {label!r}: {e}")
                continue
            feeds.extend(await self.discover_feeds_for_location(locality.city, locality.state, ctx))
        return self._merge(feeds)

    async def _discover_for_type(
        self,
        locality: Locality,
        org_type: OrganizationType,
        domains: list[str],
        ctx: RunContext,
    ) -> list[DiscoveredFeed]:
        if org_type == OrganizationType.CITY and self.city_lookup is not None:
            known = self.city_lookup.lookup_website(locality.city, locality.state)
            if known:
                logger.debug(f"City lookup hit for {locality}: {known}")
                domains = [known] + domains

        for domain in domains:
            ctx.raise_if_cancelled()
            website = await self.website_validator.validate(domain, ctx)
            if not website.is_valid:
                continue
            return await self._discover_on_website(locality, org_type, website, ctx)

        logger.debug(f"No live {org_type.value} website for {locality}")
        return []

    async def _discover_on_website(
        self,
        locality: Locality,
        org_type: OrganizationType,
        website: WebsiteValidation,
        ctx: RunContext,
    ) -> list[DiscoveredFeed]:
        base_url = (website.final_url or f"https://{website.domain}").rstrip("/")
        context = OrgContext(locality=locality, organization_type=org_type, website_url=base_url)
        feeds = await self.path_discoverer.discover(base_url, context, website.html or None, ctx)
        logger.info(
            f"{len(feeds)} {org_type.value} feeds on {website.domain}",
            extra={"domain": website.domain, "stage": "path_discovery"},
        )
        return feeds

    @staticmethod
    def _merge(feeds) -> list[DiscoveredFeed]:
        best: dict[str, DiscoveredFeed] = {}
        for feed in feeds:
            key = (feed.feed_url or "").lower()
            if key not in best or feed.confidence > best[key].confidence:
                best[key] = feed
        return sorted(best.values(), key=lambda f: f.confidence, reverse=True)
