"""Feed discovery: domains, websites, feed paths and feed validation."""

from .city_lookup import CityLookup, CsvCityLookup, StaticCityLookup
from .domain_candidates import DOMAIN_TEMPLATES, DomainCandidate, DomainCandidateGenerator
from .feed_validator import FeedValidator, OrgContext, feed_priority_score, is_gov_url
from .location_discoverer import LocationFeedDiscoverer
from .path_discoverer import CALENDAR_WIDGETS, FeedPathDiscoverer, is_subscription_page
from .website_validator import WebsiteStatus, WebsiteValidation, WebsiteValidator

__all__ = [
    "CityLookup",
    "CsvCityLookup",
    "StaticCityLookup",
    "DOMAIN_TEMPLATES",
    "DomainCandidate",
    "DomainCandidateGenerator",
    "FeedValidator",
    "OrgContext",
    "feed_priority_score",
    "is_gov_url",
    "LocationFeedDiscoverer",
    "CALENDAR_WIDGETS",
    "FeedPathDiscoverer",
    "is_subscription_page",
    "WebsiteStatus",
    "WebsiteValidation",
    "WebsiteValidator",
]
