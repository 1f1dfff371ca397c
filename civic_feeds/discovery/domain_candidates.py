"""Domain guesses for the organizations of a locality.

Templates are tried in declaration order. {city} is the city slug
("springfield"), {state} the lowercase state code ("il"). Multi-word cities
are tried again with their initials ("San Jacinto" → "sj").
"""

from dataclasses import dataclass
import re
from typing import Optional

from ..errors import InvalidLocalityError
from ..models.locality import Locality
from ..models.source import OrganizationType


DOMAIN_TEMPLATES: dict[OrganizationType, list[str]] = {
    OrganizationType.CITY: [
        "{city}.gov",
        "www.{city}.gov",
        "{city}{state}.gov",
        "www.{city}{state}.gov",
        "cityof{city}.gov",
        "www.cityof{city}.gov",
        "city{city}.gov",
        "{city}.{state}.gov",
        "www.{city}.{state}.gov",
        "{city}.{state}.us",
        "www.{city}.{state}.us",
        "ci.{city}.{state}.us",
        "{city}.us",
        "www.{city}.us",
        "cityof{city}.us",
        "cityof{city}.org",
        "www.cityof{city}.org",
        "{city}{state}.us",
    ],
    OrganizationType.SCHOOL: [
        "{city}.k12.{state}.us",
        "{city}schools.org",
        "www.{city}schools.org",
        "{city}schools.net",
        "{city}schools.us",
        "{city}sd.org",
        "www.{city}sd.org",
        "{city}isd.org",
        "{city}usd.org",
        "{city}.edu",
    ],
    OrganizationType.CHAMBER: [
        "{city}chamber.org",
        "{city}chamber.com",
        "www.{city}chamber.org",
        "www.{city}chamber.com",
        "{city}chamberofcommerce.org",
        "{city}chamberofcommerce.com",
    ],
    OrganizationType.LIBRARY: [
        "{city}library.org",
        "www.{city}library.org",
        "{city}publiclibrary.org",
        "{city}pl.org",
        "www.{city}pl.org",
        "{city}lib.org",
        "{city}library.us",
    ],
    OrganizationType.PARKS: [
        "{city}parks.org",
        "www.{city}parks.org",
        "{city}recreation.org",
        "{city}parksandrec.org",
        "{city}parksandrec.com",
        "{city}parks.us",
    ],
}

_RE_HOSTNAME = re.compile(r"^(?=.{4,253}$)([a-z0-9]([a-z0-9-]{0,61}[a-z0-9])?\.)+[a-z]{2,}$")


@dataclass(frozen=True)
class DomainCandidate:
    organization_type: OrganizationType
    domain: str

    @property
    def url(self) -> str:
        return f"https://{self.domain}"


class DomainCandidateGenerator:
    """Expand a locality into ordered per-organization domain guesses."""

    def __init__(self, templates: Optional[dict[OrganizationType, list[str]]] = None):
        self.templates = templates or DOMAIN_TEMPLATES

    def generate(self, locality: Locality) -> dict[OrganizationType, list[DomainCandidate]]:
        """All candidates grouped by organization type, each list in template order."""
        return {org_type: self.for_type(locality, org_type) for org_type in self.templates}

    def for_type(self, locality: Locality, org_type: OrganizationType) -> list[DomainCandidate]:
        if not locality.slug:
            raise InvalidLocalityError(f"city name has no usable characters: {locality.city!r}")
        slugs = [locality.slug]
        if locality.initials and locality.initials != locality.slug:
            slugs.append(locality.initials)

        state = locality.state.lower()
        seen = set()
        candidates = []
        for slug in slugs:
            for template in self.templates.get(org_type, []):
                domain = template.format(city=slug, state=state)
                if domain in seen or not _RE_HOSTNAME.match(domain):
                    continue
                seen.add(domain)
                candidates.append(DomainCandidate(org_type, domain))
        return candidates
