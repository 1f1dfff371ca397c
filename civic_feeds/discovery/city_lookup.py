"""Known municipal websites, checked before guessing domains.

The CSV export has one row per municipality:

    municipality,state,website_available,website_url
    Springfield,IL,true,https://www.springfield.il.us
"""

import csv
import logging
from pathlib import Path
from typing import Optional, Protocol

from ..models.locality import Locality, normalize_state
from ..errors import InvalidLocalityError

logger = logging.getLogger(__name__)

_TRUTHY = {"true", "yes", "y", "1"}


class CityLookup(Protocol):
    def lookup_website(self, city: str, state: str) -> Optional[str]:
        ...


def _key(city: str, state: str) -> tuple[str, str]:
    return (" ".join(city.lower().split()), normalize_state(state))


class StaticCityLookup:
    """In-memory lookup, keyed by 'City, ST' labels."""

    def __init__(self, websites: Optional[dict[str, str]] = None):
        self._websites = {}
        for label, url in (websites or {}).items():
            locality = Locality.from_label(label)
            self._websites[_key(locality.city, locality.state)] = url

    def lookup_website(self, city: str, state: str) -> Optional[str]:
        try:
            return self._websites.get(_key(city, state))
        except InvalidLocalityError:
            return None


class CsvCityLookup(StaticCityLookup):
    """Lookup backed by a municipality CSV export."""

    def __init__(self, path: str):
        super().__init__()
        self.path = Path(path)
        self._load()

    def _load(self):
        skipped = 0
        with self.path.open(newline="", encoding="utf-8") as f:
            for row in csv.DictReader(f):
                url = (row.get("website_url") or "").strip()
                available = (row.get("website_available") or "").strip().lower() in _TRUTHY
                if not url or not available:
                    continue
                try:
                    key = _key(row.get("municipality") or "", row.get("state") or "")
                except InvalidLocalityError:
                    skipped += 1
                    continue
                if not url.startswith(("http://", "https://")):
                    url = f"https://{url}"
                self._websites[key] = url
        logger.info(f"Loaded {len(self._websites)} municipal websites from {self.path}"
                    + (f" ({skipped} rows skipped)" if skipped else ""))
