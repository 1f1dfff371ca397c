"""Checks whether a candidate domain is a live, real website.

Expired and squatted domains are common among small municipalities, so a
domain must come back `ok` before any feed paths are probed on it.
"""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional
from urllib.parse import urlparse

import httpx
from bs4 import BeautifulSoup

from ..config import Settings, get_settings
from ..crawlers.http_client import HttpFetcher
from ..lib.run_context import RunContext

logger = logging.getLogger(__name__)


class WebsiteStatus(str, Enum):
    OK = "ok"
    PARKED = "parked"
    REDIRECT = "redirect"
    UNREACHABLE = "unreachable"


@dataclass
class WebsiteValidation:
    domain: str
    is_valid: bool
    status: WebsiteStatus
    final_url: Optional[str] = None
    title: Optional[str] = None
    error: Optional[str] = None
    html: str = field(default="", repr=False)


class WebsiteValidator:
    """GET a domain's homepage and classify it as ok, parked, redirect or unreachable."""

    PARKING_PHRASES = [
        "domain for sale", "buy this domain", "this domain is for sale",
        "this domain may be for sale", "domain parking", "parked domain",
        "parked free", "expired domain", "domain expired", "domain has expired",
        "coming soon", "under construction", "underconstruction",
        "site not found", "website coming soon", "temporarily unavailable",
        "future home of",
    ]

    # Registrar and parking-service brands, matched as whole words
    PARKING_BRANDS = [
        "godaddy", "namecheap", "sedo", "hugedomains", "afternic", "bodis",
        "parkingcrew", "dan.com", "above.com",
    ]

    _RE_BRANDS = re.compile(
        r"\b(?:" + "|".join(re.escape(b) for b in PARKING_BRANDS) + r")\b",
        re.IGNORECASE,
    )

    def __init__(self, fetcher: HttpFetcher, settings: Optional[Settings] = None):
        self.fetcher = fetcher
        self.settings = settings or get_settings()

    async def validate(self, domain: str, ctx: Optional[RunContext] = None) -> WebsiteValidation:
        url = domain if domain.startswith(("http://", "https://")) else f"https://{domain}"
        host = (urlparse(url).hostname or "").lower()

        try:
            result = await self.fetcher.get(url, self.settings.website_timeout, ctx)
        except httpx.TooManyRedirects as e:
            return self._result(host, WebsiteStatus.REDIRECT, error=str(e))
        except httpx.HTTPError as e:
            return self._result(host, WebsiteStatus.UNREACHABLE, error=type(e).__name__)

        if not result.ok:
            return self._result(host, WebsiteStatus.UNREACHABLE, final_url=result.final_url,
                                error=f"HTTP {result.status_code}")

        final_host = (urlparse(result.final_url).hostname or "").lower()
        if not self._same_site(host, final_host):
            return self._result(host, WebsiteStatus.REDIRECT, final_url=result.final_url,
                                error=f"redirected to {final_host}")

        body = result.text or ""
        title = self._title(body)
        if len(body.strip()) < self.settings.min_website_bytes:
            return self._result(host, WebsiteStatus.PARKED, final_url=result.final_url, title=title,
                                error="body too small")

        phrase = self._parking_signal(body, title)
        if phrase:
            return self._result(host, WebsiteStatus.PARKED, final_url=result.final_url, title=title,
                                error=f"parking phrase: {phrase}")

        logger.info(f"Website ok: {host} ({title or 'untitled'})")
        return WebsiteValidation(
            domain=host,
            is_valid=True,
            status=WebsiteStatus.OK,
            final_url=result.final_url,
            title=title,
            html=body,
        )

    @staticmethod
    def _same_site(host: str, final_host: str) -> bool:
        base = host[4:] if host.startswith("www.") else host
        final = final_host[4:] if final_host.startswith("www.") else final_host
        return final == base or final.endswith("." + base)

    def _parking_signal(self, body: str, title: Optional[str]) -> Optional[str]:
        soup = BeautifulSoup(body, "lxml")
        for tag in soup(["script", "style", "noscript"]):
            tag.decompose()
        text = " ".join(f"{title or ''} {soup.get_text(' ')}".lower().split())

        for phrase in self.PARKING_PHRASES:
            if phrase in text:
                return phrase
        brand = self._RE_BRANDS.search(text)
        return brand.group(0) if brand else None

    @staticmethod
    def _title(body: str) -> Optional[str]:
        match = re.search(r"<title[^>]*>(.*?)</title>", body, re.IGNORECASE | re.DOTALL)
        if not match:
            return None
        return " ".join(match.group(1).split())[:200] or None

    @staticmethod
    def _result(host: str, status: WebsiteStatus, **kwargs) -> WebsiteValidation:
        logger.debug(f"Website {status.value}: {host} {kwargs.get('error') or ''}")
        return WebsiteValidation(domain=host, is_valid=False, status=status, **kwargs)
