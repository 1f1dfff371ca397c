"""Shared async HTTP fetcher for probes and feed downloads.

Every request takes an explicit timeout (short for existence checks, long
for content) and an optional RunContext so a caller can abort a run.
"""

from dataclasses import dataclass
from typing import Optional
import logging

import httpx

from ..config import Settings, get_settings
from ..lib.run_context import RunContext

logger = logging.getLogger(__name__)

# Max response body size: 5 MB
MAX_RESPONSE_SIZE = 5 * 1024 * 1024


def normalize_feed_url(url: str) -> str:
    """webcal://host/cal.ics → https://host/cal.ics"""
    if url.lower().startswith("webcal://"):
        return "https://" + url[len("webcal://"):]
    return url


def decode_body(body: bytes, encoding: Optional[str]) -> str:
    try:
        return body.decode(encoding or "utf-8", errors="replace")
    except LookupError:
        # Unknown charset label in Content-Type
        return body.decode("utf-8", errors="replace")


@dataclass
class FetchResult:
    """Result of a single GET or HEAD."""
    url: str
    final_url: str
    status_code: int
    content_type: str
    text: str

    @property
    def ok(self) -> bool:
        return self.status_code < 400


class HttpFetcher:
    """Thin wrapper around one httpx.AsyncClient."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings or get_settings()
        self.client = httpx.AsyncClient(
            follow_redirects=True,
            max_redirects=self.settings.max_redirects,
            transport=transport,
            headers={
                "User-Agent": self.settings.user_agent,
                "Accept": "text/calendar, application/rss+xml, application/atom+xml, "
                          "application/json, text/html;q=0.9, */*;q=0.8",
            },
        )

    async def get(self, url: str, timeout: float, ctx: Optional[RunContext] = None) -> FetchResult:
        return await self._request("GET", url, timeout, ctx)

    async def head(self, url: str, timeout: float, ctx: Optional[RunContext] = None) -> FetchResult:
        return await self._request("HEAD", url, timeout, ctx)

    async def _request(
        self,
        method: str,
        url: str,
        timeout: float,
        ctx: Optional[RunContext],
    ) -> FetchResult:
        """Raises httpx.HTTPError on transport failures and RunCancelled on abort."""
        target = normalize_feed_url(url)
        ctx = ctx or RunContext()
        response, text = await ctx.run(self._send(method, target, ctx.clamp(timeout)))

        logger.debug(f"{method} {target} -> {response.status_code} ({len(text)} chars)")
        return FetchResult(
            url=url,
            final_url=str(response.url),
            status_code=response.status_code,
            content_type=response.headers.get("content-type", "").lower(),
            text=text,
        )

    async def _send(self, method: str, url: str, timeout: float) -> tuple[httpx.Response, str]:
        async with self.client.stream(method, url, timeout=timeout) as response:
            if method == "HEAD":
                return response, ""
            body = bytearray()
            async for chunk in response.aiter_bytes():
                body.extend(chunk)
                if len(body) >= MAX_RESPONSE_SIZE:
                    logger.debug(f"Truncating {url} at {MAX_RESPONSE_SIZE} bytes")
                    break
            return response, decode_body(bytes(body[:MAX_RESPONSE_SIZE]), response.encoding)

    async def close(self):
        """Close HTTP client."""
        await self.client.aclose()
