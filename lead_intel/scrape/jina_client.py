"""Jina.ai Reader strategy: remote rendering of a page to clean markdown (free, no key)."""

from __future__ import annotations

import asyncio
import logging
import re
import time

import httpx

from lead_intel.models import ExtractedContent
from lead_intel.scrape.http_scraper import EXCERPT_CHARS

logger = logging.getLogger(__name__)

JINA_BASE_URL = "https://r.jina.ai"

_H1_RE = re.compile(r"^#\s+(.+)$", re.M)
_HEADING_LINE_RE = re.compile(r"^#.+$", re.M)


def parse_markdown(url: str, markdown: str) -> ExtractedContent:
    """Derive title and excerpt from Jina markdown.

    Title is the first ``# heading``, else the first line (max 100 chars),
    else "Untitled". The excerpt skips heading lines.
    """
    m = _H1_RE.search(markdown)
    if m:
        title = m.group(1).strip()
    else:
        title = markdown.split("\n", 1)[0][:100] or "Untitled"

    body = _HEADING_LINE_RE.sub("", markdown).strip()
    excerpt = body[:EXCERPT_CHARS] + ("..." if len(body) > EXCERPT_CHARS else "")
    return ExtractedContent(url=url, title=title, content=markdown, excerpt=excerpt)


class JinaStrategy:
    """Fetches ``https://r.jina.ai/{url}`` with a minimum gap between calls.

    The gap is enforced across concurrent callers with a lock and a
    monotonic timestamp of the previous request.
    """

    name = "jina"

    def __init__(self, delay_ms: int = 1000, timeout: int = 30,
                 transport: httpx.AsyncBaseTransport | None = None):
        self.min_interval = delay_ms / 1000
        self.timeout = timeout
        self.transport = transport
        self._client: httpx.AsyncClient | None = None
        self._lock = asyncio.Lock()
        self._last_request_time = 0.0

    async def __aenter__(self) -> JinaStrategy:
        self._client = httpx.AsyncClient(timeout=self.timeout, transport=self.transport)
        return self

    async def __aexit__(self, *exc) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _throttle(self) -> None:
        async with self._lock:
            elapsed = time.monotonic() - self._last_request_time
            if elapsed < self.min_interval:
                await asyncio.sleep(self.min_interval - elapsed)
            self._last_request_time = time.monotonic()

    async def extract(self, url: str) -> ExtractedContent | None:
        assert self._client, "JinaStrategy used outside 'async with'"
        await self._throttle()
        response = await self._client.get(
            f"{JINA_BASE_URL}/{url}",
            headers={
                "Accept": "text/plain",
                "User-Agent": "Mozilla/5.0 (compatible; LeadIntel/1.0)",
            },
        )
        if response.status_code != 200:
            logger.warning("Jina extraction failed for %s: HTTP %d", url[:80], response.status_code)
            return None
        markdown = response.text
        if not markdown.strip():
            return None
        return parse_markdown(url, markdown)
