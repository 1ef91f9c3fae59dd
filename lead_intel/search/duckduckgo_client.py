"""Free DuckDuckGo search provider, no API key required.

The ``ddgs`` client is synchronous, so each query runs in a worker thread.
Queries are serialised with a minimum gap between them; DuckDuckGo answers
bursts with 429s.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable

from ddgs import DDGS

logger = logging.getLogger(__name__)

DDG_MIN_INTERVAL = 2.0  # seconds between queries
DDG_MAX_RETRIES = 2


def _ddg_search_sync(query: str, num_results: int) -> list[dict]:
    with DDGS() as ddgs:
        return list(ddgs.text(query, max_results=num_results))


def _is_rate_limited(exc: Exception) -> bool:
    text = str(exc)
    return "429" in text or "Too Many" in text or "Ratelimit" in type(exc).__name__


def to_organic_results(raw: list[dict]) -> list[dict]:
    """Map ddgs hits (``href``/``title``/``body``) to the Serper result shape."""
    return [
        {
            "link": item["href"],
            "title": item.get("title", ""),
            "snippet": item.get("body", ""),
            "position": i + 1,
        }
        for i, item in enumerate(raw)
        if item.get("href")
    ]


class DuckDuckGoSearch:
    """Throttled DuckDuckGo text search.

    One query runs at a time. Rate-limited queries are retried
    ``max_retries`` times, waiting a growing multiple of ``min_interval``.
    """

    def __init__(
        self,
        min_interval: float = DDG_MIN_INTERVAL,
        max_retries: int = DDG_MAX_RETRIES,
        search_fn: Callable[[str, int], list[dict]] = _ddg_search_sync,
    ):
        self.min_interval = min_interval
        self.max_retries = max_retries
        self.search_fn = search_fn
        self._lock: asyncio.Lock | None = None
        self._last_request_time = 0.0

    def _get_lock(self) -> asyncio.Lock:
        # created lazily so the instance can be built outside an event loop
        if self._lock is None:
            self._lock = asyncio.Lock()
        return self._lock

    async def _wait_for_slot(self) -> None:
        elapsed = time.monotonic() - self._last_request_time
        if elapsed < self.min_interval:
            await asyncio.sleep(self.min_interval - elapsed)

    async def search(self, query: str, num_results: int = 10) -> dict:
        """Return ``{'organic_results': [...]}``, or ``{'error': ...}`` on failure."""
        for attempt in range(self.max_retries + 1):
            async with self._get_lock():
                await self._wait_for_slot()
                try:
                    raw = await asyncio.to_thread(self.search_fn, query, num_results)
                except Exception as e:
                    if _is_rate_limited(e) and attempt < self.max_retries:
                        backoff = self.min_interval * (attempt + 2)
                        logger.debug("DDG rate limited for '%s', retrying in %.1fs",
                                     query[:40], backoff)
                        await asyncio.sleep(backoff)
                        continue
                    logger.warning("DuckDuckGo search error for '%s': %s", query[:80], e)
                    return {"error": str(e)}
                finally:
                    self._last_request_time = time.monotonic()

            return {"organic_results": to_organic_results(raw)}

        return {"error": "max retries exceeded"}


_default_client: DuckDuckGoSearch | None = None


async def search_ddg(query: str, num_results: int = 10) -> dict:
    """Search through the process-wide throttled client."""
    global _default_client
    if _default_client is None:
        _default_client = DuckDuckGoSearch()
    return await _default_client.search(query, num_results)
