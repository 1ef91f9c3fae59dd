"""Content extraction orchestrator.

Three interchangeable strategies produce the same ``ExtractedContent``:

  jina:    Jina.ai Reader (remote rendering, rate limited)
  browser: Playwright Chromium (local rendering)
  http:    httpx + trafilatura (static HTML only)

``ContentExtractor`` owns the batching: fixed-size chunks run concurrently,
chunks run one after another, and a failed URL never fails its batch.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Protocol

from lead_intel.config import Config
from lead_intel.errors import ConfigurationError
from lead_intel.models import ExtractedContent

logger = logging.getLogger(__name__)


class ExtractionStrategy(Protocol):
    name: str

    async def __aenter__(self) -> ExtractionStrategy: ...

    async def __aexit__(self, *exc) -> None: ...

    async def extract(self, url: str) -> ExtractedContent | None: ...


def build_strategy(name: str, config: Config) -> ExtractionStrategy:
    """Instantiate an extraction strategy by name."""
    if name == "jina":
        from lead_intel.scrape.jina_client import JinaStrategy
        return JinaStrategy(delay_ms=config.jina_delay_ms, timeout=config.scrape_timeout)
    if name == "browser":
        from lead_intel.scrape.browser_scraper import BrowserStrategy
        return BrowserStrategy(timeout=config.scrape_timeout)
    if name == "http":
        from lead_intel.scrape.http_scraper import HttpStrategy
        return HttpStrategy(timeout=config.scrape_timeout, max_chars=config.content_max_chars)
    raise ConfigurationError(f"Unknown extraction strategy: {name}")


class ContentExtractor:
    def __init__(self, strategy: ExtractionStrategy, chunk_size: int = 5, timeout: float = 30):
        self.strategy = strategy
        self.chunk_size = max(1, chunk_size)
        self.timeout = timeout

    async def extract(self, url: str) -> ExtractedContent | None:
        """Extract a single URL. Never raises; failures return None."""
        async with self.strategy:
            return await self._extract_one(url)

    async def extract_batch(
        self,
        urls: list[str],
        cancelled: Callable[[], bool] | None = None,
    ) -> list[ExtractedContent]:
        """Extract many URLs in chunks, returning successes in input order.

        ``cancelled`` is consulted before each chunk; a chunk already started
        always finishes.
        """
        results: list[ExtractedContent] = []
        if not urls:
            return results

        async with self.strategy:
            for start in range(0, len(urls), self.chunk_size):
                if cancelled is not None and cancelled():
                    logger.info("Extraction cancelled after %d of %d URLs", start, len(urls))
                    break
                chunk = urls[start:start + self.chunk_size]
                pages = await asyncio.gather(*(self._extract_one(u) for u in chunk))
                results.extend(p for p in pages if p is not None)

        logger.info("Extracted %d/%d URLs via %s", len(results), len(urls), self.strategy.name)
        return results

    async def _extract_one(self, url: str) -> ExtractedContent | None:
        try:
            page = await asyncio.wait_for(self.strategy.extract(url), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning("Extraction timed out for %s", url[:80])
            return None
        except Exception as e:
            logger.warning("Extraction failed for %s: %s", url[:80], e)
            return None
        if page is None or not page.content.strip():
            return None
        return page
