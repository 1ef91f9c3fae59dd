"""Source discovery: one web search per job, filtered down to scrapeable URLs."""

from __future__ import annotations

import logging
from urllib.parse import urlparse

from lead_intel.config import Config
from lead_intel.errors import ConfigurationError, DiscoveryError, NoSourcesError
from lead_intel.search.duckduckgo_client import search_ddg
from lead_intel.search.serper_client import search_serper

logger = logging.getLogger(__name__)

# Social and video platforms: login walls, no article text worth scraping.
BLOCKED_DOMAINS = (
    "facebook.com",
    "twitter.com",
    "x.com",
    "instagram.com",
    "linkedin.com",
    "youtube.com",
    "tiktok.com",
    "pinterest.com",
    "reddit.com",
)

SEARCH_PROVIDERS = ("serper", "duckduckgo")


def _hostname(url: str) -> str | None:
    try:
        parsed = urlparse(url)
    except ValueError:
        return None
    if parsed.scheme not in ("http", "https"):
        return None
    return (parsed.hostname or "").lower() or None


def filter_blocked(urls: list[str]) -> list[str]:
    """Drop blocklisted and unparseable URLs, keeping input order.

    A host matches a blocked domain when it is that domain or a subdomain of
    it, so ``m.facebook.com`` is blocked but ``dropbox.com`` is not.
    """
    kept = []
    for url in urls:
        host = _hostname(url)
        if host is None:
            logger.debug("Dropping invalid URL: %s", url)
            continue
        if any(host == d or host.endswith("." + d) for d in BLOCKED_DOMAINS):
            continue
        kept.append(url)
    return kept


class SourceDiscovery:
    """Turns a research prompt into an ordered list of candidate URLs."""

    def __init__(self, config: Config):
        self.config = config

    async def discover(self, prompt: str, provider: str | None = None) -> list[str]:
        provider = provider or self.config.search_provider
        num = self.config.max_search_results

        if provider == "serper":
            if not self.config.serper_api_key:
                raise ConfigurationError("SERPER_API_KEY is not configured")
            data = await search_serper(prompt, self.config.serper_api_key, num_results=num)
        elif provider == "duckduckgo":
            data = await search_ddg(prompt, num_results=num)
        else:
            raise ConfigurationError(f"Unknown search provider: {provider}")

        if "error" in data:
            raise DiscoveryError(f"Search provider {provider} failed: {data['error']}")

        results = sorted(data.get("organic_results", []), key=lambda r: r.get("position", 0))
        urls = list(dict.fromkeys(r["link"] for r in results if r.get("link")))
        urls = filter_blocked(urls)[:num]

        logger.info("Discovery via %s: %d usable URLs", provider, len(urls))
        if not urls:
            raise NoSourcesError("Search returned no usable sources")
        return urls
