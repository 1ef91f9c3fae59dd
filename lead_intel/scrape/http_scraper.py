"""Async HTTP scraper with browser-like headers, retry logic and local extraction."""

from __future__ import annotations

import asyncio
import logging
import random
import re

import httpx
import trafilatura

from lead_intel.models import ExtractedContent

logger = logging.getLogger(__name__)

EXCERPT_CHARS = 500

# Rotate through realistic user agents to avoid blocks
USER_AGENTS = [
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/125.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/125.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:126.0) Gecko/20100101 Firefox/126.0",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/125.0.0.0 Safari/537.36",
]


def _get_headers() -> dict[str, str]:
    return {
        "User-Agent": random.choice(USER_AGENTS),
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
        "Accept-Language": "en-US,en;q=0.9",
        "Cache-Control": "no-cache",
        "Upgrade-Insecure-Requests": "1",
    }


def make_excerpt(text: str, limit: int = EXCERPT_CHARS) -> str:
    """First ``limit`` chars of ``text``, with '...' appended when cut."""
    return text[:limit] + ("..." if len(text) > limit else "")


async def fetch_url(
    url: str,
    timeout: int = 30,
    max_retries: int = 2,
    transport: httpx.AsyncBaseTransport | None = None,
) -> tuple[str | None, str | None]:
    """Fetch a URL and return (html_content, error_message).

    Returns (content, None) on success or (None, error_string) on failure.
    Retries on transient errors (429, 503, timeouts).
    """
    last_error = None

    for attempt in range(max_retries + 1):
        try:
            async with httpx.AsyncClient(
                timeout=timeout,
                follow_redirects=True,
                max_redirects=5,
                transport=transport,
            ) as client:
                response = await client.get(url, headers=_get_headers())

                if response.status_code in (429, 503) and attempt < max_retries:
                    last_error = f"HTTP {response.status_code} (retrying)"
                    await asyncio.sleep(2 * (attempt + 1))
                    continue

                if response.status_code >= 400:
                    return None, f"HTTP {response.status_code}"

                content_type = response.headers.get("content-type", "")
                if "text/html" not in content_type and "text/plain" not in content_type:
                    return None, f"Non-HTML content: {content_type[:50]}"

                return response.text, None

        except httpx.TimeoutException:
            last_error = "timeout"
            if attempt < max_retries:
                await asyncio.sleep(2 * (attempt + 1))
                continue
        except httpx.TooManyRedirects:
            return None, "too_many_redirects"
        except httpx.HTTPError as e:
            last_error = str(e)[:100]
            if attempt < max_retries:
                await asyncio.sleep(1)
                continue

    return None, last_error


class HttpStrategy:
    """Plain HTTP fetch plus trafilatura, for static pages that need no rendering."""

    name = "http"

    def __init__(self, timeout: int = 30, max_chars: int = 15000, max_retries: int = 2,
                 transport: httpx.AsyncBaseTransport | None = None):
        self.timeout = timeout
        self.max_chars = max_chars
        self.max_retries = max_retries
        self.transport = transport

    async def __aenter__(self) -> HttpStrategy:
        return self

    async def __aexit__(self, *exc) -> None:
        return None

    async def extract(self, url: str) -> ExtractedContent | None:
        html, error = await fetch_url(
            url, timeout=self.timeout, max_retries=self.max_retries, transport=self.transport,
        )
        if not html:
            logger.warning("HTTP fetch failed for %s: %s", url[:80], error)
            return None

        content = trafilatura.extract(
            html,
            include_tables=True,
            include_links=False,
            include_comments=False,
            favor_recall=True,
            url=url,
        )
        # Fallback to basic extraction if trafilatura returns too little
        if not content or len(content) < 100:
            content = _basic_html_to_text(html)
        if not content:
            return None

        content = _truncate_content(content, self.max_chars)
        return ExtractedContent(
            url=url,
            title=_html_title(html) or "Untitled",
            content=content,
            excerpt=make_excerpt(content),
        )


def _html_title(html: str) -> str:
    m = re.search(r"<title[^>]*>(.*?)</title>", html, re.I | re.S)
    return re.sub(r"\s+", " ", m.group(1)).strip()[:200] if m else ""


def _basic_html_to_text(html: str) -> str:
    """Fallback HTML-to-text when trafilatura fails."""
    text = html
    text = re.sub(r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", "", text, flags=re.I | re.S)
    text = re.sub(r"<style\b[^<]*(?:(?!</style>)<[^<]*)*</style>", "", text, flags=re.I | re.S)
    text = re.sub(r"<!--[\s\S]*?-->", "", text)
    text = re.sub(r"<[^>]+>", " ", text)
    text = text.replace("&nbsp;", " ")
    text = text.replace("&amp;", "&")
    text = text.replace("&lt;", "<")
    text = text.replace("&gt;", ">")
    text = text.replace("&quot;", '"')
    text = text.replace("&#39;", "'")
    text = re.sub(r"&[a-z]+;", " ", text, flags=re.I)
    text = re.sub(r"\s+", " ", text)
    return text.strip()


def _truncate_content(text: str, max_chars: int) -> str:
    """Truncate at sentence boundary if over max length."""
    if len(text) <= max_chars:
        return text

    truncated = text[:max_chars]
    cut_point = max(truncated.rfind(". "), truncated.rfind("\n"))
    if cut_point > max_chars * 0.8:
        return truncated[:cut_point + 1] + " [content truncated]"
    return truncated + "... [content truncated]"
