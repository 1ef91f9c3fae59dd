"""Headless Chromium strategy for JS-rendered pages (Playwright)."""

from __future__ import annotations

import logging
import re

from playwright.async_api import Browser, Playwright, async_playwright

from lead_intel.models import ExtractedContent
from lead_intel.scrape.http_scraper import make_excerpt

logger = logging.getLogger(__name__)

NOISE_SELECTORS = [
    "script", "style", "nav", "footer", "iframe", "header", "aside",
    ".ads", ".sidebar", "#comments", ".cookie-banner",
]

# Runs in the page: strip noise, then read the most specific content root.
_EXTRACT_JS = """
(selectors) => {
    for (const sel of selectors) {
        document.querySelectorAll(sel).forEach((el) => el.remove());
    }
    const root = document.querySelector('main')
        || document.querySelector('article')
        || document.querySelector('#content')
        || document.body;
    return { title: document.title || '', text: root ? root.innerText : '' };
}
"""


class BrowserStrategy:
    """One Chromium instance per batch, released on every exit path."""

    name = "browser"

    def __init__(self, timeout: int = 30, headless: bool = True):
        self.timeout_ms = timeout * 1000
        self.headless = headless
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None

    async def __aenter__(self) -> BrowserStrategy:
        self._playwright = await async_playwright().start()
        try:
            self._browser = await self._playwright.chromium.launch(
                headless=self.headless,
                args=["--no-sandbox", "--disable-setuid-sandbox"],
            )
        except Exception:
            await self._playwright.stop()
            self._playwright = None
            raise
        return self

    async def __aexit__(self, *exc) -> None:
        try:
            if self._browser is not None:
                await self._browser.close()
        finally:
            self._browser = None
            if self._playwright is not None:
                await self._playwright.stop()
                self._playwright = None

    async def extract(self, url: str) -> ExtractedContent | None:
        assert self._browser, "BrowserStrategy used outside 'async with'"
        page = await self._browser.new_page()
        try:
            await page.goto(url, wait_until="domcontentloaded", timeout=self.timeout_ms)
            data = await page.evaluate(_EXTRACT_JS, NOISE_SELECTORS)
        finally:
            await page.close()

        content = re.sub(r"\s+", " ", data.get("text") or "").strip()
        if not content:
            return None
        return ExtractedContent(
            url=url,
            title=(data.get("title") or "").strip() or "Untitled",
            content=content,
            excerpt=make_excerpt(content),
        )
