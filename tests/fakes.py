"""Test doubles for the pipeline's network-facing collaborators."""

from __future__ import annotations

import asyncio
import json

from lead_intel.errors import DiscoveryError
from lead_intel.models import ExtractedContent


class FakeStrategy:
    """Extraction strategy serving canned pages; URLs in ``failing`` raise."""

    name = "fake"

    def __init__(self, pages: dict[str, str] | None = None, failing: set[str] | None = None,
                 on_extract=None, delay: float = 0):
        self.pages = pages or {}
        self.failing = failing or set()
        self.on_extract = on_extract
        self.delay = delay
        self.calls: list[str] = []
        self.entered = 0
        self.exited = 0
        self.in_flight = 0
        self.max_in_flight = 0
        # sizes of runs of overlapping extract calls
        self.waves: list[int] = []

    async def __aenter__(self):
        self.entered += 1
        return self

    async def __aexit__(self, *exc):
        self.exited += 1

    async def extract(self, url: str) -> ExtractedContent | None:
        self.calls.append(url)
        if self.in_flight == 0:
            self.waves.append(0)
        self.waves[-1] += 1
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.on_extract is not None:
                self.on_extract(url)
            await asyncio.sleep(self.delay)
            if url in self.failing:
                raise RuntimeError(f"boom: {url}")
            content = self.pages.get(url, f"Content of {url}. " * 10)
            return ExtractedContent(url=url, title=f"Title {url}", content=content,
                                    excerpt=content[:500])
        finally:
            self.in_flight -= 1


class FakeDiscovery:
    def __init__(self, urls: list[str] | None = None, error: Exception | None = None):
        self.urls = urls if urls is not None else [
            "https://example.com/a", "https://example.com/b", "https://example.org/c",
        ]
        self.error = error
        self.calls: list[str] = []

    async def discover(self, prompt: str, provider: str | None = None) -> list[str]:
        self.calls.append(prompt)
        if self.error is not None:
            raise self.error
        return list(self.urls)


ANALYSIS_JSON = {
    "summary": "CRM tooling for small agencies is consolidating.",
    "insights": [
        {"title": "HubSpot dominates", "body": "Most agencies use HubSpot.",
         "category": "market", "confidence": 0.9},
        {"title": "Automation demand", "content": "Agencies want automation.",
         "category": "trend", "confidence": 1.7},
    ],
}

ACTIONS_JSON = [
    {"description": "Email agency owners about automation audits", "priority": "high", "effort": 2},
    {"description": "Publish a HubSpot migration guide", "priority": "LOW", "effort": 9},
]

LEADS_JSON = [
    {
        "name": "Jane Doe", "company": "Acme Digital", "email": "jane@acmedigital.io",
        "website": "https://acmedigital.io", "industry": "Marketing Agency",
        "companySize": "10-50", "location": "Austin, US",
        "painPoints": ["manual reporting work", "lead generation"],
        "personalization": "Uses HubSpot, Zapier and Airtable; hiring two SDRs after raising a seed round",
    },
    {
        "name": "General Inquiry", "company": "Tiny Shop", "email": "owner@gmail.com",
        "industry": "Retail", "painPoints": [], "personalization": "",
    },
]


class FakeCompleter:
    """Stands in for ``llm_complete``; answers by recognising the prompt template."""

    def __init__(self, analysis=None, actions=None, leads=None, error: Exception | None = None):
        self.analysis = ANALYSIS_JSON if analysis is None else analysis
        self.actions = ACTIONS_JSON if actions is None else actions
        self.leads = LEADS_JSON if leads is None else leads
        self.error = error
        self.calls: list[tuple[str, str]] = []

    async def __call__(self, prompt, provider_config, config, **kwargs) -> str:
        self.calls.append((provider_config.provider, prompt))
        if self.error is not None:
            raise self.error
        if "Senior Research Analyst" in prompt:
            payload = self.analysis
        elif "potential business leads" in prompt:
            payload = self.leads
        else:
            payload = self.actions
        return payload if isinstance(payload, str) else "```json\n" + json.dumps(payload) + "\n```"


def failing_discovery() -> FakeDiscovery:
    return FakeDiscovery(error=DiscoveryError("Search provider serper failed: timeout"))
