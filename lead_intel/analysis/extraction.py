"""Analysis stage: synthesize insights, action items and leads from scraped sources."""

from __future__ import annotations

import json
import logging
import re
from typing import Awaitable, Callable, Sequence

from pydantic import ValidationError

from lead_intel.analysis.llm_client import llm_complete
from lead_intel.analysis.prompts import (
    ACTION_ITEMS_PROMPT,
    ANALYSIS_PROMPT,
    LEAD_EXTRACTION_PROMPT,
    format_insight_lines,
)
from lead_intel.config import Config
from lead_intel.errors import NoSourcesError, ProviderError
from lead_intel.models import (
    ActionItem,
    AnalysisResult,
    ExtractedContent,
    ExtractedLead,
    Insight,
    ProviderConfig,
    Source,
)

logger = logging.getLogger(__name__)

MAX_LEADS = 10

Completer = Callable[..., Awaitable[str]]


def _extract_json(text: str) -> str:
    """Extract the first valid JSON object or array from a model response."""
    cleaned = text.strip()
    cleaned = re.sub(r"^```json\s*", "", cleaned)
    cleaned = re.sub(r"^```\s*", "", cleaned)
    cleaned = re.sub(r"\s*```\s*$", "", cleaned)
    cleaned = cleaned.strip()

    try:
        json.loads(cleaned)
        return cleaned
    except json.JSONDecodeError:
        pass

    starts = [i for i in (cleaned.find("{"), cleaned.find("[")) if i != -1]
    if not starts:
        return cleaned
    start = min(starts)

    depth = 0
    in_string = False
    escape = False
    for i in range(start, len(cleaned)):
        c = cleaned[i]
        if escape:
            escape = False
            continue
        if c == "\\":
            escape = True
            continue
        if c == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if c in "{[":
            depth += 1
        elif c in "}]":
            depth -= 1
            if depth == 0:
                candidate = cleaned[start:i + 1]
                try:
                    json.loads(candidate)
                    return candidate
                except json.JSONDecodeError:
                    break

    return cleaned


def _parse_json(text: str, what: str):
    try:
        return json.loads(_extract_json(text))
    except json.JSONDecodeError as e:
        logger.error("JSON parse error (%s): %s\nResponse preview: %s", what, e, text[:200])
        raise ProviderError(f"Malformed {what} response from model: {e}", retryable=True)


def build_combined_content(
    sources: Sequence[Source | ExtractedContent],
    max_chars_per_source: int = 15000,
) -> tuple[str, int]:
    """Combine source contents into a single document for the model.

    Returns (combined_text, valid_source_count).
    """
    sections = []
    valid_count = 0

    for page in sources:
        if not page.content:
            continue
        valid_count += 1
        sections.append(
            f"\n{'=' * 80}\n"
            f"SOURCE {valid_count} of {len(sources)}\n"
            f"URL: {page.url}\n"
            f"TITLE: {page.title}\n"
            f"{'=' * 80}\n\n"
            f"{page.content[:max_chars_per_source]}\n"
        )

    return "\n".join(sections), valid_count


class Analyzer:
    """Runs the model calls of the analysis stage for one job at a time."""

    def __init__(self, config: Config, complete: Completer = llm_complete):
        self.config = config
        self._complete = complete

    async def analyze(
        self,
        sources: Sequence[Source | ExtractedContent],
        prompt: str,
        provider_config: ProviderConfig,
    ) -> AnalysisResult:
        """Two model calls: insights + summary, then action items.

        Nothing is returned (and so nothing persisted) unless both succeed.
        """
        combined, count = build_combined_content(sources, self.config.content_max_chars)
        if count == 0:
            raise NoSourcesError("No source content available for analysis")

        text = await self._complete(
            ANALYSIS_PROMPT.format(prompt=prompt, source_count=count, combined_content=combined),
            provider_config,
            self.config,
        )
        data = _parse_json(text, "analysis")
        if not isinstance(data, dict):
            raise ProviderError("Analysis response was not a JSON object", retryable=True)

        insights = []
        for raw in data.get("insights") or []:
            if not isinstance(raw, dict) or not raw.get("title"):
                continue
            insights.append(Insight(
                title=str(raw["title"]),
                category=str(raw.get("category") or "general"),
                body=str(raw.get("body") or raw.get("content") or ""),
                confidence=raw.get("confidence", 0.5),
            ))
        summary = str(data.get("summary") or "")

        text = await self._complete(
            ACTION_ITEMS_PROMPT.format(
                prompt=prompt,
                summary=summary,
                insight_lines=format_insight_lines(insights),
            ),
            provider_config,
            self.config,
        )
        raw_items = _parse_json(text, "action items")
        if isinstance(raw_items, dict):
            raw_items = raw_items.get("action_items") or raw_items.get("actions") or []
        if not isinstance(raw_items, list):
            raise ProviderError("Action item response was not a JSON array", retryable=True)

        action_items = [
            ActionItem(
                description=str(a["description"]),
                priority=a.get("priority"),
                effort=a.get("effort", 3),
            )
            for a in raw_items
            if isinstance(a, dict) and a.get("description")
        ]

        logger.info(
            "Analysis via %s: %d insights, %d action items",
            provider_config.provider, len(insights), len(action_items),
        )
        return AnalysisResult(summary=summary, insights=insights, action_items=action_items)

    async def extract_leads(
        self,
        prompt: str,
        analysis: AnalysisResult,
        provider_config: ProviderConfig,
        max_leads: int = MAX_LEADS,
    ) -> list[ExtractedLead]:
        text = await self._complete(
            LEAD_EXTRACTION_PROMPT.format(
                prompt=prompt,
                summary=analysis.summary,
                insight_lines=format_insight_lines(analysis.insights),
                max_leads=max_leads,
            ),
            provider_config,
            self.config,
        )
        raw_leads = _parse_json(text, "lead extraction")
        if isinstance(raw_leads, dict):
            raw_leads = raw_leads.get("leads") or []
        if not isinstance(raw_leads, list):
            raise ProviderError("Lead extraction response was not a JSON array", retryable=True)

        leads = []
        for raw in raw_leads[:max_leads]:
            if not isinstance(raw, dict):
                continue
            try:
                leads.append(_lead_from_json(raw))
            except ValidationError as e:
                logger.warning("Skipping malformed lead %r: %s", raw.get("company"), e)
        return leads


def _lead_from_json(raw: dict) -> ExtractedLead:
    # Map camelCase JSON keys to the snake_case model
    pain_points = raw.get("painPoints") or raw.get("pain_points") or []
    if isinstance(pain_points, str):
        pain_points = [pain_points]
    return ExtractedLead(
        name=raw.get("name") or "Unknown Contact",
        company=raw.get("company") or "Unknown Company",
        email=raw.get("email"),
        phone=raw.get("phone"),
        website=raw.get("website"),
        industry=raw.get("industry"),
        company_size=raw.get("companySize") or raw.get("company_size"),
        location=raw.get("location"),
        pain_points=[str(p) for p in pain_points if p],
        personalization=str(raw.get("personalization") or ""),
    )
