"""Tests for the analysis stage, lead extraction and the LLM client."""

import asyncio
from unittest.mock import AsyncMock, patch

import anthropic
import httpx
import openai
import pytest

from lead_intel.analysis.extraction import Analyzer, _extract_json, build_combined_content
from lead_intel.analysis.llm_client import GROQ_BASE_URL, _map_api_error, llm_complete
from lead_intel.errors import ConfigurationError, NoSourcesError, ProviderError
from lead_intel.models import ExtractedContent, ProviderConfig

from fakes import LEADS_JSON, FakeCompleter

SOURCES = [
    ExtractedContent(url="https://a.com", title="A", content="HubSpot is popular with agencies."),
    ExtractedContent(url="https://b.com", title="B", content=""),
    ExtractedContent(url="https://c.com", title="C", content="Agencies automate reporting."),
]


def _response(status: int) -> httpx.Response:
    return httpx.Response(status, request=httpx.Request("POST", "https://api.test/v1"))


class TestExtractJson:
    def test_fenced_object(self):
        assert _extract_json('```json\n{"a": 1}\n```') == '{"a": 1}'

    def test_object_with_surrounding_prose(self):
        text = 'Here you go: {"a": {"b": "}"}} hope that helps'
        assert _extract_json(text) == '{"a": {"b": "}"}}'

    def test_array(self):
        assert _extract_json('Sure!\n[{"x": 1}, {"x": 2}]') == '[{"x": 1}, {"x": 2}]'


class TestCombinedContent:
    def test_empty_sources_are_skipped_and_numbered(self):
        combined, count = build_combined_content(SOURCES)
        assert count == 2
        assert "SOURCE 1 of 3" in combined
        assert "SOURCE 2 of 3" in combined
        assert "URL: https://c.com" in combined
        assert "https://b.com" not in combined

    def test_each_source_is_truncated(self):
        long_page = [ExtractedContent(url="https://a.com", content="x" * 100)]
        combined, _ = build_combined_content(long_page, max_chars_per_source=10)
        assert "x" * 10 in combined
        assert "x" * 11 not in combined


class TestAnalyze:
    @pytest.mark.asyncio
    async def test_insights_and_action_items_are_normalised(self, config):
        completer = FakeCompleter()
        result = await Analyzer(config, complete=completer).analyze(
            SOURCES, "best crm tools for agencies", ProviderConfig(),
        )

        assert result.summary.startswith("CRM tooling")
        assert [i.title for i in result.insights] == ["HubSpot dominates", "Automation demand"]
        assert result.insights[1].body == "Agencies want automation."
        assert result.insights[1].confidence == 1.0
        assert [(a.priority, a.effort) for a in result.action_items] == [("HIGH", 2), ("LOW", 5)]
        assert len(completer.calls) == 2
        # the action item prompt carries the first call's findings
        assert "HubSpot dominates" in completer.calls[1][1]

    @pytest.mark.asyncio
    async def test_malformed_json_is_a_retryable_provider_error(self, config):
        completer = FakeCompleter(analysis="I could not find anything useful, sorry.")
        with pytest.raises(ProviderError) as exc_info:
            await Analyzer(config, complete=completer).analyze(SOURCES, "crm tools", ProviderConfig())
        assert exc_info.value.retryable is True
        assert len(completer.calls) == 1

    @pytest.mark.asyncio
    async def test_no_content_raises_before_calling_the_model(self, config):
        completer = FakeCompleter()
        empty = [ExtractedContent(url="https://b.com", content="")]
        with pytest.raises(NoSourcesError):
            await Analyzer(config, complete=completer).analyze(empty, "crm tools", ProviderConfig())
        assert completer.calls == []

    @pytest.mark.asyncio
    async def test_action_items_wrapped_in_an_object(self, config):
        completer = FakeCompleter(actions={"action_items": [{"description": "Do it"}]})
        result = await Analyzer(config, complete=completer).analyze(
            SOURCES, "crm tools", ProviderConfig(),
        )
        assert [(a.description, a.priority, a.effort) for a in result.action_items] == [
            ("Do it", "MEDIUM", 3),
        ]


class TestExtractLeads:
    @pytest.mark.asyncio
    async def test_camel_case_fields_are_mapped(self, config):
        analyzer = Analyzer(config, complete=FakeCompleter())
        analysis = await analyzer.analyze(SOURCES, "agencies needing automation", ProviderConfig())

        leads = await analyzer.extract_leads("agencies needing automation", analysis, ProviderConfig())

        assert [lead.company for lead in leads] == ["Acme Digital", "Tiny Shop"]
        jane = leads[0]
        assert jane.company_size == "10-50"
        assert jane.pain_points == ["manual reporting work", "lead generation"]
        assert "hiring" in jane.personalization

    @pytest.mark.asyncio
    async def test_lead_count_is_capped(self, config):
        many = [dict(LEADS_JSON[1], company=f"Shop {i}") for i in range(15)]
        analyzer = Analyzer(config, complete=FakeCompleter(leads=many))
        analysis = await analyzer.analyze(SOURCES, "shops", ProviderConfig())

        leads = await analyzer.extract_leads("shops", analysis, ProviderConfig(), max_leads=10)

        assert len(leads) == 10

    @pytest.mark.asyncio
    async def test_missing_names_get_placeholders(self, config):
        analyzer = Analyzer(config, complete=FakeCompleter(leads={"leads": [{"industry": "SaaS"}]}))
        analysis = await analyzer.analyze(SOURCES, "saas", ProviderConfig())

        [lead] = await analyzer.extract_leads("saas", analysis, ProviderConfig())

        assert (lead.name, lead.company) == ("Unknown Contact", "Unknown Company")


class TestLlmClient:
    @pytest.mark.asyncio
    async def test_missing_key_is_a_configuration_error(self, config):
        config.groq_api_key = ""
        with pytest.raises(ConfigurationError) as exc_info:
            await llm_complete("hi", ProviderConfig(provider="groq"), config)
        assert exc_info.value.retryable is False

    @pytest.mark.asyncio
    async def test_groq_uses_openai_client_with_groq_base_url(self, config):
        config.groq_api_key = "gk"
        with patch("lead_intel.analysis.llm_client._call_openai",
                   new=AsyncMock(return_value="ok")) as call:
            text = await llm_complete("hi", ProviderConfig(provider="groq", model="llama"), config)

        assert text == "ok"
        args = call.await_args.args
        assert args[1] == "gk"
        assert args[2] == "llama"
        assert args[5] == GROQ_BASE_URL

    @pytest.mark.asyncio
    async def test_default_model_comes_from_config(self, config):
        with patch("lead_intel.analysis.llm_client._call_anthropic",
                   new=AsyncMock(return_value="ok")) as call:
            await llm_complete("hi", ProviderConfig(), config)
        assert call.await_args.args[2] == config.anthropic_model

    @pytest.mark.asyncio
    async def test_timeout_is_retryable(self, config):
        async def slow(*args, **kwargs):
            await asyncio.sleep(5)

        config.llm_timeout = 0.01
        with patch("lead_intel.analysis.llm_client._call_anthropic", new=slow):
            with pytest.raises(ProviderError) as exc_info:
                await llm_complete("hi", ProviderConfig(), config)
        assert exc_info.value.retryable is True


class TestErrorMapping:
    def test_auth_errors_are_permanent(self):
        err = anthropic.AuthenticationError("bad key", response=_response(401), body=None)
        assert _map_api_error("anthropic", err).retryable is False

        err = openai.AuthenticationError("bad key", response=_response(401), body=None)
        assert _map_api_error("openai", err).retryable is False

    def test_rate_limits_are_transient(self):
        err = anthropic.RateLimitError("slow down", response=_response(429), body=None)
        assert _map_api_error("anthropic", err).retryable is True

        err = openai.RateLimitError("slow down", response=_response(429), body=None)
        assert _map_api_error("groq", err).retryable is True

    def test_bad_request_is_permanent_server_error_transient(self):
        err = openai.BadRequestError("bad", response=_response(400), body=None)
        assert _map_api_error("openai", err).retryable is False

        err = anthropic.InternalServerError("oops", response=_response(500), body=None)
        assert _map_api_error("anthropic", err).retryable is True

    def test_connection_errors_are_transient(self):
        err = openai.APIConnectionError(request=httpx.Request("POST", "https://api.test/v1"))
        assert _map_api_error("openai", err).retryable is True
