"""Tests for source discovery, the blocklist and the search clients."""

import asyncio
import json
import time
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from lead_intel.errors import ConfigurationError, DiscoveryError, NoSourcesError
from lead_intel.search.discovery import SourceDiscovery, filter_blocked
from lead_intel.search.duckduckgo_client import DuckDuckGoSearch
from lead_intel.search.serper_client import SERPER_BASE_URL, search_serper


class TestFilterBlocked:
    def test_blocks_social_domains_and_subdomains(self):
        urls = [
            "https://www.linkedin.com/x",
            "https://m.facebook.com/y",
            "https://example.com/z",
        ]
        assert filter_blocked(urls) == ["https://example.com/z"]

    def test_invalid_urls_are_dropped_not_raised(self):
        urls = ["not a url", "ftp://files.example.com/a", "", "https://ok.example.com/"]
        assert filter_blocked(urls) == ["https://ok.example.com/"]

    def test_lookalike_hosts_are_kept(self):
        assert filter_blocked(["https://dropbox.com/a"]) == ["https://dropbox.com/a"]

    def test_order_is_preserved(self):
        urls = ["https://c.com", "https://x.com/post", "https://a.com", "https://b.com"]
        assert filter_blocked(urls) == ["https://c.com", "https://a.com", "https://b.com"]


class TestSourceDiscovery:
    @pytest.mark.asyncio
    async def test_results_ranked_deduplicated_and_filtered(self, config):
        config.search_provider = "serper"
        config.serper_api_key = "k"
        config.max_search_results = 3
        data = {"organic_results": [
            {"link": "https://b.com", "position": 2},
            {"link": "https://a.com", "position": 1},
            {"link": "https://www.youtube.com/watch?v=1", "position": 3},
            {"link": "https://a.com", "position": 4},
            {"link": "https://c.com", "position": 5},
            {"link": "https://d.com", "position": 6},
        ]}
        with patch("lead_intel.search.discovery.search_serper", new=AsyncMock(return_value=data)):
            urls = await SourceDiscovery(config).discover("crm tools for agencies")
        assert urls == ["https://a.com", "https://b.com", "https://c.com"]

    @pytest.mark.asyncio
    async def test_provider_error_raises_retryable_discovery_error(self, config):
        with patch("lead_intel.search.discovery.search_ddg",
                   new=AsyncMock(return_value={"error": "timeout"})):
            with pytest.raises(DiscoveryError) as exc_info:
                await SourceDiscovery(config).discover("crm tools for agencies")
        assert exc_info.value.retryable is True

    @pytest.mark.asyncio
    async def test_no_usable_urls_raises_no_sources(self, config):
        data = {"organic_results": [{"link": "https://twitter.com/a", "position": 1}]}
        with patch("lead_intel.search.discovery.search_ddg", new=AsyncMock(return_value=data)):
            with pytest.raises(NoSourcesError):
                await SourceDiscovery(config).discover("crm tools for agencies")

    @pytest.mark.asyncio
    async def test_serper_without_key_is_a_configuration_error(self, config):
        config.serper_api_key = ""
        with pytest.raises(ConfigurationError) as exc_info:
            await SourceDiscovery(config).discover("crm tools", provider="serper")
        assert exc_info.value.retryable is False


class TestSerperClient:
    @pytest.mark.asyncio
    async def test_posts_query_and_normalises_results(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["key"] = request.headers["X-API-KEY"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"organic": [
                {"title": "A", "link": "https://a.com", "snippet": "s", "position": 1},
                {"title": "no link"},
            ]})

        data = await search_serper("crm tools", "secret", num_results=5,
                                   transport=httpx.MockTransport(handler))

        assert seen == {"url": SERPER_BASE_URL, "key": "secret", "body": {"q": "crm tools", "num": 5}}
        assert data["organic_results"] == [
            {"link": "https://a.com", "title": "A", "snippet": "s", "position": 1},
        ]

    @pytest.mark.asyncio
    async def test_http_error_returns_error_dict(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(403, json={}))
        data = await search_serper("crm tools", "bad", transport=transport)
        assert data == {"error": "http_403"}


class TestDuckDuckGoSearch:
    @pytest.mark.asyncio
    async def test_results_are_mapped_to_serper_shape(self):
        def fake_search(query, num_results):
            return [
                {"href": "https://a.com", "title": "A", "body": "about a"},
                {"title": "no link"},
                {"href": "https://b.com"},
            ]

        data = await DuckDuckGoSearch(min_interval=0, search_fn=fake_search).search("crm tools")

        assert data == {"organic_results": [
            {"link": "https://a.com", "title": "A", "snippet": "about a", "position": 1},
            {"link": "https://b.com", "title": "", "snippet": "", "position": 3},
        ]}

    @pytest.mark.asyncio
    async def test_rate_limit_is_retried(self):
        attempts = []

        def flaky_search(query, num_results):
            attempts.append(query)
            if len(attempts) == 1:
                raise RuntimeError("HTTP 429 Too Many Requests")
            return [{"href": "https://a.com"}]

        data = await DuckDuckGoSearch(min_interval=0, search_fn=flaky_search).search("crm tools")

        assert len(attempts) == 2
        assert data["organic_results"][0]["link"] == "https://a.com"

    @pytest.mark.asyncio
    async def test_other_errors_are_returned_not_raised(self):
        def broken_search(query, num_results):
            raise RuntimeError("connection reset")

        data = await DuckDuckGoSearch(min_interval=0, search_fn=broken_search).search("crm tools")

        assert data == {"error": "connection reset"}

    @pytest.mark.asyncio
    async def test_queries_are_spaced_by_min_interval(self):
        stamps = []

        def fake_search(query, num_results):
            stamps.append(time.monotonic())
            return []

        client = DuckDuckGoSearch(min_interval=0.05, search_fn=fake_search)
        await asyncio.gather(client.search("one"), client.search("two"))

        assert stamps[1] - stamps[0] >= 0.045
