"""Configuration management via environment variables and .env file."""

from __future__ import annotations

import os
import sys

from dotenv import load_dotenv
from pydantic import BaseModel


class Config(BaseModel):
    """Application configuration loaded from environment."""

    # API keys (serper optional, falls back to DuckDuckGo)
    serper_api_key: str = ""
    anthropic_api_key: str = ""
    openai_api_key: str = ""
    groq_api_key: str = ""

    # Default providers
    search_provider: str = "serper"
    llm_provider: str = "anthropic"

    # Model defaults per provider
    anthropic_model: str = "claude-sonnet-4-5-20250929"
    openai_model: str = "gpt-4o"
    groq_model: str = "llama-3.3-70b-versatile"
    analysis_max_tokens: int = 8000
    analysis_temperature: float = 0.3
    llm_timeout: int = 120

    # Search settings
    max_search_results: int = 10

    # Scraping
    extraction_strategy: str = "jina"  # jina | browser | http
    scrape_chunk_size: int = 5
    jina_delay_ms: int = 1000
    scrape_timeout: int = 30
    content_max_chars: int = 15000

    # Cache
    query_cache_ttl_hours: int = 24    # L1: whole research answers
    url_cache_ttl_days: int = 7        # L2: per-URL scrapes

    # Storage
    db_path: str = ".lead_intel.db"

    # Progress broadcasting
    broadcast_queue_size: int = 100
    broadcast_backlog: int = 200
    broadcast_retained_jobs: int = 100   # finished jobs whose backlog is kept for replay

    # Web server
    web_host: str = "0.0.0.0"
    web_port: int = 8000

    def model_for(self, provider: str) -> str:
        """Default model name for an LLM provider."""
        return {
            "anthropic": self.anthropic_model,
            "openai": self.openai_model,
            "groq": self.groq_model,
        }.get(provider, "")

    def api_key_for(self, provider: str) -> str:
        """API key for an LLM provider ('' when not configured)."""
        return {
            "anthropic": self.anthropic_api_key,
            "openai": self.openai_api_key,
            "groq": self.groq_api_key,
        }.get(provider, "")


def load_config() -> Config:
    """Load configuration from .env file and environment variables.

    Environment variables override .env values. Missing keys are not fatal
    here: a job that needs a missing key fails with a permanent error.
    """
    load_dotenv()

    serper_key = os.getenv("SERPER_API_KEY", "")
    anthropic_key = os.getenv("ANTHROPIC_API_KEY", "")
    openai_key = os.getenv("OPENAI_API_KEY", "")
    groq_key = os.getenv("GROQ_API_KEY", "")

    if not anthropic_key and not openai_key and not groq_key:
        print(
            "  Note: no LLM key set (ANTHROPIC_API_KEY, OPENAI_API_KEY or GROQ_API_KEY)"
            "; analysis will fail until one is configured",
            file=sys.stderr,
        )

    search_provider = os.getenv("SEARCH_PROVIDER", "serper")
    if search_provider == "serper" and not serper_key:
        print("  Note: SERPER_API_KEY not set, using free DuckDuckGo search", file=sys.stderr)
        search_provider = "duckduckgo"

    return Config(
        serper_api_key=serper_key,
        anthropic_api_key=anthropic_key,
        openai_api_key=openai_key,
        groq_api_key=groq_key,
        search_provider=search_provider,
        llm_provider=os.getenv("LLM_PROVIDER", "anthropic"),
        anthropic_model=os.getenv("ANTHROPIC_MODEL", "claude-sonnet-4-5-20250929"),
        openai_model=os.getenv("OPENAI_MODEL", "gpt-4o"),
        groq_model=os.getenv("GROQ_MODEL", "llama-3.3-70b-versatile"),
        analysis_max_tokens=int(os.getenv("ANALYSIS_MAX_TOKENS", "8000")),
        llm_timeout=int(os.getenv("LLM_TIMEOUT", "120")),
        max_search_results=int(os.getenv("MAX_SEARCH_RESULTS", "10")),
        extraction_strategy=os.getenv("EXTRACTION_STRATEGY", "jina"),
        scrape_chunk_size=int(os.getenv("SCRAPE_CHUNK_SIZE", "5")),
        jina_delay_ms=int(os.getenv("JINA_DELAY_MS", "1000")),
        scrape_timeout=int(os.getenv("SCRAPE_TIMEOUT", "30")),
        content_max_chars=int(os.getenv("CONTENT_MAX_CHARS", "15000")),
        query_cache_ttl_hours=int(os.getenv("QUERY_CACHE_TTL_HOURS", "24")),
        url_cache_ttl_days=int(os.getenv("URL_CACHE_TTL_DAYS", "7")),
        db_path=os.getenv("DB_PATH", ".lead_intel.db"),
        broadcast_queue_size=int(os.getenv("BROADCAST_QUEUE_SIZE", "100")),
        broadcast_backlog=int(os.getenv("BROADCAST_BACKLOG", "200")),
        broadcast_retained_jobs=int(os.getenv("BROADCAST_RETAINED_JOBS", "100")),
        web_host=os.getenv("WEB_HOST", "0.0.0.0"),
        web_port=int(os.getenv("WEB_PORT", "8000")),
    )
