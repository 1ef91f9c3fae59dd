"""Unified LLM client: routes a prompt to the provider named by the caller.

There is no automatic fallback between providers. Every failure is mapped
onto the pipeline error taxonomy so the job record says whether retrying
(possibly with another provider) can help.
"""

from __future__ import annotations

import asyncio
import logging

import anthropic
import openai

from lead_intel.config import Config
from lead_intel.errors import ConfigurationError, ProviderError
from lead_intel.models import ProviderConfig

logger = logging.getLogger(__name__)

GROQ_BASE_URL = "https://api.groq.com/openai/v1"

PROVIDERS = ("anthropic", "openai", "groq")


def resolve_model(provider_config: ProviderConfig, config: Config) -> str:
    return provider_config.model or config.model_for(provider_config.provider)


async def llm_complete(
    prompt: str,
    provider_config: ProviderConfig,
    config: Config,
    max_tokens: int | None = None,
    temperature: float | None = None,
) -> str:
    """Send a prompt to the configured provider and return the response text.

    Raises ConfigurationError when the provider's key is missing and
    ProviderError for any API failure.
    """
    provider = provider_config.provider
    if provider not in PROVIDERS:
        raise ConfigurationError(f"Unknown LLM provider: {provider}")
    api_key = config.api_key_for(provider)
    if not api_key:
        raise ConfigurationError(f"No API key configured for provider '{provider}'")

    model = resolve_model(provider_config, config)
    max_tokens = max_tokens or config.analysis_max_tokens
    temperature = config.analysis_temperature if temperature is None else temperature

    try:
        if provider == "anthropic":
            call = _call_anthropic(prompt, api_key, model, max_tokens, temperature)
        else:
            base_url = GROQ_BASE_URL if provider == "groq" else None
            call = _call_openai(prompt, api_key, model, max_tokens, temperature, base_url)
        return await asyncio.wait_for(call, timeout=config.llm_timeout)
    except asyncio.TimeoutError:
        logger.warning("%s call timed out after %ds", provider, config.llm_timeout)
        raise ProviderError(
            f"{provider} call timed out after {config.llm_timeout}s", retryable=True,
        )
    except (anthropic.APIError, openai.APIError) as e:
        raise _map_api_error(provider, e) from e


def _map_api_error(provider: str, e: Exception) -> ProviderError:
    """Classify an SDK error as permanent (auth, bad request) or transient."""
    if isinstance(e, (anthropic.AuthenticationError, anthropic.PermissionDeniedError,
                      openai.AuthenticationError, openai.PermissionDeniedError)):
        logger.error("%s rejected credentials: %s", provider, e)
        return ProviderError(f"{provider} authentication failed: {e}", retryable=False)
    if isinstance(e, (anthropic.RateLimitError, openai.RateLimitError)):
        logger.warning("%s rate limited: %s", provider, e)
        return ProviderError(f"{provider} rate limited: {e}", retryable=True)
    if isinstance(e, (anthropic.APIConnectionError, openai.APIConnectionError)):
        # includes the SDKs' own timeout errors
        return ProviderError(f"{provider} connection error: {e}", retryable=True)
    status = getattr(e, "status_code", None)
    if status is not None and status < 500:
        logger.error("%s HTTP %d: %s", provider, status, e)
        return ProviderError(f"{provider} request rejected (HTTP {status}): {e}", retryable=False)
    logger.warning("%s error: %s", provider, e)
    return ProviderError(f"{provider} error: {e}", retryable=True)


async def _call_anthropic(
    prompt: str,
    api_key: str,
    model: str,
    max_tokens: int,
    temperature: float,
) -> str:
    client = anthropic.AsyncAnthropic(api_key=api_key)
    response = await client.messages.create(
        model=model,
        max_tokens=max_tokens,
        temperature=temperature,
        messages=[{"role": "user", "content": prompt}],
    )
    return "".join(block.text for block in response.content if block.type == "text")


async def _call_openai(
    prompt: str,
    api_key: str,
    model: str,
    max_tokens: int,
    temperature: float,
    base_url: str | None = None,
) -> str:
    """OpenAI chat completion; Groq uses the same API at a different base URL."""
    client = openai.AsyncOpenAI(api_key=api_key, base_url=base_url)
    response = await client.chat.completions.create(
        model=model,
        max_tokens=max_tokens,
        temperature=temperature,
        messages=[{"role": "user", "content": prompt}],
    )
    return response.choices[0].message.content or ""
