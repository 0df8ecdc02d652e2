"""
Syllabus Calendar — LLM Provider Abstraction.

Single public function `complete()` that routes to the configured provider.
The provider, endpoint, credential and timeout travel in an explicit
LLMConfig built once from settings and handed to callers.
Supports: gemini (default, REST), anthropic, openai, cohere.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    stop_after_attempt,
    wait_exponential,
)

from src.core.errors import ExtractionServiceFailure

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LLMConfig:
    """Everything needed to reach the language-model service."""

    provider: str = "gemini"
    model: str = ""
    api_key: str = ""
    endpoint: str = ""
    timeout_seconds: float = 30.0
    max_retries: int = 1
    retry_base_delay: float = 1.0
    # Low temperature, single candidate: bias toward deterministic extraction
    temperature: float = 0.1
    top_k: int = 1
    top_p: float = 0.8
    max_output_tokens: int = 2048

    @property
    def resolved_model(self) -> str:
        if self.model:
            return self.model
        return _PROVIDERS[self.provider.lower()][1]

    @classmethod
    def from_settings(cls) -> LLMConfig:
        from src.config import settings

        provider = settings.LLM_PROVIDER.lower()
        if provider not in _PROVIDERS:
            raise ValueError(
                f"Unknown LLM_PROVIDER={provider!r}. "
                f"Supported: {', '.join(_PROVIDERS)}"
            )
        config = cls(
            provider=provider,
            model=settings.LLM_MODEL,
            api_key=settings.LLM_API_KEY,
            endpoint=settings.LLM_ENDPOINT,
            timeout_seconds=settings.LLM_TIMEOUT_SECONDS,
            max_retries=settings.LLM_MAX_RETRIES,
        )
        logger.info("LLM provider: %s, model: %s", provider, config.resolved_model)
        return config


# Type alias for provider implementations
_ProviderFn = Callable[[LLMConfig, str], Awaitable[str]]

# ---------------------------------------------------------------------------
# Provider implementations
# ---------------------------------------------------------------------------


async def _complete_gemini(config: LLMConfig, prompt: str) -> str:
    url = config.endpoint.format(model=config.resolved_model)
    body = {
        "contents": [{"parts": [{"text": prompt}]}],
        "generationConfig": {
            "temperature": config.temperature,
            "topK": config.top_k,
            "topP": config.top_p,
            "maxOutputTokens": config.max_output_tokens,
        },
    }

    async with httpx.AsyncClient(timeout=config.timeout_seconds) as client:
        resp = await client.post(url, params={"key": config.api_key}, json=body)

    if not resp.is_success:
        raise ExtractionServiceFailure(
            f"Gemini API error: {resp.status_code} - {resp.text}"
        )

    data = resp.json()
    try:
        return data["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError) as exc:
        logger.error("Invalid Gemini API response format: %s", data)
        raise ExtractionServiceFailure("Invalid response format from Gemini API") from exc


async def _complete_anthropic(config: LLMConfig, prompt: str) -> str:
    import anthropic

    client = anthropic.AsyncAnthropic(api_key=config.api_key, timeout=config.timeout_seconds)
    response = await client.messages.create(
        model=config.resolved_model,
        max_tokens=config.max_output_tokens,
        temperature=config.temperature,
        messages=[{"role": "user", "content": prompt}],
    )
    return response.content[0].text


async def _complete_openai(config: LLMConfig, prompt: str) -> str:
    from openai import AsyncOpenAI

    client = AsyncOpenAI(api_key=config.api_key, timeout=config.timeout_seconds)
    response = await client.chat.completions.create(
        model=config.resolved_model,
        max_tokens=config.max_output_tokens,
        temperature=config.temperature,
        top_p=config.top_p,
        messages=[{"role": "user", "content": prompt}],
    )
    return response.choices[0].message.content or ""


async def _complete_cohere(config: LLMConfig, prompt: str) -> str:
    import cohere

    client = cohere.AsyncClientV2(api_key=config.api_key, timeout=config.timeout_seconds)
    response = await client.chat(
        model=config.resolved_model,
        max_tokens=config.max_output_tokens,
        temperature=config.temperature,
        p=config.top_p,
        k=config.top_k,
        messages=[{"role": "user", "content": prompt}],
    )
    return response.message.content[0].text


_PROVIDERS: dict[str, tuple[_ProviderFn, str]] = {
    "gemini":    (_complete_gemini,    "gemini-2.0-flash"),
    "anthropic": (_complete_anthropic, "claude-haiku-4-5-20251001"),
    "openai":    (_complete_openai,    "gpt-4o-mini"),
    "cohere":    (_complete_cohere,    "command-a-03-2025"),
}


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "LLM call failed (attempt %d), retrying in %.1fs: %s",
        retry_state.attempt_number,
        retry_state.next_action.sleep if retry_state.next_action else 0.0,
        exc,
    )


async def complete(prompt: str, config: LLMConfig) -> str:
    """Send a prompt to the configured LLM provider and return the response text.

    Retries up to `config.max_retries` times with exponential backoff.
    Raises ExtractionServiceFailure once every attempt has failed, or
    immediately when no credential is configured.
    """
    if not config.api_key:
        raise ExtractionServiceFailure("LLM API key not configured")

    provider = config.provider.lower()
    if provider not in _PROVIDERS:
        raise ExtractionServiceFailure(f"Unknown LLM provider: {provider!r}")
    provider_fn = _PROVIDERS[provider][0]

    retryer = AsyncRetrying(
        stop=stop_after_attempt(config.max_retries + 1),
        wait=wait_exponential(multiplier=config.retry_base_delay),
        sleep=asyncio.sleep,
        before_sleep=_log_retry,
    )
    try:
        async for attempt in retryer:
            with attempt:
                return await provider_fn(config, prompt)
    except RetryError as exc:
        last_exc = exc.last_attempt.exception()
        logger.error(
            "LLM call failed after %d attempt(s): %s",
            exc.last_attempt.attempt_number, last_exc,
        )
        if isinstance(last_exc, ExtractionServiceFailure):
            raise last_exc from None
        raise ExtractionServiceFailure(f"LLM call failed: {last_exc}") from last_exc
    raise ExtractionServiceFailure("LLM call produced no result")
