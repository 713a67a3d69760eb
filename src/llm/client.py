"""
LLM client abstraction for multiple LLM providers.

Provides async interface for LLM calls with:
- Structured logging of requests/responses
- Timeout handling
- Usage tracking (tokens)
- Transient-failure retry (429, 5xx, timeouts, network) with exponential
  backoff plus jitter; anything else fails immediately as non-recoverable

Supported providers:
- anthropic: Claude models via the Messages API
- openai: OpenAI chat completions
- deepseek: DeepSeek (OpenAI-compatible)
- mock: deterministic canned responses for offline runs
"""

import asyncio
import json
import random
import re
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import httpx
import structlog

from src.core.config import Settings, settings
from src.core.exceptions import (
    ConfigurationError,
    LLMError,
    LLMRateLimitError,
    LLMTimeoutError,
)

log = structlog.get_logger(__name__)

BASE_DELAY_SECONDS = 1.0

DEFAULT_MODELS: Dict[str, str] = {
    "anthropic": "claude-sonnet-4-6",
    "openai": "gpt-4o-mini",
    "deepseek": "deepseek-chat",
    "mock": "mock",
}

TRANSIENT_MESSAGE_PATTERNS = (
    "429",
    "rate limit",
    "too many requests",
    "500",
    "502",
    "503",
    "internal server error",
    "bad gateway",
    "service unavailable",
    "econnreset",
    "etimedout",
    "timeout",
    "timed out",
    "network",
    "socket hang up",
    "econnrefused",
    "connection refused",
    "connection reset",
)


# =============================================================================
# Response and Base Classes
# =============================================================================


@dataclass
class LLMResponse:
    """Standardized LLM response."""

    content: str
    model: str
    usage: Dict[str, int] = field(default_factory=dict)
    latency_ms: float = 0.0
    raw_response: Optional[Dict[str, Any]] = None


class LLMClient(ABC):
    """Abstract base for LLM providers."""

    provider_name: str = "unknown"
    model: str = "unknown"

    @abstractmethod
    async def complete(
        self,
        prompt: str,
        system: Optional[str] = None,
        response_schema: Optional[Dict[str, Any]] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> LLMResponse:
        """
        Generate a completion from the LLM.

        Args:
            prompt: User message/prompt
            system: Optional system prompt
            response_schema: Optional JSON schema describing the expected output
            temperature: Sampling temperature (0.0-2.0)
            max_tokens: Maximum tokens in response

        Returns:
            LLMResponse with content and metadata

        Raises:
            LLMError: recoverable=True after transient retries are exhausted,
                recoverable=False for any other provider failure
        """
        pass


# =============================================================================
# Transient error handling
# =============================================================================


def is_transient_error(error: BaseException) -> bool:
    """Whether an error is worth retrying at the transport level.

    Transient: HTTP 429 or 5xx, timeouts, transport/network failures, or an
    error message naming one of those conditions.
    """
    if isinstance(error, httpx.TimeoutException):
        return True
    if isinstance(error, httpx.HTTPStatusError):
        status_code = error.response.status_code
        return status_code == 429 or status_code >= 500
    if isinstance(error, httpx.TransportError):
        return True

    status_code = getattr(error, "status_code", None)
    if isinstance(status_code, int) and (status_code == 429 or status_code >= 500):
        return True

    message = str(error).lower()
    return any(pattern in message for pattern in TRANSIENT_MESSAGE_PATTERNS)


def compute_backoff(attempt: int, base_delay: float = BASE_DELAY_SECONDS) -> float:
    """Exponential backoff with up to one base_delay of random jitter."""
    return base_delay * (2**attempt) + random.random() * base_delay


def _exhausted_error(error: BaseException, attempts: int) -> LLMError:
    if isinstance(error, httpx.TimeoutException):
        return LLMTimeoutError(f"LLM call timed out after {attempts} attempts")
    if isinstance(error, httpx.HTTPStatusError):
        status_code = error.response.status_code
        if status_code == 429:
            return LLMRateLimitError(f"Rate limit exceeded after {attempts} attempts")
        return LLMError(
            f"LLM provider error {status_code} after {attempts} attempts",
            recoverable=True,
            status_code=status_code,
        )
    return LLMError(
        f"LLM call failed after {attempts} attempts: {error}", recoverable=True
    )


async def post_with_retry(
    url: str,
    headers: Dict[str, str],
    payload: Dict[str, Any],
    timeout: float,
    provider: str,
    max_attempts: int,
) -> Dict[str, Any]:
    """POST a JSON payload, retrying transient failures.

    Returns:
        Decoded JSON response body

    Raises:
        LLMTimeoutError / LLMRateLimitError / LLMError(recoverable=True): after
            max_attempts transient failures
        LLMError(recoverable=False): on any non-transient failure
    """
    for attempt in range(max_attempts):
        try:
            async with httpx.AsyncClient(timeout=timeout) as client:
                response = await client.post(url, headers=headers, json=payload)
                response.raise_for_status()
                return response.json()

        except (httpx.HTTPError, ValueError) as e:
            status_code = (
                e.response.status_code if isinstance(e, httpx.HTTPStatusError) else None
            )
            if not is_transient_error(e):
                log.error(
                    "llm_http_error",
                    provider=provider,
                    status_code=status_code,
                    error=str(e),
                )
                raise LLMError(
                    f"{provider} request failed: {e}",
                    recoverable=False,
                    status_code=status_code,
                ) from e

            log.warning(
                "llm_transient_error",
                provider=provider,
                status_code=status_code,
                error_type=type(e).__name__,
                attempt=attempt + 1,
                max_attempts=max_attempts,
            )
            if attempt + 1 >= max_attempts:
                raise _exhausted_error(e, max_attempts) from e

            delay = compute_backoff(attempt)
            log.info(
                "llm_retry_scheduled",
                provider=provider,
                delay_seconds=round(delay, 2),
                next_attempt=attempt + 2,
            )
            await asyncio.sleep(delay)

    # Unreachable: loop either returns or raises
    raise LLMError(f"{provider} request made no attempts", recoverable=False)


def _with_schema_hint(system: Optional[str], response_schema: Optional[Dict[str, Any]]) -> Optional[str]:
    if not response_schema:
        return system
    hint = (
        "Respond with a single JSON object that matches this JSON schema:\n"
        f"{json.dumps(response_schema)}"
    )
    return f"{system}\n\n{hint}" if system else hint


# =============================================================================
# Anthropic Client
# =============================================================================


class AnthropicClient(LLMClient):
    """Anthropic Claude API client.

    Uses httpx for async HTTP calls to the Messages API.
    """

    provider_name = "anthropic"

    def __init__(
        self,
        model: str,
        temperature: float,
        max_tokens: int,
        timeout: float,
        api_key: Optional[str] = None,
        max_attempts: int = 3,
    ):
        """
        Initialize Anthropic client.

        Raises:
            ConfigurationError: If API key is not configured
        """
        self.api_key = api_key or settings.anthropic_api_key
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.base_url = "https://api.anthropic.com/v1"

        if not self.api_key:
            raise ConfigurationError("ANTHROPIC_API_KEY not configured. Set it in .env.")

        log.info(
            "anthropic_client_initialized",
            model=self.model,
            timeout=self.timeout,
        )

    async def complete(
        self,
        prompt: str,
        system: Optional[str] = None,
        response_schema: Optional[Dict[str, Any]] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> LLMResponse:
        """Call the Anthropic Messages API."""
        system = _with_schema_hint(system, response_schema)

        payload: Dict[str, Any] = {
            "model": self.model,
            "max_tokens": max_tokens if max_tokens is not None else self.max_tokens,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": temperature if temperature is not None else self.temperature,
        }
        if system:
            payload["system"] = system

        headers = {
            "x-api-key": self.api_key,
            "content-type": "application/json",
            "anthropic-version": "2023-06-01",
        }

        log.debug(
            "llm_call_start",
            provider=self.provider_name,
            model=self.model,
            prompt_length=len(prompt),
            system_length=len(system) if system else 0,
        )

        start = time.perf_counter()
        data = await post_with_retry(
            f"{self.base_url}/messages",
            headers=headers,
            payload=payload,
            timeout=self.timeout,
            provider=self.provider_name,
            max_attempts=self.max_attempts,
        )
        latency_ms = (time.perf_counter() - start) * 1000

        content = ""
        if data.get("content"):
            content = data["content"][0].get("text", "")

        usage = {
            "input_tokens": data.get("usage", {}).get("input_tokens", 0),
            "output_tokens": data.get("usage", {}).get("output_tokens", 0),
        }

        log.info(
            "llm_call_complete",
            provider=self.provider_name,
            model=self.model,
            latency_ms=round(latency_ms, 2),
            input_tokens=usage["input_tokens"],
            output_tokens=usage["output_tokens"],
        )

        return LLMResponse(
            content=content,
            model=data.get("model", self.model),
            usage=usage,
            latency_ms=latency_ms,
            raw_response=data,
        )


# =============================================================================
# OpenAI-Compatible Clients
# =============================================================================


class OpenAICompatibleClient(LLMClient):
    """
    Base class for OpenAI-compatible API clients.

    Used by providers that follow the OpenAI chat completions format:
    - OpenAI: https://api.openai.com/v1
    - DeepSeek: https://api.deepseek.com
    """

    def __init__(
        self,
        model: str,
        temperature: float,
        max_tokens: int,
        timeout: float,
        base_url: str,
        provider_name: str,
        api_key: str,
        max_attempts: int = 3,
    ):
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout
        self.base_url = base_url
        self.provider_name = provider_name
        self.api_key = api_key
        self.max_attempts = max_attempts

        log.info(
            "openai_compatible_client_initialized",
            provider=self.provider_name,
            model=self.model,
            timeout=self.timeout,
        )

    async def complete(
        self,
        prompt: str,
        system: Optional[str] = None,
        response_schema: Optional[Dict[str, Any]] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> LLMResponse:
        """Call the chat completions endpoint (JSON mode when a schema is given)."""
        system = _with_schema_hint(system, response_schema)

        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature if temperature is not None else self.temperature,
            "max_tokens": max_tokens if max_tokens is not None else self.max_tokens,
        }
        if response_schema:
            payload["response_format"] = {"type": "json_object"}

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        log.debug(
            "llm_call_start",
            provider=self.provider_name,
            model=self.model,
            prompt_length=len(prompt),
            system_length=len(system) if system else 0,
        )

        start = time.perf_counter()
        data = await post_with_retry(
            f"{self.base_url}/chat/completions",
            headers=headers,
            payload=payload,
            timeout=self.timeout,
            provider=self.provider_name,
            max_attempts=self.max_attempts,
        )
        latency_ms = (time.perf_counter() - start) * 1000

        content = ""
        if data.get("choices"):
            content = data["choices"][0].get("message", {}).get("content") or ""

        usage = {
            "input_tokens": data.get("usage", {}).get("prompt_tokens", 0),
            "output_tokens": data.get("usage", {}).get("completion_tokens", 0),
        }

        log.info(
            "llm_call_complete",
            provider=self.provider_name,
            model=self.model,
            latency_ms=round(latency_ms, 2),
            input_tokens=usage["input_tokens"],
            output_tokens=usage["output_tokens"],
        )

        return LLMResponse(
            content=content,
            model=data.get("model", self.model),
            usage=usage,
            latency_ms=latency_ms,
            raw_response=data,
        )


class OpenAIClient(OpenAICompatibleClient):
    """OpenAI chat completions client."""

    def __init__(
        self,
        model: str,
        temperature: float,
        max_tokens: int,
        timeout: float,
        api_key: Optional[str] = None,
        max_attempts: int = 3,
    ):
        api_key = api_key or settings.openai_api_key
        if not api_key:
            raise ConfigurationError("OPENAI_API_KEY not configured. Set it in .env.")

        super().__init__(
            model=model,
            temperature=temperature,
            max_tokens=max_tokens,
            timeout=timeout,
            base_url="https://api.openai.com/v1",
            provider_name="openai",
            api_key=api_key,
            max_attempts=max_attempts,
        )


class DeepSeekClient(OpenAICompatibleClient):
    """
    DeepSeek API client.

    API Docs: https://platform.deepseek.com/api-docs/
    """

    def __init__(
        self,
        model: str,
        temperature: float,
        max_tokens: int,
        timeout: float,
        api_key: Optional[str] = None,
        max_attempts: int = 3,
    ):
        api_key = api_key or settings.deepseek_api_key
        if not api_key:
            raise ConfigurationError("DEEPSEEK_API_KEY not configured. Set it in .env.")

        super().__init__(
            model=model,
            temperature=temperature,
            max_tokens=max_tokens,
            timeout=timeout,
            base_url="https://api.deepseek.com",
            provider_name="deepseek",
            api_key=api_key,
            max_attempts=max_attempts,
        )


# =============================================================================
# Mock Client
# =============================================================================

FOLLOW_UP_TURN_PATTERN = re.compile(r"follow-up turn\s+(\d+)", re.IGNORECASE)


class MockLLMClient(LLMClient):
    """Deterministic offline client.

    Picks a canned JSON answer from keywords in the system prompt, so a full
    session can be walked through without a provider. On follow-up turns the
    prompts carry "follow-up turn N", which moves the canned history entry
    from "nothing known" to "period known" to "complete".
    """

    provider_name = "mock"
    model = "mock"

    def __init__(self) -> None:
        self.calls = 0
        log.info("mock_llm_client_initialized")

    async def complete(
        self,
        prompt: str,
        system: Optional[str] = None,
        response_schema: Optional[Dict[str, Any]] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> LLMResponse:
        self.calls += 1
        content = json.dumps(self._respond(system or "", prompt))
        log.debug("mock_llm_call", system_length=len(system or ""), call=self.calls)
        return LLMResponse(
            content=content,
            model=self.model,
            usage={"input_tokens": 100, "output_tokens": 50},
        )

    def _respond(self, system: str, prompt: str) -> Dict[str, Any]:
        lowered = system.lower()
        match = FOLLOW_UP_TURN_PATTERN.search(system)
        turn_number = int(match.group(1)) if match else 1

        if "classifier agent" in lowered:
            return self._classify(prompt)
        if "gap-reasoning" in lowered:
            return self._gaps(turn_number)
        if "starting a new conversation" in lowered:
            return {
                "response": "Hello! I'm collecting stories about the village. What would you like to share?",
                "follow_up_questions": [],
            }
        if "persona" in lowered:
            return self._persona(turn_number)
        if "structuring agent" in lowered:
            return self._structure(turn_number)
        return {"result": "Mock LLM response"}

    @staticmethod
    def _classify(text: str) -> Dict[str, Any]:
        lowered = text.lower().strip()
        if lowered in {"hi", "hello", "hey", "hallo", "moin"}:
            return {"category_id": "_meta", "confidence": 1.0, "intent": "greeting",
                    "is_topic_change": False, "reasoning": "User is greeting."}
        if "ask me" in lowered:
            return {"category_id": "_meta", "confidence": 1.0, "intent": "proactive_request",
                    "is_topic_change": False, "reasoning": "User wants to be asked questions."}
        if "don't know" in lowered or "no idea" in lowered:
            return {"category_id": "history", "confidence": 1.0, "intent": "dont_know",
                    "is_topic_change": False, "reasoning": "User does not know the answer."}
        return {"category_id": "history", "confidence": 0.85, "intent": "content",
                "is_topic_change": False,
                "reasoning": "The input references historical events and time periods."}

    @staticmethod
    def _gaps(turn_number: int) -> Dict[str, Any]:
        period = {"field": "period", "description": "The exact time period is unclear", "priority": "high"}
        sources = {"field": "sources", "description": "No sources or references provided", "priority": "high"}
        if turn_number >= 3:
            return {"gaps": [], "follow_up_questions": [], "reasoning": "All required fields have been filled."}
        if turn_number == 2:
            return {"gaps": [sources],
                    "follow_up_questions": ["Do you have any sources or references for this information?"],
                    "reasoning": "Period has been provided. Only sources remain missing."}
        return {"gaps": [period, sources],
                "follow_up_questions": ["Can you specify the exact time period?",
                                        "Do you have any sources or references for this information?"],
                "reasoning": "Key required fields are missing from the input."}

    @staticmethod
    def _persona(turn_number: int) -> Dict[str, Any]:
        if turn_number >= 3:
            return {"response": "Wonderful, thank you! I now have all the information I need.",
                    "follow_up_questions": []}
        if turn_number == 2:
            return {"response": "Thank you for the details! Just one more thing I would like to know.",
                    "follow_up_questions": ["Do you have any written sources or references for this?"]}
        return {"response": "Thank you for sharing this! I have a few questions to fill in some gaps.",
                "follow_up_questions": ["Can you tell me more about the time period?",
                                        "Do you know of any written sources about this?"]}

    @staticmethod
    def _structure(turn_number: int) -> Dict[str, Any]:
        if turn_number >= 3:
            return {"title": "Historical Knowledge Entry",
                    "content": "A historical account shared by a community member, with full details.",
                    "structured_data": {"period": "18th century", "sources": "Church records"},
                    "tags": ["history", "community"], "is_complete": True, "missing_fields": []}
        if turn_number == 2:
            return {"title": "Historical Knowledge Entry",
                    "content": "A historical account shared by a community member, with period details.",
                    "structured_data": {"period": "18th century"},
                    "tags": ["history", "community"], "is_complete": False, "missing_fields": ["sources"]}
        return {"title": "Historical Knowledge Entry",
                "content": "A historical account shared by a community member.",
                "structured_data": {}, "tags": ["history", "community"],
                "is_complete": False, "missing_fields": ["period", "sources"]}


# =============================================================================
# Client Factory
# =============================================================================


def get_llm_client(config: Optional[Settings] = None) -> LLMClient:
    """
    Build the LLM client described by settings.

    Called once at startup; the client is then injected into the pipeline
    stages and the session service.

    Args:
        config: Settings to use (defaults to the module-level settings)

    Raises:
        ConfigurationError: If the provider is unknown or its API key is missing
    """
    config = config or settings
    provider = config.llm_provider
    model = config.llm_model or DEFAULT_MODELS.get(provider, "")

    common = dict(
        model=model,
        temperature=config.llm_temperature,
        max_tokens=config.llm_max_tokens,
        timeout=config.llm_timeout,
        max_attempts=config.llm_transient_retries,
    )

    if provider == "anthropic":
        return AnthropicClient(api_key=config.anthropic_api_key, **common)
    elif provider == "openai":
        return OpenAIClient(api_key=config.openai_api_key, **common)
    elif provider == "deepseek":
        return DeepSeekClient(api_key=config.deepseek_api_key, **common)
    elif provider == "mock":
        return MockLLMClient()
    else:
        raise ConfigurationError(
            f"Unknown LLM provider '{provider}'. "
            f"Supported providers: anthropic, openai, deepseek, mock"
        )
