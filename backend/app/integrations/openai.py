"""OpenAI chat completion client used for profiling, discovery and recommendations.

Features:
- Async HTTP client using httpx (direct API calls, OpenAI-compatible format)
- Circuit breaker for fault tolerance
- Retry logic with exponential backoff
- Handles timeouts, rate limits (429), auth failures (401/403)
- Optional strict JSON schema response format
- Token usage logging for quota tracking

ERROR LOGGING REQUIREMENTS:
- Log all outbound API calls with model, timing
- Log request/response bodies at DEBUG level (truncate large responses)
- Log and handle: timeouts, rate limits (429), auth failures (401/403)
- Include retry attempt number in logs
- Mask API keys and tokens in all logs
- Log circuit breaker state changes

RAILWAY DEPLOYMENT REQUIREMENTS:
- All API keys via environment variables (OPENAI_API_KEY)
- Never log or expose API keys
- Implement request timeouts on every call
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any

import httpx

from app.core.circuit_breaker import CircuitBreaker, CircuitBreakerConfig
from app.core.config import get_settings
from app.core.logging import LLMLogger, get_logger, openai_logger

logger = get_logger(__name__)


@dataclass
class CompletionResult:
    """Result of a chat completion request."""

    success: bool
    text: str | None = None
    citations: list[str] = field(default_factory=list)
    input_tokens: int | None = None
    output_tokens: int | None = None
    error: str | None = None
    status_code: int | None = None
    duration_ms: float = 0.0
    request_id: str | None = None


class ChatCompletionError(Exception):
    """Base exception for chat completion API errors."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        request_id: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.request_id = request_id


class ChatCompletionTimeoutError(ChatCompletionError):
    """Raised when a request times out."""

    pass


class OpenAIClient:
    """Async client for an OpenAI-compatible chat completions API.

    Settings are read from ``<settings_prefix>_*`` fields so that
    other OpenAI-compatible providers can reuse the request loop.
    """

    settings_prefix = "openai"
    llm_logger: LLMLogger = openai_logger

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        model: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        retry_delay: float | None = None,
        max_tokens: int | None = None,
    ) -> None:
        settings = get_settings()
        prefix = self.settings_prefix

        self._api_key = api_key or getattr(settings, f"{prefix}_api_key")
        self._base_url = base_url or getattr(settings, f"{prefix}_api_url")
        self._model = model or getattr(settings, f"{prefix}_model")
        self._timeout = timeout or getattr(settings, f"{prefix}_timeout")
        self._max_retries = (
            max_retries
            if max_retries is not None
            else getattr(settings, f"{prefix}_max_retries")
        )
        self._retry_delay = (
            retry_delay
            if retry_delay is not None
            else getattr(settings, f"{prefix}_retry_delay")
        )
        self._max_tokens = max_tokens or getattr(settings, f"{prefix}_max_tokens")

        self._circuit_breaker = CircuitBreaker(
            CircuitBreakerConfig(
                failure_threshold=getattr(settings, f"{prefix}_circuit_failure_threshold"),
                recovery_timeout=getattr(settings, f"{prefix}_circuit_recovery_timeout"),
            ),
            name=prefix,
            event_logger=self.llm_logger,
        )

        self._client: httpx.AsyncClient | None = None
        self._available = bool(self._api_key)

    @property
    def available(self) -> bool:
        """Check if the client is configured."""
        return self._available

    @property
    def model(self) -> str:
        """Get the model being used."""
        return self._model

    @property
    def circuit_breaker(self) -> CircuitBreaker:
        """Get the circuit breaker instance."""
        return self._circuit_breaker

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            headers: dict[str, str] = {
                "Content-Type": "application/json",
                "Accept": "application/json",
            }
            if self._api_key:
                headers["Authorization"] = f"Bearer {self._api_key}"

            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                headers=headers,
                timeout=httpx.Timeout(self._timeout),
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None
        logger.info(f"{self.llm_logger.display_name} client closed")

    def _build_request_body(
        self,
        messages: list[dict[str, str]],
        max_tokens: int,
        temperature: float,
        response_format: dict[str, Any] | None,
    ) -> dict[str, Any]:
        body: dict[str, Any] = {
            "model": self._model,
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        if response_format is not None:
            body["response_format"] = response_format
        return body

    def _extract_citations(self, response_data: dict[str, Any]) -> list[str]:
        return []

    async def complete(
        self,
        user_prompt: str,
        system_prompt: str | None = None,
        max_tokens: int | None = None,
        temperature: float = 0.2,
        response_format: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> CompletionResult:
        """Send a chat completion request.

        Args:
            user_prompt: The user message/prompt
            system_prompt: Optional system prompt
            max_tokens: Maximum response tokens (overrides default)
            temperature: Sampling temperature
            response_format: Optional structured output format
                (e.g. {"type": "json_schema", "json_schema": {...}})
            timeout: Per-request timeout in seconds (overrides default)

        Returns:
            CompletionResult with response text and metadata
        """
        name = self.llm_logger.display_name
        if not self._available:
            return CompletionResult(
                success=False,
                error=f"{name} not configured (missing API key)",
            )

        if not await self._circuit_breaker.can_execute():
            self.llm_logger.graceful_fallback("complete", "Circuit breaker open")
            return CompletionResult(success=False, error="Circuit breaker is open")

        start_time = time.monotonic()
        client = await self._get_client()
        request_timeout = timeout or self._timeout
        last_error: Exception | None = None
        request_id: str | None = None

        messages: list[dict[str, str]] = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": user_prompt})

        request_body = self._build_request_body(
            messages,
            max_tokens or self._max_tokens,
            temperature,
            response_format,
        )

        for attempt in range(max(self._max_retries, 1)):
            attempt_start = time.monotonic()

            try:
                self.llm_logger.api_call_start(
                    self._model,
                    len(user_prompt),
                    retry_attempt=attempt,
                    request_id=request_id,
                )
                self.llm_logger.request_body(
                    self._model, system_prompt or "", user_prompt
                )

                response = await client.post(
                    "/chat/completions",
                    json=request_body,
                    timeout=httpx.Timeout(request_timeout),
                )
                duration_ms = (time.monotonic() - attempt_start) * 1000
                request_id = response.headers.get("x-request-id")

                if response.status_code == 429:
                    retry_after_str = response.headers.get("retry-after")
                    retry_after = float(retry_after_str) if retry_after_str else None
                    self.llm_logger.rate_limit(
                        self._model, retry_after=retry_after, request_id=request_id
                    )
                    await self._circuit_breaker.record_failure()

                    if (
                        attempt < self._max_retries - 1
                        and retry_after
                        and retry_after <= 60
                    ):
                        await asyncio.sleep(retry_after)
                        continue

                    return CompletionResult(
                        success=False,
                        error="Rate limit exceeded",
                        status_code=429,
                        request_id=request_id,
                        duration_ms=duration_ms,
                    )

                if response.status_code in (401, 403):
                    self.llm_logger.auth_failure(response.status_code)
                    await self._circuit_breaker.record_failure()
                    return CompletionResult(
                        success=False,
                        error=f"Authentication failed ({response.status_code})",
                        status_code=response.status_code,
                        request_id=request_id,
                        duration_ms=duration_ms,
                    )

                if response.status_code >= 500:
                    error_msg = f"Server error ({response.status_code})"
                    self.llm_logger.api_call_error(
                        self._model,
                        duration_ms,
                        response.status_code,
                        error_msg,
                        "ServerError",
                        retry_attempt=attempt,
                        request_id=request_id,
                    )
                    await self._circuit_breaker.record_failure()

                    if attempt < self._max_retries - 1:
                        delay = self._retry_delay * (2**attempt)
                        logger.warning(
                            f"{name} request attempt {attempt + 1} failed, "
                            f"retrying in {delay}s",
                            extra={
                                "attempt": attempt + 1,
                                "max_retries": self._max_retries,
                                "delay_seconds": delay,
                                "status_code": response.status_code,
                            },
                        )
                        await asyncio.sleep(delay)
                        continue

                    return CompletionResult(
                        success=False,
                        error=error_msg,
                        status_code=response.status_code,
                        request_id=request_id,
                        duration_ms=duration_ms,
                    )

                if response.status_code >= 400:
                    # Client error - don't retry
                    error_body = response.json() if response.content else None
                    error_msg = (
                        error_body.get("error", {}).get("message", str(error_body))
                        if error_body and isinstance(error_body, dict)
                        else "Client error"
                    )
                    self.llm_logger.api_call_error(
                        self._model,
                        duration_ms,
                        response.status_code,
                        error_msg,
                        "ClientError",
                        retry_attempt=attempt,
                        request_id=request_id,
                    )
                    return CompletionResult(
                        success=False,
                        error=f"Client error ({response.status_code}): {error_msg}",
                        status_code=response.status_code,
                        request_id=request_id,
                        duration_ms=duration_ms,
                    )

                response_data = response.json()
                total_duration_ms = (time.monotonic() - start_time) * 1000

                choices = response_data.get("choices", [])
                text = ""
                if choices:
                    message = choices[0].get("message", {})
                    text = message.get("content") or ""

                usage = response_data.get("usage") or {}
                input_tokens = usage.get("prompt_tokens")
                output_tokens = usage.get("completion_tokens")

                self.llm_logger.api_call_success(
                    self._model,
                    duration_ms,
                    input_tokens=input_tokens,
                    output_tokens=output_tokens,
                    request_id=request_id,
                )
                self.llm_logger.response_body(self._model, text, duration_ms)
                if input_tokens and output_tokens:
                    self.llm_logger.token_usage(self._model, input_tokens, output_tokens)

                await self._circuit_breaker.record_success()

                return CompletionResult(
                    success=True,
                    text=text,
                    citations=self._extract_citations(response_data),
                    input_tokens=input_tokens,
                    output_tokens=output_tokens,
                    request_id=request_id,
                    duration_ms=total_duration_ms,
                )

            except httpx.TimeoutException:
                duration_ms = (time.monotonic() - attempt_start) * 1000
                self.llm_logger.timeout(self._model, request_timeout)
                await self._circuit_breaker.record_failure()

                if attempt < self._max_retries - 1:
                    delay = self._retry_delay * (2**attempt)
                    logger.warning(
                        f"{name} request attempt {attempt + 1} timed out, "
                        f"retrying in {delay}s",
                        extra={
                            "attempt": attempt + 1,
                            "max_retries": self._max_retries,
                            "delay_seconds": delay,
                        },
                    )
                    await asyncio.sleep(delay)
                    continue

                last_error = ChatCompletionTimeoutError(
                    f"Request timed out after {request_timeout}s"
                )

            except httpx.RequestError as e:
                duration_ms = (time.monotonic() - attempt_start) * 1000
                self.llm_logger.api_call_error(
                    self._model,
                    duration_ms,
                    None,
                    str(e),
                    type(e).__name__,
                    retry_attempt=attempt,
                    request_id=request_id,
                )
                await self._circuit_breaker.record_failure()

                if attempt < self._max_retries - 1:
                    delay = self._retry_delay * (2**attempt)
                    await asyncio.sleep(delay)
                    continue

                last_error = ChatCompletionError(f"Request failed: {e}")

        total_duration_ms = (time.monotonic() - start_time) * 1000
        return CompletionResult(
            success=False,
            error=str(last_error) if last_error else "Request failed after all retries",
            duration_ms=total_duration_ms,
            request_id=request_id,
        )


def json_schema_format(name: str, schema: dict[str, Any]) -> dict[str, Any]:
    """Build a strict json_schema response_format block."""
    return {
        "type": "json_schema",
        "json_schema": {"name": name, "schema": schema, "strict": True},
    }
