"""Perplexity API integration client for web-connected shipping research.

Perplexity speaks the OpenAI-compatible chat completions format, so the
request loop (retries, circuit breaker, logging) is shared with
OpenAIClient. This client adds web citations and a shipping research
helper used by the fast analysis mode.

RAILWAY DEPLOYMENT REQUIREMENTS:
- All API keys via environment variables (PERPLEXITY_API_KEY)
- Never log or expose API keys
"""

from typing import Any

from app.core.logging import LLMLogger, perplexity_logger
from app.integrations.openai import CompletionResult, OpenAIClient

SHIPPING_RESEARCH_SYSTEM_PROMPT = (
    "You are an e-commerce shipping analyst. Report only shipping facts you can "
    "verify on the company's own website. Be concise."
)


class PerplexityClient(OpenAIClient):
    """Async client for the Perplexity API with citation support."""

    settings_prefix = "perplexity"
    llm_logger: LLMLogger = perplexity_logger

    def _build_request_body(
        self,
        messages: list[dict[str, str]],
        max_tokens: int,
        temperature: float,
        response_format: dict[str, Any] | None,
    ) -> dict[str, Any]:
        body = super()._build_request_body(
            messages, max_tokens, temperature, response_format
        )
        body["return_citations"] = True
        return body

    def _extract_citations(self, response_data: dict[str, Any]) -> list[str]:
        citations = response_data.get("citations") or []
        return [str(c) for c in citations]

    async def research_shipping(
        self,
        website: str,
        timeout: float | None = None,
    ) -> CompletionResult:
        """Ask for the current shipping policy of a store.

        Args:
            website: Domain or URL of the store
            timeout: Per-request timeout in seconds

        Returns:
            CompletionResult whose text lists free shipping, standard
            delivery and express options on separate lines
        """
        user_prompt = (
            f"What are the current shipping policies for {website}? Answer in this format:\n"
            "Free shipping: <threshold or conditions, e.g. 'Free shipping on orders over $50'>\n"
            "Standard delivery: <cost and timeframe>\n"
            "Express options: <cost and timeframe>\n"
            "Promotions: <current shipping promotions, or 'None'>"
        )
        return await self.complete(
            user_prompt=user_prompt,
            system_prompt=SHIPPING_RESEARCH_SYSTEM_PROMPT,
            max_tokens=400,
            temperature=0.1,
            timeout=timeout,
        )
