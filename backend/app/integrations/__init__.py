"""Integrations layer - External service clients.

Integrations handle communication with external APIs and services.
They abstract the details of external service protocols.
"""

from app.integrations.email import EmailClient, EmailResult
from app.integrations.firecrawl import ExtractResult, FirecrawlClient
from app.integrations.openai import (
    ChatCompletionError,
    ChatCompletionTimeoutError,
    CompletionResult,
    OpenAIClient,
)
from app.integrations.perplexity import PerplexityClient
from app.integrations.web_fetcher import FetchResult, WebFetcher

__all__ = [
    # Email
    "EmailClient",
    "EmailResult",
    # Firecrawl
    "ExtractResult",
    "FirecrawlClient",
    # OpenAI
    "ChatCompletionError",
    "ChatCompletionTimeoutError",
    "CompletionResult",
    "OpenAIClient",
    # Perplexity
    "PerplexityClient",
    # Web fetcher
    "FetchResult",
    "WebFetcher",
]
