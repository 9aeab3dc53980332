"""Application configuration loaded from environment variables.

All configuration is via environment variables for Railway deployment.
No hardcoded URLs, ports, or credentials.
"""

from functools import lru_cache

from pydantic import Field, PostgresDsn
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="Shipping Comps")
    app_version: str = Field(default="1.0.0")
    debug: bool = Field(default=False)
    environment: str = Field(default="development")
    frontend_url: str | None = Field(
        default=None, description="Frontend origin allowed by CORS"
    )

    # Server - PORT is set dynamically by Railway
    port: int = Field(default=8000, description="Port to bind to (Railway sets this)")
    host: str = Field(default="0.0.0.0", description="Host to bind to")

    # Database
    database_url: PostgresDsn = Field(
        ...,
        description="PostgreSQL connection string",
    )
    db_pool_size: int = Field(default=5, description="Database connection pool size")
    db_max_overflow: int = Field(default=10, description="Max overflow connections")
    db_pool_timeout: int = Field(default=30, description="Pool timeout in seconds")
    db_slow_query_threshold_ms: int = Field(
        default=100, description="Threshold for slow query warnings (ms)"
    )
    db_connect_timeout: int = Field(
        default=60, description="Connection timeout in seconds (Railway cold-start)"
    )
    db_command_timeout: int = Field(
        default=60, description="Command timeout in seconds"
    )

    # Logging
    log_level: str = Field(default="INFO", description="Log level")
    log_format: str = Field(default="json", description="Log format: json or text")

    # OpenAI (profiling, discovery, recommendations)
    openai_api_key: str | None = Field(
        default=None,
        description="OpenAI API key for chat completions",
    )
    openai_api_url: str = Field(
        default="https://api.openai.com/v1",
        description="Base URL of the OpenAI-compatible API",
    )
    openai_model: str = Field(default="gpt-4o", description="Chat completion model")
    openai_timeout: float = Field(
        default=25.0, description="OpenAI request timeout in seconds"
    )
    openai_max_retries: int = Field(
        default=2, description="Maximum retry attempts for OpenAI requests"
    )
    openai_retry_delay: float = Field(
        default=1.0, description="Base delay between retries in seconds"
    )
    openai_max_tokens: int = Field(
        default=800, description="Default maximum tokens in OpenAI response"
    )
    openai_circuit_failure_threshold: int = Field(
        default=5, description="Failures before circuit opens"
    )
    openai_circuit_recovery_timeout: float = Field(
        default=60.0, description="Seconds before attempting recovery"
    )

    # Perplexity (web-connected shipping research in fast mode)
    perplexity_api_key: str | None = Field(
        default=None,
        description="Perplexity API key for web-connected completions",
    )
    perplexity_api_url: str = Field(
        default="https://api.perplexity.ai",
        description="Base URL of the Perplexity API",
    )
    perplexity_model: str = Field(default="sonar", description="Perplexity model")
    perplexity_timeout: float = Field(
        default=18.0, description="Perplexity request timeout in seconds"
    )
    perplexity_max_retries: int = Field(
        default=2, description="Maximum retry attempts for Perplexity requests"
    )
    perplexity_retry_delay: float = Field(
        default=1.0, description="Base delay between retries in seconds"
    )
    perplexity_max_tokens: int = Field(
        default=400, description="Default maximum tokens in Perplexity response"
    )
    perplexity_circuit_failure_threshold: int = Field(
        default=5, description="Failures before circuit opens"
    )
    perplexity_circuit_recovery_timeout: float = Field(
        default=60.0, description="Seconds before attempting recovery"
    )

    # Firecrawl (structured extraction)
    firecrawl_api_key: str | None = Field(
        default=None,
        description="Firecrawl API key for structured scraping",
    )
    firecrawl_api_url: str = Field(
        default="https://api.firecrawl.dev",
        description="Firecrawl API base URL",
    )
    firecrawl_timeout: float = Field(
        default=25.0, description="Firecrawl request timeout in seconds"
    )
    firecrawl_wait_for_ms: int = Field(
        default=3000, description="Milliseconds Firecrawl waits for page render"
    )
    firecrawl_max_retries: int = Field(
        default=1, description="Maximum attempts for Firecrawl requests"
    )
    firecrawl_retry_delay: float = Field(
        default=1.0, description="Base delay between retries in seconds"
    )
    firecrawl_circuit_failure_threshold: int = Field(
        default=5, description="Failures before circuit opens"
    )
    firecrawl_circuit_recovery_timeout: float = Field(
        default=60.0, description="Seconds before attempting recovery"
    )

    # Raw page fetcher
    fetch_timeout: float = Field(
        default=10.0, description="Raw HTML fetch timeout in seconds"
    )
    fetch_max_chars: int = Field(
        default=15000, description="Character budget for extracted page text"
    )
    fetch_user_agent: str = Field(
        default=(
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
            "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
        ),
        description="Browser-like User-Agent for page fetches",
    )

    # Analysis pipeline
    content_strategy: str = Field(
        default="auto",
        description="Content acquisition strategy: raw, structured or auto",
    )
    discovery_fast_count: int = Field(
        default=6, description="Competitors discovered in fast mode"
    )
    discovery_comprehensive_count: int = Field(
        default=8, description="Competitors discovered in comprehensive mode"
    )
    discovery_max_count: int = Field(
        default=10, description="Hard cap on discovered competitors"
    )
    discovery_verify_urls: bool = Field(
        default=False, description="Drop discovered competitors that do not respond"
    )
    discovery_verify_timeout: float = Field(
        default=10.0, description="Reachability check timeout in seconds"
    )
    extraction_fast_timeout: float = Field(
        default=18.0, description="Per-competitor extraction timeout (fast mode)"
    )
    extraction_comprehensive_timeout: float = Field(
        default=25.0,
        description="Per-competitor extraction timeout (comprehensive mode)",
    )
    pipeline_stage_timeout: float = Field(
        default=25.0,
        description="Timeout in seconds for each sequential pipeline stage",
    )

    # Scheduler / stale analysis reaper
    scheduler_enabled: bool = Field(
        default=True, description="Run the background scheduler"
    )
    scheduler_misfire_grace_time: int = Field(
        default=60, description="Seconds a missed job may still run late"
    )
    scheduler_job_coalesce: bool = Field(
        default=True, description="Collapse missed runs into one"
    )
    scheduler_job_default_max_instances: int = Field(
        default=1, description="Concurrent instances allowed per job"
    )
    reaper_interval_minutes: int = Field(
        default=2, description="Minutes between stale analysis sweeps"
    )
    reaper_stale_after_minutes: int = Field(
        default=3, description="Minutes before a processing analysis is stale"
    )

    # SMTP email
    smtp_host: str | None = Field(default=None, description="SMTP server host")
    smtp_port: int = Field(default=587, description="SMTP server port")
    smtp_username: str | None = Field(default=None, description="SMTP username")
    smtp_password: str | None = Field(default=None, description="SMTP password")
    smtp_use_tls: bool = Field(default=True, description="Upgrade with STARTTLS")
    smtp_use_ssl: bool = Field(default=False, description="Connect over SSL")
    smtp_timeout: float = Field(default=30.0, description="SMTP timeout in seconds")
    smtp_from_email: str | None = Field(default=None, description="Sender address")
    smtp_from_name: str = Field(default="Shipping Comps", description="Sender name")
    email_circuit_failure_threshold: int = Field(
        default=5, description="Failures before circuit opens"
    )
    email_circuit_recovery_timeout: float = Field(
        default=60.0, description="Seconds before attempting recovery"
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
