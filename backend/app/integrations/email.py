"""SMTP client used to deliver analysis reports by email.

Features:
- Async SMTP delivery using aiosmtplib (implicit SSL or STARTTLS)
- Multipart messages with plain text and HTML alternatives
- Circuit breaker for fault tolerance
- Retry logic with exponential backoff on timeouts and connection errors

ERROR LOGGING REQUIREMENTS:
- Log all outbound sends with recipient (truncated) and timing
- Log and handle: timeouts, connection errors, auth failures
- Include retry attempt number in logs
- Never log SMTP credentials

RAILWAY DEPLOYMENT REQUIREMENTS:
- All credentials via environment variables (SMTP_*)
- Implement timeouts on every connection
"""

import asyncio
import time
from dataclasses import dataclass
from email.message import EmailMessage

import aiosmtplib

from app.core.circuit_breaker import CircuitBreaker, CircuitBreakerConfig
from app.core.config import get_settings
from app.core.logging import get_logger

logger = get_logger(__name__)

RETRYABLE_ERRORS = (
    TimeoutError,
    aiosmtplib.SMTPConnectError,
    aiosmtplib.SMTPServerDisconnected,
    aiosmtplib.SMTPTimeoutError,
    OSError,
)


@dataclass
class EmailResult:
    """Result of an email send operation."""

    success: bool
    recipient: str
    subject: str
    error: str | None = None
    duration_ms: float = 0.0
    retry_attempt: int = 0


class EmailClient:
    """Async SMTP sender with retries and a circuit breaker."""

    def __init__(
        self,
        smtp_host: str | None = None,
        smtp_port: int | None = None,
        smtp_username: str | None = None,
        smtp_password: str | None = None,
        use_tls: bool | None = None,
        use_ssl: bool | None = None,
        timeout: float | None = None,
        from_email: str | None = None,
        from_name: str | None = None,
    ) -> None:
        settings = get_settings()

        self._host = smtp_host or settings.smtp_host
        self._port = smtp_port or settings.smtp_port
        self._username = smtp_username or settings.smtp_username
        self._password = smtp_password or settings.smtp_password
        self._use_tls = use_tls if use_tls is not None else settings.smtp_use_tls
        self._use_ssl = use_ssl if use_ssl is not None else settings.smtp_use_ssl
        self._timeout = timeout or settings.smtp_timeout
        self._from_email = from_email or settings.smtp_from_email
        self._from_name = from_name or settings.smtp_from_name

        self._circuit_breaker = CircuitBreaker(
            CircuitBreakerConfig(
                failure_threshold=settings.email_circuit_failure_threshold,
                recovery_timeout=settings.email_circuit_recovery_timeout,
            ),
            name="email",
        )

        self._available = bool(self._host and self._from_email)

    @property
    def available(self) -> bool:
        """Check if SMTP delivery is configured."""
        return self._available

    @property
    def circuit_breaker(self) -> CircuitBreaker:
        """Get the circuit breaker instance."""
        return self._circuit_breaker

    def build_message(
        self, recipient: str, subject: str, body_html: str, body_text: str
    ) -> EmailMessage:
        """Build a multipart/alternative message (text first, HTML preferred)."""
        message = EmailMessage()
        message["From"] = f"{self._from_name} <{self._from_email}>"
        message["To"] = recipient
        message["Subject"] = subject
        message.set_content(body_text)
        message.add_alternative(body_html, subtype="html")
        return message

    async def _deliver(self, message: EmailMessage) -> None:
        async with aiosmtplib.SMTP(
            hostname=self._host,
            port=self._port,
            use_tls=self._use_ssl,
            start_tls=self._use_tls and not self._use_ssl,
            timeout=self._timeout,
        ) as smtp:
            if self._username and self._password:
                await smtp.login(self._username, self._password)
            await smtp.send_message(message)

    async def send(
        self,
        recipient: str,
        subject: str,
        body_html: str,
        body_text: str,
        max_retries: int = 3,
        retry_delay: float = 1.0,
    ) -> EmailResult:
        """Send an email.

        Args:
            recipient: Recipient email address
            subject: Email subject
            body_html: HTML body content
            body_text: Plain text body content
            max_retries: Maximum attempts for retryable errors
            retry_delay: Base delay between retries

        Returns:
            EmailResult with send status and metadata
        """
        if not self._available:
            logger.warning(
                "Email client not configured",
                extra={"recipient": recipient[:50]},
            )
            return EmailResult(
                success=False,
                recipient=recipient,
                subject=subject,
                error="Email client not configured (missing SMTP settings)",
            )

        if not await self._circuit_breaker.can_execute():
            logger.warning(
                "Email circuit breaker open, rejecting send",
                extra={"recipient": recipient[:50], "subject": subject[:50]},
            )
            return EmailResult(
                success=False,
                recipient=recipient,
                subject=subject,
                error="Circuit breaker is open",
            )

        message = self.build_message(recipient, subject, body_html, body_text)
        start_time = time.monotonic()
        last_error = "Send failed after all retries"

        for attempt in range(max_retries):
            attempt_start = time.monotonic()
            logger.debug(
                "Sending email",
                extra={
                    "recipient": recipient[:50],
                    "subject": subject[:50],
                    "retry_attempt": attempt,
                },
            )

            try:
                await self._deliver(message)
            except aiosmtplib.SMTPAuthenticationError as e:
                logger.error(
                    "Email authentication failed",
                    extra={
                        "error_type": type(e).__name__,
                        "error_message": str(e),
                        "retry_attempt": attempt,
                    },
                )
                await self._circuit_breaker.record_failure()
                return EmailResult(
                    success=False,
                    recipient=recipient,
                    subject=subject,
                    error=f"Authentication failed: {e}",
                    duration_ms=(time.monotonic() - start_time) * 1000,
                    retry_attempt=attempt,
                )
            except RETRYABLE_ERRORS as e:
                logger.warning(
                    "Email delivery attempt failed",
                    extra={
                        "recipient": recipient[:50],
                        "error_type": type(e).__name__,
                        "error_message": str(e),
                        "duration_ms": round((time.monotonic() - attempt_start) * 1000, 2),
                        "retry_attempt": attempt,
                    },
                )
                await self._circuit_breaker.record_failure()
                last_error = f"{type(e).__name__}: {e}"
                if attempt < max_retries - 1:
                    await asyncio.sleep(retry_delay * (2**attempt))
                    continue
                break
            except aiosmtplib.SMTPException as e:
                # Rejected recipient or message; retrying will not help
                logger.error(
                    "Email rejected by SMTP server",
                    extra={
                        "recipient": recipient[:50],
                        "error_type": type(e).__name__,
                        "error_message": str(e),
                        "retry_attempt": attempt,
                    },
                )
                await self._circuit_breaker.record_success()
                return EmailResult(
                    success=False,
                    recipient=recipient,
                    subject=subject,
                    error=f"Rejected: {e}",
                    duration_ms=(time.monotonic() - start_time) * 1000,
                    retry_attempt=attempt,
                )

            total_duration_ms = (time.monotonic() - start_time) * 1000
            logger.info(
                "Email sent",
                extra={
                    "recipient": recipient[:50],
                    "subject": subject[:50],
                    "duration_ms": round(total_duration_ms, 2),
                    "retry_attempt": attempt,
                },
            )
            await self._circuit_breaker.record_success()
            return EmailResult(
                success=True,
                recipient=recipient,
                subject=subject,
                duration_ms=total_duration_ms,
                retry_attempt=attempt,
            )

        return EmailResult(
            success=False,
            recipient=recipient,
            subject=subject,
            error=last_error,
            duration_ms=(time.monotonic() - start_time) * 1000,
            retry_attempt=max_retries - 1,
        )
