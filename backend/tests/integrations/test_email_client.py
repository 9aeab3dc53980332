"""Tests for the SMTP email client.

SMTP delivery is stubbed by patching EmailClient._deliver.
"""

from unittest.mock import AsyncMock, patch

import aiosmtplib

from app.integrations.email import EmailClient


def make_client(**kwargs) -> EmailClient:
    params = {
        "smtp_host": "smtp.test",
        "smtp_port": 587,
        "from_email": "reports@shippingcomps.test",
        "from_name": "Shipping Comps",
    }
    params.update(kwargs)
    return EmailClient(**params)


def test_build_message_has_text_and_html_parts() -> None:
    client = make_client()

    message = client.build_message("a@b.com", "Hello", "<p>Hi</p>", "Hi")

    assert message["To"] == "a@b.com"
    assert message["From"] == "Shipping Comps <reports@shippingcomps.test>"
    assert message["Subject"] == "Hello"
    assert message.is_multipart()
    content_types = [part.get_content_type() for part in message.iter_parts()]
    assert content_types == ["text/plain", "text/html"]


async def test_unconfigured_client_does_not_send() -> None:
    client = EmailClient(smtp_host="", from_email="")

    with patch.object(client, "_deliver", new=AsyncMock()) as deliver:
        result = await client.send("a@b.com", "s", "<p>h</p>", "t")

    assert client.available is False
    assert result.success is False
    deliver.assert_not_called()


async def test_send_success() -> None:
    client = make_client()

    with patch.object(client, "_deliver", new=AsyncMock()) as deliver:
        result = await client.send("a@b.com", "Subject", "<p>h</p>", "t")

    assert result.success is True
    assert result.recipient == "a@b.com"
    assert result.retry_attempt == 0
    deliver.assert_awaited_once()


async def test_disconnect_is_retried() -> None:
    client = make_client()
    deliver = AsyncMock(
        side_effect=[aiosmtplib.SMTPServerDisconnected("gone"), None]
    )

    with patch.object(client, "_deliver", new=deliver):
        result = await client.send("a@b.com", "s", "h", "t", retry_delay=0)

    assert result.success is True
    assert result.retry_attempt == 1
    assert deliver.await_count == 2


async def test_retries_exhausted() -> None:
    client = make_client()
    deliver = AsyncMock(side_effect=TimeoutError("slow"))

    with patch.object(client, "_deliver", new=deliver):
        result = await client.send("a@b.com", "s", "h", "t", max_retries=2, retry_delay=0)

    assert result.success is False
    assert result.error == "TimeoutError: slow"
    assert deliver.await_count == 2


async def test_authentication_failure_is_not_retried() -> None:
    client = make_client(smtp_username="user", smtp_password="pw")
    deliver = AsyncMock(side_effect=aiosmtplib.SMTPAuthenticationError(535, "bad creds"))

    with patch.object(client, "_deliver", new=deliver):
        result = await client.send("a@b.com", "s", "h", "t", retry_delay=0)

    assert result.success is False
    assert result.error.startswith("Authentication failed")
    assert deliver.await_count == 1


async def test_rejected_message_is_not_retried() -> None:
    client = make_client()
    deliver = AsyncMock(side_effect=aiosmtplib.SMTPResponseException(550, "no such user"))

    with patch.object(client, "_deliver", new=deliver):
        result = await client.send("a@b.com", "s", "h", "t", retry_delay=0)

    assert result.success is False
    assert result.error.startswith("Rejected")
    assert deliver.await_count == 1
    assert client.circuit_breaker.failure_count == 0
