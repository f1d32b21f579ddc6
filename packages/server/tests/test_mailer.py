"""
SMTP delivery with smtplib patched out.
"""

from __future__ import annotations

import smtplib
from unittest.mock import MagicMock, patch

import pytest

from app.core.mailer import MailDeliveryError, Mailer


def _mailer(settings, **overrides) -> Mailer:
    base = {"smtp_user": "noreply@meet.test", "smtp_pass": "pw", "frontend_url": "https://meet.test/"}
    return Mailer(settings.model_copy(update={**base, **overrides}))


@pytest.mark.asyncio
async def test_implicit_tls_on_465(settings):
    with patch("app.core.mailer.smtplib.SMTP_SSL") as smtp_ssl:
        server = smtp_ssl.return_value
        await _mailer(settings, smtp_port=465).send_verification_email("alice@x.com", "tok123")

    server.starttls.assert_not_called()
    server.login.assert_called_once_with("noreply@meet.test", "pw")
    message = server.send_message.call_args.args[0]
    assert message["To"] == "alice@x.com"
    assert "https://meet.test/verify-email/tok123" in message.get_content()


@pytest.mark.asyncio
async def test_starttls_on_other_ports(settings):
    with patch("app.core.mailer.smtplib.SMTP") as smtp:
        server = smtp.return_value
        await _mailer(settings, smtp_port=587).send_password_reset_email("bob@x.com", "reset9")

    smtp.assert_called_once()
    server.starttls.assert_called_once()
    message = server.send_message.call_args.args[0]
    assert "https://meet.test/reset-password/reset9" in message.get_content()


@pytest.mark.asyncio
async def test_no_login_without_credentials(settings):
    with patch("app.core.mailer.smtplib.SMTP_SSL") as smtp_ssl:
        await _mailer(settings, smtp_user="", smtp_port=465).send("a@x.com", "Hi", "Body")
    smtp_ssl.return_value.login.assert_not_called()


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error",
    [smtplib.SMTPAuthenticationError(535, b"bad credentials"), ConnectionRefusedError("refused")],
)
async def test_failures_raise_delivery_error(settings, error):
    with patch("app.core.mailer.smtplib.SMTP_SSL", MagicMock(side_effect=error)):
        with pytest.raises(MailDeliveryError):
            await _mailer(settings, smtp_port=465).send("a@x.com", "Hi", "Body")
