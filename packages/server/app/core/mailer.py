"""
Transactional email over SMTP.

``smtplib`` blocks, so every send runs on Starlette's thread pool. Port 465
uses implicit TLS, any other port upgrades with STARTTLS.
"""

from __future__ import annotations

import smtplib
import ssl
from email.message import EmailMessage
from functools import lru_cache

import structlog
from starlette.concurrency import run_in_threadpool

from app.core.config import Settings, get_settings

log = structlog.get_logger()

_IMPLICIT_TLS_PORT = 465


class MailDeliveryError(Exception):
    """The SMTP server could not be reached or refused the message."""


class Mailer:
    def __init__(self, settings: Settings):
        self._host = settings.smtp_host
        self._port = settings.smtp_port
        self._user = settings.smtp_user
        self._password = settings.smtp_pass
        self._timeout = settings.smtp_timeout_seconds
        self._frontend_url = settings.frontend_base_url

    async def send_verification_email(self, to: str, token: str) -> None:
        url = f"{self._frontend_url}/verify-email/{token}"
        await self.send(
            to,
            "Verify your Meet account",
            (
                "Welcome to Meet!\n\n"
                "Confirm your email address by opening this link:\n\n"
                f"{url}\n\n"
                "The link expires in 24 hours."
            ),
        )

    async def send_password_reset_email(self, to: str, token: str) -> None:
        url = f"{self._frontend_url}/reset-password/{token}"
        await self.send(
            to,
            "Reset your Meet password",
            (
                "We received a request to reset your password.\n\n"
                f"{url}\n\n"
                "The link expires in 1 hour. If you did not ask for this, ignore this email."
            ),
        )

    async def send(self, to: str, subject: str, body: str) -> None:
        message = EmailMessage()
        message["From"] = self._user
        message["To"] = to
        message["Subject"] = subject
        message.set_content(body)
        try:
            await run_in_threadpool(self._deliver, message)
        except (smtplib.SMTPException, OSError) as exc:
            log.warning("mail.send_failed", subject=subject, error=str(exc))
            raise MailDeliveryError(str(exc)) from exc
        log.info("mail.sent", subject=subject)

    def _deliver(self, message: EmailMessage) -> None:
        context = ssl.create_default_context()
        if self._port == _IMPLICIT_TLS_PORT:
            server = smtplib.SMTP_SSL(self._host, self._port, timeout=self._timeout, context=context)
        else:
            server = smtplib.SMTP(self._host, self._port, timeout=self._timeout)
        with server:
            if self._port != _IMPLICIT_TLS_PORT:
                server.starttls(context=context)
            if self._user:
                server.login(self._user, self._password)
            server.send_message(message)


@lru_cache
def get_mailer() -> Mailer:
    return Mailer(get_settings())
