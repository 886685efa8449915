# fieldservice/infra/channels.py
"""
Outbound transports for customer notifications.

Supports:
- Email via SMTP (blocking smtplib, run in the default executor)
- SMS via Twilio REST API (blocking client, run in the default executor)
- Logging senders that only write the message to the log

Every failure surfaces as ``TransportFailure`` so the dispatcher can record
it on the notification.

Usage:
    sender = build_channel_sender(settings)
    await sender.send_email(to, subject, body)
"""
from __future__ import annotations

import asyncio
import smtplib
from email.mime.text import MIMEText
from functools import partial

from fieldservice.core.errors import TransportFailure
from fieldservice.infra.logging_config import get_logger, mask_contact
from fieldservice.infra.metrics import inc_counter

logger = get_logger(__name__)


async def _run_blocking(func, *args):
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, partial(func, *args))


class SmtpEmailSender:
    """Email delivery via SMTP with STARTTLS."""

    name = "email"

    def __init__(
        self,
        host: str,
        port: int = 587,
        user: str | None = None,
        password: str | None = None,
        from_address: str = "noreply@fieldservices.com",
        timeout: int = 15,
    ):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.from_address = from_address
        self.timeout = timeout

    async def send_email(self, to: str, subject: str, body: str) -> None:
        msg = MIMEText(body, "plain", "utf-8")
        msg["From"] = self.from_address
        msg["To"] = to
        msg["Subject"] = subject

        try:
            await _run_blocking(self._send_smtp, msg)
        except Exception as exc:
            inc_counter("channel_send_failures_total", channel=self.name)
            raise TransportFailure(self.name, f"Failed to send email: {exc}") from exc

        inc_counter("channel_sends_total", channel=self.name)
        logger.info(f"Email sent to {mask_contact(to)}")

    async def send_sms(self, to: str, body: str) -> None:
        raise TransportFailure("sms", "SMS is not supported by the email sender")

    def _send_smtp(self, msg) -> None:
        """Send email via SMTP (blocking)"""
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
            server.starttls()
            if self.user and self.password:
                server.login(self.user, self.password)
            server.send_message(msg)


class TwilioSmsSender:
    """SMS delivery via the Twilio REST client (lazy initialization)."""

    name = "sms"

    def __init__(self, account_sid: str, auth_token: str, from_number: str):
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self._client = None

    def _get_client(self):
        if self._client is None:
            from twilio.rest import Client
            self._client = Client(self.account_sid, self.auth_token)
        return self._client

    async def send_sms(self, to: str, body: str) -> None:
        try:
            client = self._get_client()
            result = await _run_blocking(
                partial(client.messages.create, to=to, from_=self.from_number, body=body)
            )
        except Exception as exc:
            inc_counter("channel_send_failures_total", channel=self.name)
            raise TransportFailure(self.name, f"Failed to send SMS: {exc}") from exc

        inc_counter("channel_sends_total", channel=self.name)
        logger.info(f"SMS sent: sid={result.sid[:8]}***, to={mask_contact(to)}")

    async def send_email(self, to: str, subject: str, body: str) -> None:
        raise TransportFailure("email", "Email is not supported by the SMS sender")


class LoggingChannelSender:
    """Writes messages to the log instead of delivering them."""

    name = "log"

    async def send_email(self, to: str, subject: str, body: str) -> None:
        logger.info(f"[email not sent] to={mask_contact(to)} subject={subject!r} chars={len(body)}")

    async def send_sms(self, to: str, body: str) -> None:
        logger.info(f"[sms not sent] to={mask_contact(to)} chars={len(body)}")


class CompositeChannelSender:
    """Routes each channel to its own transport."""

    def __init__(self, email, sms):
        self.email = email
        self.sms = sms

    async def send_email(self, to: str, subject: str, body: str) -> None:
        await self.email.send_email(to, subject, body)

    async def send_sms(self, to: str, body: str) -> None:
        await self.sms.send_sms(to, body)


def build_channel_sender(s) -> CompositeChannelSender:
    """Pick email/SMS transports from settings; unconfigured providers fall back to logging."""
    email = LoggingChannelSender()
    if s.email_provider == "smtp":
        if s.smtp_enabled:
            email = SmtpEmailSender(
                host=s.smtp_host,
                port=s.smtp_port,
                user=s.smtp_user,
                password=s.smtp_password,
                from_address=s.email_from,
                timeout=s.smtp_timeout_seconds,
            )
        else:
            logger.warning("email_provider=smtp but smtp_host is not set, emails will only be logged")

    sms = LoggingChannelSender()
    if s.sms_provider == "twilio":
        if s.twilio_enabled:
            sms = TwilioSmsSender(
                account_sid=s.twilio_account_sid,
                auth_token=s.twilio_auth_token,
                from_number=s.twilio_phone_number,
            )
        else:
            logger.warning("sms_provider=twilio but credentials are incomplete, SMS will only be logged")

    return CompositeChannelSender(email=email, sms=sms)
