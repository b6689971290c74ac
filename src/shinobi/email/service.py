"""Outgoing email for challenge events.

``EmailService`` renders a named template, throttles per recipient through
Redis and hands the message to a provider (SMTP or Resend). Delivery is
best-effort: ``send`` answers False instead of raising.
"""

from __future__ import annotations

import hashlib
import ssl
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from email.message import EmailMessage
from typing import TYPE_CHECKING, Any

import aiosmtplib
import httpx
import structlog

from shinobi.email.templates import (
    challenge_completed,
    challenge_failed,
    practice_reminder,
    streak_warning,
)

if TYPE_CHECKING:
    from redis.asyncio import Redis

    from shinobi.config import Settings

logger = structlog.get_logger()

TEMPLATES: dict[str, Callable[..., tuple[str, str, str]]] = {
    "challenge_completed": challenge_completed,
    "challenge_failed": challenge_failed,
    "practice_reminder": practice_reminder,
    "streak_warning": streak_warning,
}


@dataclass(frozen=True)
class OutgoingEmail:
    to: str
    subject: str
    html: str
    text: str


class EmailProvider(ABC):
    name = "base"

    def __init__(self, sender: str) -> None:
        self.sender = sender

    @abstractmethod
    async def deliver(self, email: OutgoingEmail) -> None:
        """Hand the message to the transport; raise on any failure."""

    async def send(self, email: OutgoingEmail) -> bool:
        try:
            await self.deliver(email)
        except Exception:
            logger.exception("email_send_failed", to=email.to, provider=self.name)
            return False
        logger.info("email_sent", to=email.to, subject=email.subject, provider=self.name)
        return True


class SmtpProvider(EmailProvider):
    name = "smtp"

    def __init__(
        self,
        sender: str,
        *,
        host: str = "localhost",
        port: int = 587,
        username: str = "",
        password: str = "",
        use_tls: bool = True,
    ) -> None:
        super().__init__(sender)
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls

    def to_mime(self, email: OutgoingEmail) -> EmailMessage:
        """multipart/alternative with the plain part first."""
        msg = EmailMessage()
        msg["From"] = self.sender
        msg["To"] = email.to
        msg["Subject"] = email.subject
        msg.set_content(email.text)
        msg.add_alternative(email.html, subtype="html")
        return msg

    async def deliver(self, email: OutgoingEmail) -> None:
        await aiosmtplib.send(
            self.to_mime(email),
            hostname=self.host,
            port=self.port,
            username=self.username or None,
            password=self.password or None,
            start_tls=self.use_tls,
            tls_context=ssl.create_default_context() if self.use_tls else None,
        )


class ResendProvider(EmailProvider):
    name = "resend"
    API_URL = "https://api.resend.com/emails"

    def __init__(self, sender: str, api_key: str, *, http: httpx.AsyncClient | None = None) -> None:
        super().__init__(sender)
        self.api_key = api_key
        self._http = http

    async def _post(self, payload: dict[str, Any]) -> httpx.Response:
        headers = {"Authorization": f"Bearer {self.api_key}"}
        if self._http is not None:
            return await self._http.post(self.API_URL, headers=headers, json=payload, timeout=10.0)
        async with httpx.AsyncClient() as client:
            return await client.post(self.API_URL, headers=headers, json=payload, timeout=10.0)

    async def deliver(self, email: OutgoingEmail) -> None:
        response = await self._post(
            {
                "from": self.sender,
                "to": [email.to],
                "subject": email.subject,
                "html": email.html,
                "text": email.text,
            }
        )
        response.raise_for_status()


def provider_from_settings(settings: Settings) -> EmailProvider:
    sender = f"{settings.email_from_name} <{settings.email_from_address}>"
    kind = settings.email_provider.lower()
    if kind == "smtp":
        return SmtpProvider(
            sender,
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password,
            use_tls=settings.smtp_use_tls,
        )
    if kind == "resend":
        return ResendProvider(sender, settings.resend_api_key)
    raise ValueError(f"Unsupported email provider: {settings.email_provider}")


class RecipientThrottle:
    """At most ``limit`` emails per address per ``window`` seconds (Redis counter)."""

    def __init__(self, redis: Redis, limit: int = 5, window: int = 3600) -> None:
        self.redis = redis
        self.limit = limit
        self.window = window

    async def allow(self, address: str) -> bool:
        key = "email_rate:" + hashlib.sha256(address.lower().encode()).hexdigest()
        count = await self.redis.incr(key)
        if count == 1:
            await self.redis.expire(key, self.window)
        return count <= self.limit


class EmailService:
    def __init__(self, provider: EmailProvider, throttle: RecipientThrottle | None = None) -> None:
        self.provider = provider
        self.throttle = throttle

    @classmethod
    def from_settings(cls, settings: Settings, redis: Redis | None = None) -> EmailService:
        throttle = RecipientThrottle(redis) if redis is not None else None
        return cls(provider_from_settings(settings), throttle)

    async def send(self, email: OutgoingEmail) -> bool:
        if self.throttle is not None and not await self.throttle.allow(email.to):
            logger.warning("email_rate_limited", to=email.to, subject=email.subject)
            return False
        return await self.provider.send(email)

    async def send_template(self, to: str, template: str, context: dict[str, Any]) -> bool:
        """Render ``template`` with ``context`` and send it to ``to``.

        Raises:
            ValueError: unknown template name.
        """
        render = TEMPLATES.get(template)
        if render is None:
            raise ValueError(f"Unknown template: {template}")
        subject, html, text = render(**context)
        return await self.send(OutgoingEmail(to, subject, html, text))
