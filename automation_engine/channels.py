"""Delivery transports: HTTP webhooks (httpx) and SMTP mail."""

from __future__ import annotations

import asyncio
import logging
import smtplib
import ssl
from dataclasses import dataclass
from email.message import EmailMessage

import httpx

from .credentials import EmailCredentials
from .errors import ChannelDeliveryError

logger = logging.getLogger(__name__)

_JSON_HEADERS = {"Content-Type": "application/json"}


@dataclass(frozen=True)
class HttpResponse:
    status_code: int
    text: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


class WebhookClient:
    """Async HTTP client for webhook-style channels."""

    def __init__(self, timeout: float = 15.0) -> None:
        self.timeout = timeout

    async def request(
        self,
        method: str,
        url: str,
        *,
        json: object | None = None,
        content: str | None = None,
    ) -> HttpResponse:
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.request(
                    method.upper(),
                    url,
                    json=json,
                    content=content,
                    headers=_JSON_HEADERS,
                )
        except httpx.HTTPError as exc:
            raise ChannelDeliveryError(f"{method.upper()} {url} failed: {exc}") from exc
        return HttpResponse(status_code=response.status_code, text=response.text[:500])


class SmtpMailer:
    """Blocking smtplib sends pushed onto a worker thread."""

    def __init__(self, timeout: float = 15.0) -> None:
        self.timeout = timeout

    async def send(self, creds: EmailCredentials, message: EmailMessage) -> None:
        await asyncio.to_thread(self._send_sync, creds, message)

    def _send_sync(self, creds: EmailCredentials, message: EmailMessage) -> None:
        try:
            if creds.use_ssl:
                server: smtplib.SMTP = smtplib.SMTP_SSL(
                    creds.host,
                    creds.port,
                    timeout=self.timeout,
                    context=ssl.create_default_context(),
                )
            else:
                server = smtplib.SMTP(creds.host, creds.port, timeout=self.timeout)
            with server:
                server.ehlo()
                if not creds.use_ssl and server.has_extn("starttls"):
                    server.starttls(context=ssl.create_default_context())
                    server.ehlo()
                if creds.user and creds.password:
                    server.login(creds.user, creds.password)
                server.send_message(message)
        except (smtplib.SMTPException, OSError) as exc:
            raise ChannelDeliveryError(f"SMTP send via {creds.host} failed: {exc}") from exc
        logger.debug("Mail sent via %s to %s", creds.host, message["To"])


def build_email_message(
    sender: str, to: str, subject: str, text: str, html_body: str | None = None
) -> EmailMessage:
    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = sender
    msg["To"] = to
    msg.set_content(text)
    if html_body:
        msg.add_alternative(html_body, subtype="html")
    return msg
