"""Action dispatch: render templates, resolve the channel, deliver.

``ActionDispatcher.dispatch`` returns a small JSON-able result on success
and raises on any failure; the retry controller decides what happens next.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Mapping

from . import view
from .channels import SmtpMailer, WebhookClient, build_email_message
from .credentials import CredentialResolver
from .errors import ChannelDeliveryError, ConfigurationError
from .models.rule import (
    ChatWebhookAction,
    DashboardAction,
    EmailAction,
    GenericWebhookAction,
    Rule,
)
from .store import NotificationStore
from .templating import render, summarize_payload

logger = logging.getLogger(__name__)

NOTIFICATION_CATEGORY = "automation"
SEVERITIES = {"info": "info", "warning": "warning", "error": "error"}


class ActionDispatcher:
    def __init__(
        self,
        credentials: CredentialResolver,
        notifications: NotificationStore,
        http: WebhookClient | None = None,
        mailer: SmtpMailer | None = None,
        timeout: float = 15.0,
    ) -> None:
        self.credentials = credentials
        self.notifications = notifications
        self.http = http or WebhookClient(timeout=timeout)
        self.mailer = mailer or SmtpMailer(timeout=timeout)

    async def dispatch(self, rule: Rule, payload: Mapping[str, Any]) -> dict[str, object]:
        action = rule.action
        if isinstance(action, EmailAction):
            return await self._send_email(rule, action, payload)
        if isinstance(action, ChatWebhookAction):
            return await self._send_chat(rule, action, payload)
        if isinstance(action, GenericWebhookAction):
            return await self._send_webhook(rule, action, payload)
        if isinstance(action, DashboardAction):
            return self._notify_dashboard(rule, action, payload)
        raise ConfigurationError(f"Unknown action type: {getattr(action, 'kind', action)!r}")

    async def _send_email(
        self, rule: Rule, action: EmailAction, payload: Mapping[str, Any]
    ) -> dict[str, object]:
        to = render(action.to, payload).strip() or (
            self.credentials.owner_email(rule.owner_id) or ""
        )
        if not to:
            raise ConfigurationError(
                'Email action: no recipient configured; set a "To" address on the rule'
            )
        creds = self.credentials.resolve_email(rule.owner_id)
        if creds is None:
            raise ConfigurationError("Email action: no mail account available")

        subject = render(action.subject or view.default_subject(rule), payload)
        body = render(action.body, payload)
        text = body or view.default_text_body(rule, summarize_payload(payload))
        sender = render(action.sender, payload).strip() or creds.sender
        message = build_email_message(
            sender=sender,
            to=to,
            subject=subject,
            text=text,
            html_body=view.render_email_html(rule, payload, subject, body),
        )
        await self.mailer.send(creds, message)
        logger.info("Rule %s: email sent to %s via %s", rule.id, to, creds.source)
        return {"sent_to": to}

    async def _send_chat(
        self, rule: Rule, action: ChatWebhookAction, payload: Mapping[str, Any]
    ) -> dict[str, object]:
        message = render(action.message or view.default_chat_message(rule, payload), payload)

        channel = render(action.channel, payload).strip()
        if channel:
            send_url = self.credentials.resolve_chat_endpoint(rule.owner_id)
            if not send_url:
                raise ConfigurationError(
                    "Chat action: no connected chat integration; connect one first"
                )
            resp = await self.http.request(
                "POST", send_url, json={"channel": channel, "message": message}
            )
            if not resp.ok:
                raise ChannelDeliveryError(
                    f"Chat bot send returned {resp.status_code}", resp.status_code
                )
            return {"channel": channel, "status": resp.status_code}

        webhook_url = render(action.webhook_url, payload).strip()
        if not webhook_url:
            raise ConfigurationError(
                'Chat action: set a "channel" (requires a connected chat integration) '
                "or provide a webhook_url"
            )
        resp = await self.http.request("POST", webhook_url, json={"content": message})
        if not resp.ok:
            raise ChannelDeliveryError(
                f"Chat webhook returned {resp.status_code}", resp.status_code
            )
        return {"status": resp.status_code}

    async def _send_webhook(
        self, rule: Rule, action: GenericWebhookAction, payload: Mapping[str, Any]
    ) -> dict[str, object]:
        url = render(action.url, payload).strip()
        if not url:
            raise ConfigurationError("Webhook action: no URL configured")
        method = (action.method or "POST").upper()

        if action.body:
            body = render(action.body, payload)
        else:
            body = json.dumps(
                {
                    "rule": rule.name,
                    "trigger": dict(payload),
                    "timestamp": datetime.now(timezone.utc).isoformat(),
                },
                default=str,
            )
        resp = await self.http.request(
            method, url, content=body if method != "GET" else None
        )
        if not resp.ok:
            raise ChannelDeliveryError(f"Webhook returned {resp.status_code}", resp.status_code)
        return {"status": resp.status_code}

    def _notify_dashboard(
        self, rule: Rule, action: DashboardAction, payload: Mapping[str, Any]
    ) -> dict[str, object]:
        title = render(action.title or rule.name, payload)
        message = render(action.message or view.default_dashboard_message(rule), payload)
        severity = SEVERITIES.get(action.severity, "info")
        self.notifications.insert(
            rule.owner_id, title, message, severity, NOTIFICATION_CATEGORY
        )
        return {"notification_created": True}
