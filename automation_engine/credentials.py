"""Channel-credential resolution per rule owner.

Email transport priority: the owner's selected account, then the first
connected integration that carries SMTP fields, then the process-level
fallback from configuration.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from threading import Lock
from typing import Any, Mapping

from . import config

logger = logging.getLogger(__name__)

_INTEGRATION_PREFIX = "integration:"
_DEFAULT_INTEGRATION_HOSTS = {"gmail": "smtp.gmail.com"}


@dataclass(frozen=True)
class EmailCredentials:
    host: str
    port: int
    user: str
    password: str
    sender: str
    secure: bool | None = None  # None: implicit TLS on 465, STARTTLS otherwise
    source: str = "fallback"

    @property
    def use_ssl(self) -> bool:
        return self.secure if self.secure is not None else self.port == 465


class CredentialResolver(ABC):
    @abstractmethod
    def resolve_email(self, owner_id: object) -> EmailCredentials | None:
        ...

    @abstractmethod
    def resolve_chat_endpoint(self, owner_id: object) -> str | None:
        """Send URL of the owner's connected chat bot, if any."""

    @abstractmethod
    def owner_email(self, owner_id: object) -> str | None:
        ...


def fallback_email_credentials() -> EmailCredentials:
    s = config.settings
    return EmailCredentials(
        host=s.SMTP_HOST,
        port=s.SMTP_PORT,
        user=s.SMTP_USER,
        password=s.SMTP_PASSWORD,
        sender=s.SMTP_FROM,
        source="fallback",
    )


def _parse_port(raw: object, default: int = 587) -> int:
    try:
        return int(str(raw).strip()) if raw not in (None, "") else default
    except ValueError:
        return default


def _from_integration(
    key: str, app: Mapping[str, Any] | None, custom_from: str
) -> EmailCredentials | None:
    if not app or not app.get("connected"):
        return None
    fields = app.get("fields") or {}
    user = str(fields.get("smtpUser") or "").strip()
    password = str(fields.get("smtpPass") or "")
    if not user or not password:
        return None
    host = str(fields.get("smtpHost") or "") or _DEFAULT_INTEGRATION_HOSTS.get(
        key, "smtp.gmail.com"
    )
    return EmailCredentials(
        host=host,
        port=_parse_port(fields.get("smtpPort")),
        user=user,
        password=password,
        sender=custom_from or user,
        source=f"{_INTEGRATION_PREFIX}{key}",
    )


def _from_account(
    account: Mapping[str, Any] | None, custom_from: str
) -> EmailCredentials | None:
    if not account:
        return None
    host = str(account.get("host") or "").strip()
    user = str(account.get("user") or "").strip()
    password = str(account.get("pass") or "")
    if not host or not user or not password:
        return None
    secure = account.get("secure")
    return EmailCredentials(
        host=host,
        port=_parse_port(account.get("port")),
        user=user,
        password=password,
        sender=custom_from or str(account.get("from") or "").strip() or user,
        secure=bool(secure) if secure is not None else None,
        source=f"account:{account.get('id')}",
    )


@dataclass
class OwnerChannels:
    """Connected-integration state for one owner.

    ``email_accounts`` mirrors ``{"accounts": [...], "activeId": ...,
    "customFrom": ...}``; ``apps`` maps integration key to
    ``{"connected": bool, "fields": {...}}`` plus ``chat.sendUrl``.
    """

    email: str | None = None
    email_accounts: Mapping[str, Any] | None = None
    apps: Mapping[str, Any] | None = None


class ConnectedAppsCredentialResolver(CredentialResolver):
    def __init__(
        self,
        owners: Mapping[object, OwnerChannels] | None = None,
        fallback: EmailCredentials | None = None,
    ) -> None:
        self._lock = Lock()
        self._owners: dict[object, OwnerChannels] = dict(owners or {})
        self._fallback = fallback

    def set_owner(self, owner_id: object, channels: OwnerChannels) -> None:
        with self._lock:
            self._owners[owner_id] = channels

    def _owner(self, owner_id: object) -> OwnerChannels:
        with self._lock:
            return self._owners.get(owner_id) or OwnerChannels()

    def resolve_email(self, owner_id: object) -> EmailCredentials | None:
        owner = self._owner(owner_id)
        pref = owner.email_accounts or {}
        apps = owner.apps or {}
        custom_from = str(pref.get("customFrom") or "").strip()
        active_id = str(pref.get("activeId") or "")

        if active_id:
            if active_id.startswith(_INTEGRATION_PREFIX):
                key = active_id[len(_INTEGRATION_PREFIX):]
                creds = _from_integration(key, apps.get(key), custom_from)
            else:
                account = next(
                    (
                        a
                        for a in pref.get("accounts") or []
                        if str(a.get("id")) == active_id
                    ),
                    None,
                )
                creds = _from_account(account, custom_from)
            if creds:
                return creds
            logger.debug("Selected email account %s for owner %s unusable", active_id, owner_id)

        for key, app in apps.items():
            if not isinstance(app, Mapping):
                continue
            creds = _from_integration(key, app, custom_from)
            if creds:
                return creds

        return self._fallback or fallback_email_credentials()

    def resolve_chat_endpoint(self, owner_id: object) -> str | None:
        apps = self._owner(owner_id).apps or {}
        chat = apps.get("chat") or apps.get("discord") or {}
        hooks = chat.get("webhooks") or chat.get("discordWebhooks") or {}
        url = str(hooks.get("sendUrl") or chat.get("sendUrl") or "").strip()
        return url or None

    def owner_email(self, owner_id: object) -> str | None:
        email = (self._owner(owner_id).email or "").strip()
        return email or None
