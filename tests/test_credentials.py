from automation_engine.credentials import (
    ConnectedAppsCredentialResolver,
    EmailCredentials,
    OwnerChannels,
)

FALLBACK = EmailCredentials(
    host="smtp.fallback", port=587, user="u", password="p", sender="noreply@fallback"
)

GMAIL = {"connected": True, "fields": {"smtpUser": "me@gmail.com", "smtpPass": "app-pw"}}

ACCOUNT = {
    "id": "acc-1",
    "host": "mail.corp",
    "port": "465",
    "user": "ops@corp",
    "pass": "pw",
    "from": "Ops <ops@corp>",
}


def _resolver(channels: OwnerChannels) -> ConnectedAppsCredentialResolver:
    return ConnectedAppsCredentialResolver({1: channels}, fallback=FALLBACK)


def test_selected_account_wins() -> None:
    resolver = _resolver(
        OwnerChannels(
            email_accounts={"accounts": [ACCOUNT], "activeId": "acc-1"},
            apps={"gmail": GMAIL},
        )
    )

    creds = resolver.resolve_email(1)

    assert creds.host == "mail.corp"
    assert creds.port == 465
    assert creds.use_ssl is True
    assert creds.sender == "Ops <ops@corp>"


def test_selected_integration() -> None:
    resolver = _resolver(
        OwnerChannels(
            email_accounts={"activeId": "integration:gmail", "customFrom": "Alerts <me@gmail.com>"},
            apps={"gmail": GMAIL},
        )
    )

    creds = resolver.resolve_email(1)

    assert creds.host == "smtp.gmail.com"
    assert creds.user == "me@gmail.com"
    assert creds.sender == "Alerts <me@gmail.com>"
    assert creds.source == "integration:gmail"
    assert creds.use_ssl is False


def test_auto_detects_connected_integration() -> None:
    resolver = _resolver(OwnerChannels(apps={"gmail": GMAIL}))
    assert resolver.resolve_email(1).user == "me@gmail.com"


def test_disconnected_integration_falls_back() -> None:
    resolver = _resolver(OwnerChannels(apps={"gmail": {**GMAIL, "connected": False}}))
    assert resolver.resolve_email(1) == FALLBACK


def test_unknown_owner_uses_fallback() -> None:
    resolver = ConnectedAppsCredentialResolver(fallback=FALLBACK)
    assert resolver.resolve_email(42) == FALLBACK
    assert resolver.owner_email(42) is None
    assert resolver.resolve_chat_endpoint(42) is None


def test_chat_endpoint_and_owner_email() -> None:
    resolver = ConnectedAppsCredentialResolver()
    resolver.set_owner(
        5,
        OwnerChannels(
            email=" owner@example.com ",
            apps={"discord": {"discordWebhooks": {"sendUrl": "https://bot/send"}}},
        ),
    )

    assert resolver.resolve_chat_endpoint(5) == "https://bot/send"
    assert resolver.owner_email(5) == "owner@example.com"
