"""View layer for formatting alert emails (HTML) and default messages."""

from __future__ import annotations

import html
import json
from datetime import datetime
from typing import Any, Mapping

from .models.rule import Rule
from .templating import stringify

TRIGGER_COLORS: dict[str, str] = {
    "storage": "#3B82F6",
    "cpu": "#F97316",
    "event": "#8B5CF6",
    "scheduled": "#6366F1",
    "data_query": "#0D9488",
}

TRIGGER_LABELS: dict[str, str] = {
    "storage": "Storage Threshold",
    "cpu": "CPU Threshold",
    "event": "File Upload",
    "scheduled": "Scheduled",
    "data_query": "Database Query",
}

_DEFAULT_COLOR = "#5D5FEF"
_TABLE_SKIP_KEYS = frozenset({"rows", "timestamp", "row_count"})


def code(text: str) -> str:
    return f"<code>{html.escape(str(text))}</code>"


def _trigger_key(rule: Rule) -> str:
    resource = getattr(rule.trigger, "resource", None)
    return resource or rule.trigger_kind


def trigger_label(rule: Rule) -> str:
    key = _trigger_key(rule)
    return TRIGGER_LABELS.get(key, key)


def default_subject(rule: Rule) -> str:
    return f"Automation Alert: {rule.name}"


def default_text_body(rule: Rule, summary: str) -> str:
    return f'Your automation rule "{rule.name}" was triggered.\n\nTrigger data:\n{summary}'


def default_chat_message(rule: Rule, payload: Mapping[str, Any]) -> str:
    return f"🔔 **{rule.name}** triggered\n{json.dumps(dict(payload), default=str)}"


def default_dashboard_message(rule: Rule) -> str:
    return f'Rule "{rule.name}" triggered.'


def _data_rows(payload: Mapping[str, Any]) -> str:
    rows = []
    for key, value in payload.items():
        if key in _TABLE_SKIP_KEYS:
            continue
        label = html.escape(key.replace("_", " "))
        rows.append(
            "<tr>"
            f'<td style="padding:8px 16px;color:#9CA3AF;text-transform:capitalize;">{label}</td>'
            f'<td style="padding:8px 16px;color:#F1F5F9;font-family:monospace;">{code(stringify(value))}</td>'
            "</tr>"
        )
    return "".join(rows)


def render_email_html(
    rule: Rule,
    payload: Mapping[str, Any],
    subject: str,
    custom_body: str = "",
    now: datetime | None = None,
) -> str:
    """HTML alternative for alert emails: trigger badge, data table, body."""
    accent = TRIGGER_COLORS.get(_trigger_key(rule), _DEFAULT_COLOR)
    label = html.escape(trigger_label(rule))
    when = (now or datetime.now()).strftime("%B %d, %Y %H:%M")
    rows = _data_rows(payload)

    table = ""
    if rows:
        table = (
            '<table width="100%" cellpadding="0" cellspacing="0" '
            'style="background:#1A1A24;border-radius:12px;margin:0 0 24px;">'
            f'<tr><td colspan="2" style="padding:10px 16px;color:{accent};'
            'font-size:10px;font-weight:700;text-transform:uppercase;">Trigger Data</td></tr>'
            f"{rows}</table>"
        )
    body = ""
    if custom_body:
        body = (
            f'<div style="border-left:3px solid {accent};padding:14px 18px;margin:0 0 24px;">'
            f'<p style="color:#CBD5E1;white-space:pre-wrap;margin:0;">{html.escape(custom_body)}</p>'
            "</div>"
        )

    return (
        "<!DOCTYPE html>"
        '<html lang="en"><head><meta charset="UTF-8">'
        f"<title>{html.escape(subject)}</title></head>"
        '<body style="margin:0;padding:32px 16px;background:#0D0D14;font-family:sans-serif;">'
        '<div style="max-width:600px;margin:0 auto;background:#18181B;border-radius:16px;padding:28px 36px;">'
        f'<span style="color:{accent};font-size:11px;font-weight:700;text-transform:uppercase;">{label}</span>'
        f'<h1 style="color:#F8FAFC;font-size:24px;">{html.escape(rule.name)}</h1>'
        f'<p style="color:#6B7280;font-size:13px;">Triggered on <strong>{html.escape(when)}</strong></p>'
        f"{table}{body}"
        '<p style="color:#4B5563;font-size:11px;">You received this because an automation '
        "rule you created was triggered. Deactivate the rule to stop these alerts.</p>"
        "</div></body></html>"
    )
