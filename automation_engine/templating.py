"""``{{field}}`` substitution for action templates."""

from __future__ import annotations

import json
import re
from typing import Any, Mapping

_TOKEN_RE = re.compile(r"\{\{(\w+)\}\}")

# Skipped by the plain-text summary; sample rows are too bulky for a message.
SUMMARY_SKIP_KEYS = frozenset({"rows"})


def stringify(value: object) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, default=str)
    return str(value)


def render(template: str, payload: Mapping[str, Any]) -> str:
    """Replace ``{{name}}`` tokens with payload values.

    Unknown names are left verbatim so misconfigured templates stay visible.

    Example:
        >>> render("Storage at {{storage_percent}}%", {"storage_percent": 95})
        'Storage at 95%'
    """
    if not template:
        return template

    def _sub(match: re.Match[str]) -> str:
        key = match.group(1)
        if key not in payload:
            return match.group(0)
        return stringify(payload[key])

    return _TOKEN_RE.sub(_sub, template)


def summarize_payload(payload: Mapping[str, Any]) -> str:
    lines = [
        f"  {key}: {stringify(value)}"
        for key, value in payload.items()
        if key not in SUMMARY_SKIP_KEYS
    ]
    return "\n".join(lines)
