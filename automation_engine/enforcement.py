"""Plan-limit and billing enforcement on an owner's rules.

Enforcement never deletes rules. It flips ``enforcement_status`` so the
engine skips them, and flips it back when the owner is entitled again.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from .models.rule import (
    DISABLED_DUE_TO_BILLING,
    DISABLED_DUE_TO_PLAN,
    ENFORCEMENT_ACTIVE,
)
from .store import RuleRepository

logger = logging.getLogger(__name__)


@dataclass
class EnforcementResult:
    disabled: list[object] = field(default_factory=list)
    reactivated: list[object] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.disabled or self.reactivated)


def enforce_rule_limit(
    store: RuleRepository, owner_id: object, max_rules: int
) -> EnforcementResult:
    """Keep the oldest ``max_rules`` rules, pause the rest.

    Rules inside the limit that were paused for the plan get their status
    back but stay inactive until the owner turns them on again.
    """
    max_rules = max(0, int(max_rules))
    rules = store.list_rules(owner_id)
    keep, over = rules[:max_rules], rules[max_rules:]
    result = EnforcementResult()

    for rule in keep:
        if rule.enforcement_status == DISABLED_DUE_TO_PLAN:
            store.set_enforcement_status(rule.id, ENFORCEMENT_ACTIVE)
            result.reactivated.append(rule.id)

    for rule in over:
        if rule.enforcement_status != DISABLED_DUE_TO_PLAN:
            store.set_enforcement_status(rule.id, DISABLED_DUE_TO_PLAN, is_active=False)
            result.disabled.append(rule.id)

    if result.changed:
        logger.info(
            "Owner %s rule limit %d: disabled=%s reactivated=%s",
            owner_id,
            max_rules,
            result.disabled,
            result.reactivated,
        )
    return result


def suspend_for_billing(store: RuleRepository, owner_id: object) -> list[object]:
    """Pause every currently active-status rule of the owner."""
    suspended = []
    for rule in store.list_rules(owner_id):
        if rule.enforcement_status == ENFORCEMENT_ACTIVE:
            store.set_enforcement_status(rule.id, DISABLED_DUE_TO_BILLING)
            suspended.append(rule.id)
    if suspended:
        logger.info("Owner %s: %d rule(s) suspended for billing", owner_id, len(suspended))
    return suspended


def restore_after_billing(store: RuleRepository, owner_id: object) -> list[object]:
    restored = []
    for rule in store.list_rules(owner_id):
        if rule.enforcement_status == DISABLED_DUE_TO_BILLING:
            store.set_enforcement_status(rule.id, ENFORCEMENT_ACTIVE)
            restored.append(rule.id)
    if restored:
        logger.info("Owner %s: %d rule(s) restored after billing", owner_id, len(restored))
    return restored
