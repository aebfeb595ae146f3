"""Rule persistence and notification-store collaborators.

The engine only reads rules and writes back status transitions plus the
append-only execution log. ``InMemoryRuleStore`` is the reference
implementation; ``JsonFileRuleStore`` adds a JSON snapshot on disk.
"""

from __future__ import annotations

import json
import logging
import time
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import asdict, dataclass
from pathlib import Path
from threading import RLock
from typing import Iterable

from .errors import PersistenceError
from .models.execution import ExecutionLogEntry
from .models.rule import ENFORCEMENT_ACTIVE, Rule
from .rules import RuleFormatError, rule_from_row, rule_to_row

logger = logging.getLogger(__name__)

DEFAULT_MAX_LOGS = 1000


class RuleRepository(ABC):
    @abstractmethod
    def list_active_rules(
        self, trigger_kinds: Iterable[str], owner_id: object | None = None
    ) -> list[Rule]:
        """Rules that are active and not disabled by enforcement."""

    @abstractmethod
    def list_rules(self, owner_id: object | None = None) -> list[Rule]:
        ...

    @abstractmethod
    def mark_last_triggered(self, rule_id: object, when: float) -> None:
        ...

    @abstractmethod
    def set_enforcement_status(
        self, rule_id: object, status: str, is_active: bool | None = None
    ) -> None:
        ...

    @abstractmethod
    def append_execution_log(self, entry: ExecutionLogEntry) -> None:
        ...

    @abstractmethod
    def list_execution_logs(
        self, rule_id: object | None = None, limit: int | None = None
    ) -> list[ExecutionLogEntry]:
        """Newest first."""


@dataclass(frozen=True)
class Notification:
    owner_id: object
    title: str
    message: str
    severity: str
    category: str
    created_at: float


class NotificationStore(ABC):
    @abstractmethod
    def insert(
        self, owner_id: object, title: str, message: str, severity: str, category: str
    ) -> None:
        ...


class InMemoryNotificationStore(NotificationStore):
    def __init__(self) -> None:
        self._lock = RLock()
        self.items: list[Notification] = []

    def insert(
        self, owner_id: object, title: str, message: str, severity: str, category: str
    ) -> None:
        with self._lock:
            self.items.append(
                Notification(
                    owner_id=owner_id,
                    title=title,
                    message=message,
                    severity=severity,
                    category=category,
                    created_at=time.time(),
                )
            )

    def for_owner(self, owner_id: object) -> list[Notification]:
        with self._lock:
            return [n for n in self.items if n.owner_id == owner_id]


class InMemoryRuleStore(RuleRepository):
    """Thread-safe reference store.

    Only the newest ``max_logs`` execution entries stay in memory; debounce
    rebuilds need no more than the latest entry per rule.
    """

    def __init__(self, rules: Iterable[Rule] = (), max_logs: int = DEFAULT_MAX_LOGS) -> None:
        self._lock = RLock()
        self._rules: dict[object, Rule] = {}
        self._logs: deque[ExecutionLogEntry] = deque(maxlen=max_logs)
        for rule in rules:
            self._rules[rule.id] = rule

    def add_rule(self, rule: Rule) -> None:
        with self._lock:
            self._rules[rule.id] = rule
            self._persist()

    def remove_rule(self, rule_id: object) -> None:
        with self._lock:
            self._rules.pop(rule_id, None)
            self._persist()

    def get_rule(self, rule_id: object) -> Rule | None:
        with self._lock:
            return self._rules.get(rule_id)

    def set_active(self, rule_id: object, is_active: bool) -> None:
        with self._lock:
            rule = self._require(rule_id)
            rule.is_active = is_active
            self._persist()

    def list_rules(self, owner_id: object | None = None) -> list[Rule]:
        with self._lock:
            rules = [
                r for r in self._rules.values() if owner_id is None or r.owner_id == owner_id
            ]
        return sorted(rules, key=lambda r: (r.created_at, str(r.id)))

    def list_active_rules(
        self, trigger_kinds: Iterable[str], owner_id: object | None = None
    ) -> list[Rule]:
        kinds = set(trigger_kinds)
        return [
            r
            for r in self.list_rules(owner_id)
            if r.is_runnable and r.trigger_kind in kinds
        ]

    def mark_last_triggered(self, rule_id: object, when: float) -> None:
        with self._lock:
            rule = self._require(rule_id)
            rule.last_triggered_at = when
            self._persist()

    def set_enforcement_status(
        self, rule_id: object, status: str, is_active: bool | None = None
    ) -> None:
        with self._lock:
            rule = self._require(rule_id)
            rule.enforcement_status = status or ENFORCEMENT_ACTIVE
            if is_active is not None:
                rule.is_active = is_active
            self._persist()

    def append_execution_log(self, entry: ExecutionLogEntry) -> None:
        with self._lock:
            self._logs.append(entry)
            self._persist_log(entry)

    def list_execution_logs(
        self, rule_id: object | None = None, limit: int | None = None
    ) -> list[ExecutionLogEntry]:
        with self._lock:
            entries = [e for e in self._logs if rule_id is None or e.rule_id == rule_id]
        entries.reverse()
        return entries[:limit] if limit is not None else entries

    def _require(self, rule_id: object) -> Rule:
        rule = self._rules.get(rule_id)
        if rule is None:
            raise PersistenceError(f"Unknown rule {rule_id}")
        return rule

    def _persist(self) -> None:
        """Hook for durable subclasses; called with the lock held."""

    def _persist_log(self, entry: ExecutionLogEntry) -> None:
        """Same, for one appended execution log entry."""


class JsonFileRuleStore(InMemoryRuleStore):
    """In-memory store mirrored to disk.

    Rules are a JSON snapshot rewritten on every rule change. Execution log
    entries are appended to a JSON-lines file next to it and never rewritten.
    """

    def __init__(self, path: str | Path, max_logs: int = DEFAULT_MAX_LOGS) -> None:
        super().__init__(max_logs=max_logs)
        self._state_file = Path(path)
        self._log_file = self._state_file.with_suffix(".log.jsonl")

    @property
    def log_file(self) -> Path:
        return self._log_file

    def _persist(self) -> None:
        data = {"rules": [rule_to_row(r) for r in self._rules.values()]}
        try:
            self._state_file.parent.mkdir(parents=True, exist_ok=True)
            tmp = self._state_file.with_suffix(self._state_file.suffix + ".tmp")
            tmp.write_text(json.dumps(data, indent=2, default=str))
            tmp.replace(self._state_file)
        except OSError as exc:
            raise PersistenceError(f"Failed to write {self._state_file}: {exc}") from exc

    def _persist_log(self, entry: ExecutionLogEntry) -> None:
        line = json.dumps(asdict(entry), default=str)
        try:
            self._log_file.parent.mkdir(parents=True, exist_ok=True)
            with self._log_file.open("a", encoding="utf-8") as fh:
                fh.write(line + "\n")
        except OSError as exc:
            raise PersistenceError(f"Failed to append to {self._log_file}: {exc}") from exc

    def _load_logs(self) -> deque[ExecutionLogEntry]:
        logs: deque[ExecutionLogEntry] = deque(maxlen=self._logs.maxlen)
        if not self._log_file.exists():
            return logs
        try:
            with self._log_file.open(encoding="utf-8") as fh:
                for line in fh:
                    if not line.strip():
                        continue
                    try:
                        logs.append(ExecutionLogEntry(**json.loads(line)))
                    except (ValueError, TypeError):
                        logger.warning("Skipping malformed execution log line")
        except OSError as exc:
            raise PersistenceError(f"Failed to read {self._log_file}: {exc}") from exc
        return logs

    def load(self) -> int:
        """Load persisted rules and recent log entries. Returns the rule count."""
        rules: dict[object, Rule] = {}
        if self._state_file.exists():
            try:
                data = json.loads(self._state_file.read_text())
            except (OSError, ValueError) as exc:
                raise PersistenceError(f"Failed to read {self._state_file}: {exc}") from exc
            for row in data.get("rules", []):
                try:
                    rule = rule_from_row(row)
                except RuleFormatError as exc:
                    logger.warning("Skipping stored rule: %s", exc)
                    continue
                rules[rule.id] = rule

        logs = self._load_logs()
        with self._lock:
            self._rules = rules
            self._logs = logs
        logger.info(
            "Loaded %d rule(s) and %d log entries from %s",
            len(rules),
            len(logs),
            self._state_file,
        )
        return len(rules)
