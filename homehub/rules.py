"""Rule store: ordered automation rules kept in sync with a JSON snapshot.

Every public operation takes the store's lock, so mutations apply in the
order callers issued them and readers never see a half-applied change. Solar
rules are resolved while the lock is held; the resolver's own request timeout
bounds how long that can take.

When a mutation succeeds in memory but the snapshot write fails, the caller
receives :class:`RulePersistenceError` and the in-memory change is kept. The
next successful mutation rewrites the whole snapshot and closes the gap.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Dict, List, Optional, Tuple

from .adapters.solar import SolarTimeError
from .core.models import Rule, RuleValidationError
from .core.protocols import SolarResolver
from .core.snapshots import JsonSnapshot, SnapshotError

LOGGER = logging.getLogger(__name__)


class RuleStoreError(RuntimeError):
    """Base class for errors reported to rule store callers."""


class RuleResolutionError(RuleStoreError):
    """Raised when a solar rule's time cannot be resolved."""

    def __init__(self, rule_id: int, reason: str) -> None:
        super().__init__(f"Failed to resolve solar time for rule {rule_id}: {reason}")
        self.rule_id = rule_id
        self.reason = reason


class RulePersistenceError(RuleStoreError):
    """Raised when the snapshot write after an in-memory change fails."""


class RuleNotFoundError(RuleStoreError):
    """Raised when updating a rule id that is not in the store."""

    def __init__(self, rule_id: int) -> None:
        super().__init__(f"Rule {rule_id} not found")
        self.rule_id = rule_id


class UpsertOutcome(str, Enum):
    ADDED = "added"
    UPDATED = "updated"


class RuleStore:
    def __init__(
        self,
        snapshot: JsonSnapshot,
        resolver: Optional[SolarResolver] = None,
    ) -> None:
        self._snapshot = snapshot
        self._resolver = resolver
        self._rules: List[Rule] = []
        self._lock = asyncio.Lock()

    async def load(self) -> List[int]:
        """Replace the in-memory set with the snapshot contents.

        Solar rules are re-resolved. A rule whose resolution fails keeps the
        time stored in the snapshot and its id is returned so the caller can
        report it. Raises ``SnapshotError`` for unreadable or invalid
        snapshots.
        """
        document = self._snapshot.load()
        rules = _decode_snapshot(document, self._snapshot)

        async with self._lock:
            loaded: List[Rule] = []
            failed: List[int] = []
            for rule in rules:
                if rule.uses_solar_time:
                    try:
                        rule = await self._resolve(rule)
                    except RuleResolutionError as exc:
                        LOGGER.warning("%s; keeping stored time %r", exc, rule.time)
                        failed.append(rule.id)
                _upsert_into(loaded, rule)
            self._rules = loaded

        LOGGER.info(
            "Loaded %d rules from %s (%d solar resolution failures)",
            len(loaded),
            self._snapshot.path,
            len(failed),
        )
        return failed

    async def list(self) -> List[Rule]:
        async with self._lock:
            return list(self._rules)

    async def get(self, rule_id: int) -> Optional[Rule]:
        async with self._lock:
            for rule in self._rules:
                if rule.id == rule_id:
                    return rule
        return None

    async def upsert(self, rule: Rule) -> UpsertOutcome:
        """Add ``rule`` or replace the rule with the same id, then persist.

        Raises:
            RuleResolutionError: solar time could not be resolved; nothing
                changed.
            RulePersistenceError: the change is in memory but not on disk.
        """
        async with self._lock:
            outcome, _ = await self._upsert_locked(rule, require_existing=False)
        return outcome

    async def update(self, rule_id: int, rule: Rule) -> Rule:
        """Replace an existing rule; ``rule_id`` overrides ``rule.id``.

        Raises ``RuleNotFoundError`` when no rule has that id, plus the same
        errors as :meth:`upsert`.
        """
        async with self._lock:
            _, stored = await self._upsert_locked(
                rule.with_id(rule_id), require_existing=True
            )
        return stored

    async def clear(self) -> None:
        async with self._lock:
            self._rules = []
            self._persist_locked()
        LOGGER.info("Cleared all rules")

    async def refresh_solar_times(self) -> List[int]:
        """Re-resolve every solar rule and persist; returns failed rule ids."""
        async with self._lock:
            failed: List[int] = []
            changed = False
            refreshed: List[Rule] = []
            for rule in self._rules:
                if rule.uses_solar_time:
                    try:
                        resolved = await self._resolve(rule)
                    except RuleResolutionError as exc:
                        LOGGER.warning("%s; keeping time %r", exc, rule.time)
                        failed.append(rule.id)
                        resolved = rule
                    changed = changed or resolved != rule
                    rule = resolved
                refreshed.append(rule)
            self._rules = refreshed
            if changed:
                self._persist_locked()
        return failed

    async def _upsert_locked(
        self, rule: Rule, *, require_existing: bool
    ) -> Tuple[UpsertOutcome, Rule]:
        existing = any(current.id == rule.id for current in self._rules)
        if require_existing and not existing:
            raise RuleNotFoundError(rule.id)

        if rule.uses_solar_time:
            rule = await self._resolve(rule)

        _upsert_into(self._rules, rule)
        outcome = UpsertOutcome.UPDATED if existing else UpsertOutcome.ADDED
        LOGGER.info(
            "Rule %d %s: %s -> %s at %s",
            rule.id,
            outcome.value,
            rule.topic,
            rule.message,
            rule.time,
        )
        self._persist_locked()
        return outcome, rule

    async def _resolve(self, rule: Rule) -> Rule:
        if self._resolver is None:
            raise RuleResolutionError(rule.id, "no solar resolver configured")
        try:
            resolved = await self._resolver.resolve(
                rule.command, rule.latitude, rule.longitude
            )
        except SolarTimeError as exc:
            raise RuleResolutionError(rule.id, str(exc)) from exc
        return rule.with_time(resolved)

    def _persist_locked(self) -> None:
        document = {"configs": [rule.to_dict() for rule in self._rules]}
        try:
            self._snapshot.save(document)
        except SnapshotError as exc:
            LOGGER.error("Failed to persist rules: %s", exc)
            raise RulePersistenceError(str(exc)) from exc


def _upsert_into(rules: List[Rule], rule: Rule) -> None:
    for index, current in enumerate(rules):
        if current.id == rule.id:
            rules[index] = rule
            return
    rules.append(rule)


def _decode_snapshot(document: object, snapshot: JsonSnapshot) -> List[Rule]:
    if isinstance(document, dict):
        entries = document.get("configs") or []
    else:
        raise SnapshotError(f"Rule snapshot {snapshot.path} must hold a JSON object")
    if not isinstance(entries, list):
        raise SnapshotError(f"'configs' in {snapshot.path} must be a list")

    rules: List[Rule] = []
    for entry in entries:
        try:
            rules.append(Rule.from_dict(entry))
        except RuleValidationError as exc:
            raise SnapshotError(f"Invalid rule in {snapshot.path}: {exc}") from exc
    return rules


def empty_rules_document() -> Dict[str, list]:
    return {"configs": []}
