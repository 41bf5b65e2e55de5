"""Backward-compatible migration of renamed or relocated configuration keys."""
from __future__ import annotations

import logging
from collections.abc import MutableSequence
from dataclasses import dataclass

from .config import ConfigStore

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class MigrationRule:
    """A key that moved from ``[old_section] old_key`` to ``[new_section] new_key``."""

    old_section: str
    old_key: str
    new_section: str
    new_key: str
    since_version: str


@dataclass(frozen=True)
class DeprecationNotice:
    """Diagnostic recorded whenever a legacy key is still present."""

    rule: MigrationRule
    legacy_value: str
    carried_forward: bool

    @property
    def message(self) -> str:
        """Human-readable description of the deprecated setting."""
        rule = self.rule
        return (
            f"Deprecated fallback `[{rule.old_section}]` `{rule.old_key}` present. "
            f"Use `[{rule.new_section}]` `{rule.new_key}` instead. This fallback "
            f"will be/has been removed in {rule.since_version}"
        )

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "old": f"{self.rule.old_section}.{self.rule.old_key}",
            "new": f"{self.rule.new_section}.{self.rule.new_key}",
            "since": self.rule.since_version,
            "carried_forward": self.carried_forward,
            "message": self.message,
        }


LFS_CONTENT_PATH_RULE = MigrationRule(
    old_section="server",
    old_key="LFS_CONTENT_PATH",
    new_section="lfs",
    new_key="PATH",
    since_version="v1.19.0",
)

MIGRATION_RULES: tuple[MigrationRule, ...] = (LFS_CONTENT_PATH_RULE,)


def apply_migration(
    store: ConfigStore,
    rule: MigrationRule,
    notices: MutableSequence[DeprecationNotice],
) -> bool:
    """Carry a legacy value forward into its new location.

    The legacy key is left untouched so the rule can be evaluated on every
    load. A notice is appended to *notices* each time the legacy key is set.
    Returns True when the legacy value was copied to the new key.
    """
    legacy_section = store.get_section(rule.old_section)
    if legacy_section is None or not legacy_section.has_key(rule.old_key):
        return False

    legacy_value = legacy_section.get(rule.old_key)
    carried = False
    if legacy_value:
        target = store.section(rule.new_section)
        if not target.get(rule.new_key):
            target.set(rule.new_key, legacy_value)
            carried = True

    notice = DeprecationNotice(rule=rule, legacy_value=legacy_value, carried_forward=carried)
    notices.append(notice)
    LOGGER.warning(notice.message)
    return carried


def apply_migrations(
    store: ConfigStore,
    rules: tuple[MigrationRule, ...] = MIGRATION_RULES,
) -> list[DeprecationNotice]:
    """Evaluate every rule in *rules* and return the notices raised."""
    notices: list[DeprecationNotice] = []
    for rule in rules:
        apply_migration(store, rule, notices)
    return notices


__all__ = [
    "DeprecationNotice",
    "LFS_CONTENT_PATH_RULE",
    "MIGRATION_RULES",
    "MigrationRule",
    "apply_migration",
    "apply_migrations",
]
