"""Legacy key migration tests."""
from __future__ import annotations

import logging

import pytest

from lfsconf.config import ConfigStore
from lfsconf.migrations import (
    LFS_CONTENT_PATH_RULE,
    MIGRATION_RULES,
    DeprecationNotice,
    MigrationRule,
    apply_migration,
    apply_migrations,
)


def _store(data: dict[str, dict[str, object]]) -> ConfigStore:
    return ConfigStore.from_mapping(data, "/etc/lfsconf/app.yml")


def test_legacy_value_is_carried_forward() -> None:
    """Only the legacy key set: the value moves forward and the legacy key stays."""
    store = _store({"server": {"LFS_CONTENT_PATH": "/data/lfs"}})
    notices: list[DeprecationNotice] = []

    carried = apply_migration(store, LFS_CONTENT_PATH_RULE, notices)

    assert carried is True
    assert store.section("lfs").get("PATH") == "/data/lfs"
    assert store.section("server").get("LFS_CONTENT_PATH") == "/data/lfs"
    assert len(notices) == 1
    assert notices[0].carried_forward is True
    assert notices[0].legacy_value == "/data/lfs"


def test_new_key_wins_when_both_are_set() -> None:
    """The new key keeps its value; the notice is still recorded."""
    store = _store(
        {
            "server": {"LFS_CONTENT_PATH": "/data/legacy"},
            "lfs": {"PATH": "/data/current"},
        }
    )
    notices: list[DeprecationNotice] = []

    carried = apply_migration(store, LFS_CONTENT_PATH_RULE, notices)

    assert carried is False
    assert store.section("lfs").get("PATH") == "/data/current"
    assert [notice.carried_forward for notice in notices] == [False]


def test_notice_fires_on_every_evaluation() -> None:
    """Repeated loads keep warning while the legacy key is present."""
    store = _store({"server": {"LFS_CONTENT_PATH": "/data/lfs"}})
    notices: list[DeprecationNotice] = []

    first = apply_migration(store, LFS_CONTENT_PATH_RULE, notices)
    second = apply_migration(store, LFS_CONTENT_PATH_RULE, notices)

    assert (first, second) == (True, False)
    assert len(notices) == 2
    assert store.section("lfs").get("PATH") == "/data/lfs"
    assert store.section("server").has_key("LFS_CONTENT_PATH")


def test_absent_legacy_key_is_a_no_op() -> None:
    """Nothing happens when the legacy key is not configured."""
    store = _store({"server": {"LFS_START_SERVER": "true"}})
    notices: list[DeprecationNotice] = []

    assert apply_migration(store, LFS_CONTENT_PATH_RULE, notices) is False
    assert notices == []
    assert store.get_section("lfs") is None


def test_empty_legacy_value_warns_without_copying() -> None:
    """An empty legacy key is still deprecated but has nothing to carry."""
    store = _store({"server": {"LFS_CONTENT_PATH": ""}})
    notices: list[DeprecationNotice] = []

    assert apply_migration(store, LFS_CONTENT_PATH_RULE, notices) is False
    assert len(notices) == 1
    assert store.get_section("lfs") is None


def test_notice_message_names_keys_and_version(caplog: pytest.LogCaptureFixture) -> None:
    """The deprecation message is logged and identifies old key, new key and version."""
    store = _store({"server": {"LFS_CONTENT_PATH": "/data/lfs"}})

    with caplog.at_level(logging.WARNING, logger="lfsconf.migrations"):
        notices = apply_migrations(store)

    message = notices[0].message
    assert "`[server]` `LFS_CONTENT_PATH`" in message
    assert "`[lfs]` `PATH`" in message
    assert "v1.19.0" in message
    assert message in caplog.text
    assert notices[0].to_dict()["new"] == "lfs.PATH"


def test_custom_rule_table() -> None:
    """Rules are data; callers can evaluate their own table."""
    rule = MigrationRule("lfs", "CONTENT_PATH", "lfs", "PATH", "v2.0.0")
    store = _store({"lfs": {"CONTENT_PATH": "/srv/objects"}})

    notices = apply_migrations(store, (rule,))

    assert store.section("lfs").get("PATH") == "/srv/objects"
    assert notices[0].rule is rule
    assert LFS_CONTENT_PATH_RULE in MIGRATION_RULES
