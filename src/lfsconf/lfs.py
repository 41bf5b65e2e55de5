"""Resolve the complete LFS configuration at startup."""
from __future__ import annotations

import logging
import secrets
from collections.abc import Mapping
from dataclasses import dataclass, replace

from .config import ConfigSection, ConfigStore
from .jwt_secret import LFS_JWT_SECRET_LENGTH, RandomSource, ensure_secret, resolve_secret
from .migrations import MIGRATION_RULES, DeprecationNotice, MigrationRule, apply_migrations
from .settings import (
    DEFAULT_CLIENT_BATCH_SIZE,
    DEFAULT_LOCKS_PAGING_NUM,
    LFS_CONFIG_SECTION_CLIENT,
    LFS_CONFIG_SECTION_LEGACY_SERVER,
    LFS_CONFIG_SECTION_SERVER,
    LFSClientSettings,
    LFSServerSettings,
    LFSSettings,
    resolve_section,
)
from .storage import get_storage

LOGGER = logging.getLogger(__name__)

LFS_STORAGE_NAME = "lfs"
LFS_JWT_SECRET_KEY = "LFS_JWT_SECRET"
LFS_JWT_SECRET_URI_KEY = "LFS_JWT_SECRET_URI"
SECURITY_SECTION = "security"
INSTALL_LOCK_KEY = "INSTALL_LOCK"


@dataclass(frozen=True)
class LFSConfig:
    """Fully resolved LFS configuration, built once per process."""

    lfs: LFSSettings
    server: LFSServerSettings
    client: LFSClientSettings
    notices: tuple[DeprecationNotice, ...] = ()
    secret_generated: bool = False

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-serialisable representation of the config."""
        return {
            "lfs": self.lfs.to_dict(),
            "lfs.server": self.server.to_dict(),
            "lfs.client": self.client.to_dict(),
            "notices": [notice.to_dict() for notice in self.notices],
            "secret_generated": self.secret_generated,
        }


def install_locked(store: ConfigStore) -> bool:
    """Return ``[security] INSTALL_LOCK`` (installation finished)."""
    section = store.get_section(SECURITY_SECTION) or ConfigSection(SECURITY_SECTION)
    return section.get_bool(INSTALL_LOCK_KEY, False)


def load_lfs_config(
    store: ConfigStore,
    *,
    install_lock: bool | None = None,
    provision_secret: bool = True,
    rules: tuple[MigrationRule, ...] = MIGRATION_RULES,
    random_source: RandomSource = secrets.token_bytes,
    env: Mapping[str, str] | None = None,
) -> LFSConfig:
    """Resolve LFS settings from *store*.

    The JWT secret is only touched when the LFS server is enabled and the
    installation is locked. With *provision_secret* disabled an existing
    secret is still loaded but a missing one is never generated or saved.
    Any :class:`~lfsconf.config.ConfigError` raised on the way is fatal.
    """
    server = resolve_section(store, LFS_CONFIG_SECTION_SERVER, LFSServerSettings)
    client = resolve_section(store, LFS_CONFIG_SECTION_CLIENT, LFSClientSettings)
    lfs = resolve_section(store, LFS_CONFIG_SECTION_LEGACY_SERVER, LFSSettings)

    notices = apply_migrations(store, rules)

    storage = get_storage(store, LFS_STORAGE_NAME, "", store.get_section(LFS_STORAGE_NAME))

    locks_paging_num = lfs.locks_paging_num or DEFAULT_LOCKS_PAGING_NUM
    batch_size = client.batch_size if client.batch_size >= 1 else DEFAULT_CLIENT_BATCH_SIZE

    locked = install_locked(store) if install_lock is None else install_lock
    secret_bytes = b""
    generated = False
    if lfs.start_server and locked:
        if provision_secret:
            result = ensure_secret(
                store,
                LFS_CONFIG_SECTION_LEGACY_SERVER,
                LFS_JWT_SECRET_URI_KEY,
                LFS_JWT_SECRET_KEY,
                LFS_JWT_SECRET_LENGTH,
                random_source=random_source,
                env=env,
            )
            secret_bytes, generated = result.secret, result.generated
        else:
            secret_bytes = (
                resolve_secret(
                    store,
                    LFS_CONFIG_SECTION_LEGACY_SERVER,
                    LFS_JWT_SECRET_URI_KEY,
                    LFS_JWT_SECRET_KEY,
                    LFS_JWT_SECRET_LENGTH,
                    env=env,
                )
                or b""
            )
    elif lfs.start_server:
        LOGGER.debug("Installation is not locked; skipping LFS JWT secret provisioning.")

    config = LFSConfig(
        lfs=replace(
            lfs,
            locks_paging_num=locks_paging_num,
            jwt_secret_bytes=secret_bytes,
            storage=storage,
        ),
        server=server,
        client=replace(client, batch_size=batch_size),
        notices=tuple(notices),
        secret_generated=generated,
    )
    LOGGER.debug("Resolved LFS configuration from %s", store.path)
    return config


__all__ = [
    "LFSConfig",
    "LFS_JWT_SECRET_KEY",
    "LFS_JWT_SECRET_URI_KEY",
    "install_locked",
    "load_lfs_config",
]
