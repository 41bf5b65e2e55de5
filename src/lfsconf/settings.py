"""Typed LFS settings and the section resolver that populates them."""
from __future__ import annotations

from collections.abc import Callable
from dataclasses import MISSING, dataclass, field, fields, is_dataclass
from datetime import timedelta
from typing import Any, TypeVar

from .config import ConfigError, ConfigSection, ConfigStore
from .storage import StorageConfig

T = TypeVar("T")

LFS_CONFIG_SECTION_LEGACY_SERVER = "server"
LFS_CONFIG_SECTION_SERVER = "lfs.server"
LFS_CONFIG_SECTION_CLIENT = "lfs.client"

DEFAULT_HTTP_AUTH_EXPIRY = timedelta(hours=24)
DEFAULT_LOCKS_PAGING_NUM = 50
DEFAULT_CLIENT_BATCH_SIZE = 20

_Reader = Callable[[ConfigSection, str, Any], Any]

_READERS: dict[str, _Reader] = {
    "str": lambda section, key, default: section.get(key, default),
    "bool": lambda section, key, default: section.get_bool(key, default),
    "int": lambda section, key, default: section.get_int(key, default),
    "duration": lambda section, key, default: section.get_duration(key, default),
}


def setting(key: str, kind: str, default: object) -> Any:
    """Declare a dataclass field that is read from config key *key*."""
    if kind not in _READERS:
        raise ValueError(f"Unsupported setting kind '{kind}'.")
    return field(default=default, metadata={"key": key, "kind": kind})


@dataclass(frozen=True)
class LFSSettings:
    """Settings for hosting Git LFS, read from the legacy ``[server]`` section."""

    start_server: bool = setting("LFS_START_SERVER", "bool", False)
    allow_pure_ssh: bool = setting("LFS_ALLOW_PURE_SSH", "bool", False)
    http_auth_expiry: timedelta = setting(
        "LFS_HTTP_AUTH_EXPIRY", "duration", DEFAULT_HTTP_AUTH_EXPIRY
    )
    max_file_size: int = setting("LFS_MAX_FILE_SIZE", "int", 0)
    locks_paging_num: int = setting("LFS_LOCKS_PAGING_NUM", "int", 0)
    jwt_secret_bytes: bytes = field(default=b"", repr=False)
    storage: StorageConfig | None = None

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation with the secret redacted."""
        return {
            "start_server": self.start_server,
            "allow_pure_ssh": self.allow_pure_ssh,
            "http_auth_expiry": str(self.http_auth_expiry),
            "max_file_size": self.max_file_size,
            "locks_paging_num": self.locks_paging_num,
            "jwt_secret": f"<{len(self.jwt_secret_bytes)} bytes>"
            if self.jwt_secret_bytes
            else None,
            "storage": self.storage.to_dict() if self.storage is not None else None,
        }


@dataclass(frozen=True)
class LFSServerSettings:
    """Settings from ``[lfs.server]``."""

    max_batch_size: int = setting("MAX_BATCH_SIZE", "int", 0)

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {"max_batch_size": self.max_batch_size}


@dataclass(frozen=True)
class LFSClientSettings:
    """Settings from ``[lfs.client]`` used when mirroring upstream LFS objects."""

    batch_size: int = setting("BATCH_SIZE", "int", 0)

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {"batch_size": self.batch_size}


def resolve_section(store: ConfigStore, section_name: str, settings_cls: type[T]) -> T:
    """Populate *settings_cls* from the keys of section *section_name*.

    Fields declared with :func:`setting` are read with their typed reader;
    absent or unparsable values fall back to the field default. A missing
    section resolves to all defaults.
    """
    if not is_dataclass(settings_cls):
        raise ConfigError(f"{settings_cls!r} is not a settings dataclass.")

    section = store.get_section(section_name) or ConfigSection(section_name)
    values: dict[str, object] = {}
    for item in fields(settings_cls):
        key = item.metadata.get("key")
        if key is None:
            continue
        default = item.default if item.default is not MISSING else None
        values[item.name] = _READERS[item.metadata["kind"]](section, key, default)
    return settings_cls(**values)


__all__ = [
    "DEFAULT_CLIENT_BATCH_SIZE",
    "DEFAULT_HTTP_AUTH_EXPIRY",
    "DEFAULT_LOCKS_PAGING_NUM",
    "LFS_CONFIG_SECTION_CLIENT",
    "LFS_CONFIG_SECTION_LEGACY_SERVER",
    "LFS_CONFIG_SECTION_SERVER",
    "LFSClientSettings",
    "LFSServerSettings",
    "LFSSettings",
    "resolve_section",
    "setting",
]
