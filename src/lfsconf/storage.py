"""Locate and default the storage backend configuration for a category.

Storage settings are looked up in three places, highest precedence first:

1. The target section handed in by the caller (``[lfs]`` for LFS objects).
2. ``[storage.<name>]``.
3. ``[storage]``.

``STORAGE_TYPE`` may name a built-in backend (``local`` or ``minio``) or another
storage section, e.g. ``STORAGE_TYPE = my_minio`` selects ``[storage.my_minio]``
whose own ``STORAGE_TYPE`` must be a built-in backend. Reading or writing
object bytes is left to the backend implementation.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from .config import ConfigError, ConfigSection, ConfigStore

DEFAULT_APP_DATA_PATH = "data"
DEFAULT_MINIO_ENDPOINT = "localhost:9000"
DEFAULT_MINIO_BUCKET = "gitea"
DEFAULT_MINIO_LOCATION = "us-east-1"


class StorageError(ConfigError):
    """Raised when a storage section cannot be resolved."""


class StorageType(Enum):
    """Built-in storage backends."""

    LOCAL = "local"
    MINIO = "minio"


@dataclass(frozen=True)
class MinioConfig:
    """Connection settings for a MinIO/S3 compatible backend."""

    endpoint: str = DEFAULT_MINIO_ENDPOINT
    access_key_id: str = ""
    secret_access_key: str = field(default="", repr=False)
    bucket: str = DEFAULT_MINIO_BUCKET
    location: str = DEFAULT_MINIO_LOCATION
    base_path: str = ""
    use_ssl: bool = False
    insecure_skip_verify: bool = False

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation with credentials redacted."""
        return {
            "endpoint": self.endpoint,
            "access_key_id": self.access_key_id,
            "secret_access_key": "***" if self.secret_access_key else "",
            "bucket": self.bucket,
            "location": self.location,
            "base_path": self.base_path,
            "use_ssl": self.use_ssl,
            "insecure_skip_verify": self.insecure_skip_verify,
        }


@dataclass(frozen=True)
class StorageConfig:
    """Resolved storage backend for one category of stored objects."""

    type: StorageType
    path: Path | None = None
    minio: MinioConfig | None = None

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "type": self.type.value,
            "path": str(self.path) if self.path is not None else None,
            "minio": self.minio.to_dict() if self.minio is not None else None,
        }


def app_data_path(store: ConfigStore) -> Path:
    """Return ``[server] APP_DATA_PATH`` made absolute against the work path."""
    server = store.get_section("server") or ConfigSection("server")
    path = Path(server.get("APP_DATA_PATH", DEFAULT_APP_DATA_PATH)).expanduser()
    if not path.is_absolute():
        path = store.work_path / path
    return path


def get_storage(
    store: ConfigStore,
    name: str,
    storage_type: str,
    target_section: ConfigSection | None,
) -> StorageConfig:
    """Resolve the storage configuration for category *name*.

    *storage_type* forces a backend or named storage section; pass an empty
    string to read ``STORAGE_TYPE`` from the configuration.
    """
    if not name:
        raise StorageError("Storage category name must be a non-empty string.")

    sources = [
        section
        for section in (
            target_section,
            store.get_section(f"storage.{name}"),
            store.get_section("storage"),
        )
        if section is not None
    ]

    requested = storage_type or _lookup(sources, "STORAGE_TYPE") or StorageType.LOCAL.value
    resolved = _builtin_type(requested)
    if resolved is None:
        named = store.get_section(f"storage.{requested}")
        if named is None:
            raise StorageError(
                f"Unknown storage type '{requested}' for '{name}' and no "
                f"[storage.{requested}] section is defined."
            )
        inner = named.get("STORAGE_TYPE", StorageType.LOCAL.value)
        resolved = _builtin_type(inner)
        if resolved is None:
            raise StorageError(
                f"Storage section [storage.{requested}] has unsupported "
                f"STORAGE_TYPE '{inner}'."
            )
        # Caller overrides still win over the named section.
        sources = [
            section
            for section in (target_section, named, store.get_section("storage"))
            if section is not None
        ]

    if resolved is StorageType.LOCAL:
        return StorageConfig(type=resolved, path=_local_path(store, name, sources))

    return StorageConfig(type=resolved, minio=_minio_config(name, sources))


def _builtin_type(value: str) -> StorageType | None:
    try:
        return StorageType(value.strip().lower())
    except ValueError:
        return None


def _lookup(sources: list[ConfigSection], key: str) -> str:
    for section in sources:
        value = section.get(key)
        if value:
            return value
    return ""


def _lookup_bool(sources: list[ConfigSection], key: str, default: bool) -> bool:
    for section in sources:
        if section.get(key):
            return section.get_bool(key, default)
    return default


def _local_path(store: ConfigStore, name: str, sources: list[ConfigSection]) -> Path:
    base = app_data_path(store)
    configured = _lookup(sources, "PATH")
    if not configured:
        return base / name
    path = Path(configured).expanduser()
    return path if path.is_absolute() else base / path


def _minio_config(name: str, sources: list[ConfigSection]) -> MinioConfig:
    return MinioConfig(
        endpoint=_lookup(sources, "MINIO_ENDPOINT") or DEFAULT_MINIO_ENDPOINT,
        access_key_id=_lookup(sources, "MINIO_ACCESS_KEY_ID"),
        secret_access_key=_lookup(sources, "MINIO_SECRET_ACCESS_KEY"),
        bucket=_lookup(sources, "MINIO_BUCKET") or DEFAULT_MINIO_BUCKET,
        location=_lookup(sources, "MINIO_LOCATION") or DEFAULT_MINIO_LOCATION,
        base_path=_lookup(sources, "MINIO_BASE_PATH") or f"{name}/",
        use_ssl=_lookup_bool(sources, "MINIO_USE_SSL", False),
        insecure_skip_verify=_lookup_bool(sources, "MINIO_INSECURE_SKIP_VERIFY", False),
    )


__all__ = [
    "MinioConfig",
    "StorageConfig",
    "StorageError",
    "StorageType",
    "app_data_path",
    "get_storage",
]
