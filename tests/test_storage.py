"""Storage section resolution tests."""
from __future__ import annotations

from pathlib import Path

import pytest

from lfsconf.config import ConfigStore
from lfsconf.storage import StorageError, StorageType, app_data_path, get_storage


def _store(tmp_path: Path, data: dict[str, dict[str, object]]) -> ConfigStore:
    return ConfigStore.from_mapping(data, tmp_path / "app.yml")


def test_defaults_to_local_path_under_app_data(tmp_path: Path) -> None:
    """Without settings, objects live in ``<work path>/data/lfs``."""
    store = _store(tmp_path, {})

    storage = get_storage(store, "lfs", "", store.get_section("lfs"))

    assert storage.type is StorageType.LOCAL
    assert storage.path == tmp_path / "data" / "lfs"
    assert storage.minio is None


def test_app_data_path_can_be_absolute(tmp_path: Path) -> None:
    """``[server] APP_DATA_PATH`` moves the default location."""
    store = _store(tmp_path, {"server": {"APP_DATA_PATH": "/var/lib/forge"}})

    assert app_data_path(store) == Path("/var/lib/forge")
    assert get_storage(store, "lfs", "", None).path == Path("/var/lib/forge/lfs")


def test_relative_path_is_joined_to_app_data(tmp_path: Path) -> None:
    """Relative ``PATH`` values are resolved against the app data path."""
    store = _store(tmp_path, {"lfs": {"PATH": "objects"}})

    storage = get_storage(store, "lfs", "", store.get_section("lfs"))

    assert storage.path == tmp_path / "data" / "objects"


def test_target_section_beats_shared_storage_sections(tmp_path: Path) -> None:
    """The caller's section overrides ``[storage.lfs]`` which overrides ``[storage]``."""
    store = _store(
        tmp_path,
        {
            "storage": {"PATH": "/srv/shared"},
            "storage.lfs": {"PATH": "/srv/category"},
            "lfs": {"PATH": "/srv/target"},
        },
    )

    assert get_storage(store, "lfs", "", store.get_section("lfs")).path == Path("/srv/target")
    assert get_storage(store, "lfs", "", None).path == Path("/srv/category")


def test_minio_settings_are_defaulted(tmp_path: Path) -> None:
    """MinIO storage fills endpoint, location and base path defaults."""
    store = _store(
        tmp_path,
        {
            "storage.lfs": {
                "STORAGE_TYPE": "minio",
                "MINIO_BUCKET": "lfs-objects",
                "MINIO_SECRET_ACCESS_KEY": "hunter2",
                "MINIO_USE_SSL": True,
            }
        },
    )

    storage = get_storage(store, "lfs", "", store.get_section("lfs"))

    assert storage.type is StorageType.MINIO
    assert storage.path is None
    assert storage.minio is not None
    assert storage.minio.bucket == "lfs-objects"
    assert storage.minio.endpoint == "localhost:9000"
    assert storage.minio.location == "us-east-1"
    assert storage.minio.base_path == "lfs/"
    assert storage.minio.use_ssl is True
    assert storage.to_dict()["minio"]["secret_access_key"] == "***"  # type: ignore[index]


def test_storage_type_can_name_a_storage_section(tmp_path: Path) -> None:
    """A non built-in ``STORAGE_TYPE`` selects ``[storage.<type>]``."""
    store = _store(
        tmp_path,
        {
            "lfs": {"STORAGE_TYPE": "my_minio", "MINIO_BASE_PATH": "objects/"},
            "storage.my_minio": {"STORAGE_TYPE": "minio", "MINIO_ENDPOINT": "s3.local:9000"},
        },
    )

    storage = get_storage(store, "lfs", "", store.get_section("lfs"))

    assert storage.type is StorageType.MINIO
    assert storage.minio is not None
    assert storage.minio.endpoint == "s3.local:9000"
    assert storage.minio.base_path == "objects/"


def test_explicit_storage_type_overrides_config(tmp_path: Path) -> None:
    """A storage type passed by the caller wins over ``STORAGE_TYPE``."""
    store = _store(tmp_path, {"lfs": {"STORAGE_TYPE": "minio"}})

    storage = get_storage(store, "lfs", "local", store.get_section("lfs"))

    assert storage.type is StorageType.LOCAL


def test_unknown_storage_type_raises(tmp_path: Path) -> None:
    """An unknown type with no matching section is fatal."""
    store = _store(tmp_path, {"lfs": {"STORAGE_TYPE": "ftp"}})

    with pytest.raises(StorageError, match="Unknown storage type 'ftp'"):
        get_storage(store, "lfs", "", store.get_section("lfs"))


def test_named_section_with_unknown_type_raises(tmp_path: Path) -> None:
    """Named storage sections must resolve to a built-in backend."""
    store = _store(
        tmp_path,
        {
            "lfs": {"STORAGE_TYPE": "archive"},
            "storage.archive": {"STORAGE_TYPE": "tape"},
        },
    )

    with pytest.raises(StorageError, match="unsupported STORAGE_TYPE 'tape'"):
        get_storage(store, "lfs", "", store.get_section("lfs"))


def test_empty_category_raises(tmp_path: Path) -> None:
    """A category name is required."""
    with pytest.raises(StorageError):
        get_storage(_store(tmp_path, {}), "", "", None)
