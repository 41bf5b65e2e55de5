"""Configuration store for lfsconf.

The store is a sectioned key/value file, modelled after the ``app.ini`` layout
used by Git hosting servers but persisted as YAML::

    server:
      LFS_START_SERVER: true
      LFS_JWT_SECRET: 3uN9...
    lfs.server:
      MAX_BATCH_SIZE: 100

Values are resolved from the following layers:

1. ``/etc/lfsconf/app.yml`` (or an override path).
2. Environment variables of the form ``LFSCONF__<SECTION>__<KEY>``.

Section names in environment keys use ``_0X2E_`` in place of ``.``, e.g.::

    export LFSCONF__LFS_0X2E_CLIENT__BATCH_SIZE=50
    export LFSCONF__SERVER__LFS_START_SERVER=true

Every value is kept as a raw string; callers use the typed readers on
:class:`ConfigSection`. Environment overrides only live in memory: a
:class:`SaveTransaction` re-reads the file from disk so that only values
written through the transaction end up on disk.
"""
from __future__ import annotations

import logging
import os
import re
import stat
import tempfile
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path

try:  # PyYAML is a runtime dependency (declared in pyproject.toml).
    import yaml
except Exception as exc:  # pragma: no cover
    raise RuntimeError(
        "PyYAML is required to load lfsconf configuration. Install with "
        "`pip install lfsconf` or ensure PyYAML>=6.0 is available."
    ) from exc


LOGGER = logging.getLogger(__name__)

ENV_PREFIX = "LFSCONF_"
CONFIG_ENV_VAR = f"{ENV_PREFIX}CONFIG_FILE"
OVERRIDE_PREFIX = f"{ENV_PREFIX}_"
DOT_ESCAPE = "_0X2E_"
DEFAULT_CONFIG_FILE = "/etc/lfsconf/app.yml"
NEW_FILE_MODE = 0o600

_TRUE_VALUES = {"1", "t", "true", "y", "yes", "on"}
_FALSE_VALUES = {"0", "f", "false", "n", "no", "off"}
_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")


class ConfigError(RuntimeError):
    """Raised when the configuration store cannot be read or resolved."""


class ConfigSaveError(ConfigError):
    """Raised when the configuration store cannot be written back to disk."""


@dataclass(slots=True)
class ConfigSection:
    """A named section holding raw string values."""

    name: str
    values: dict[str, str] = field(default_factory=dict)

    def __iter__(self) -> Iterator[str]:
        """Iterate over key names in insertion order."""
        return iter(self.values)

    def has_key(self, key: str) -> bool:
        """Return True when *key* is present, even with an empty value."""
        return key in self.values

    def get(self, key: str, default: str = "") -> str:
        """Return the raw value for *key*, or *default* when absent or empty."""
        value = self.values.get(key, "")
        return value if value != "" else default

    def get_bool(self, key: str, default: bool = False) -> bool:
        """Return *key* parsed as a boolean."""
        raw = self.get(key)
        if not raw:
            return default
        lowered = raw.strip().lower()
        if lowered in _TRUE_VALUES:
            return True
        if lowered in _FALSE_VALUES:
            return False
        _warn_invalid(self.name, key, raw, "boolean", default)
        return default

    def get_int(self, key: str, default: int = 0) -> int:
        """Return *key* parsed as an integer.

        Base prefixes (``0x``, ``0o``, ``0b``) are honoured and a bare leading
        zero means octal, so ``010`` reads as 8.
        """
        raw = self.get(key)
        if not raw:
            return default
        try:
            return _parse_int(raw.strip())
        except ValueError:
            _warn_invalid(self.name, key, raw, "integer", default)
            return default

    def get_duration(self, key: str, default: timedelta) -> timedelta:
        """Return *key* parsed as a duration such as ``24h`` or ``1h30m``."""
        raw = self.get(key)
        if not raw:
            return default
        try:
            return parse_duration(raw)
        except ValueError:
            _warn_invalid(self.name, key, raw, "duration", default)
            return default

    def set(self, key: str, value: str) -> None:
        """Set *key* to *value*."""
        self.values[key] = str(value)

    def set_default(self, key: str, value: str) -> str:
        """Set *key* to *value* only when it is absent or empty; return the result."""
        current = self.values.get(key, "")
        if current == "":
            self.values[key] = str(value)
            return str(value)
        return current

    def to_dict(self) -> dict[str, str]:
        """Return a copy of the section values."""
        return dict(self.values)


@dataclass(slots=True)
class ConfigStore:
    """In-memory view of the configuration file plus environment overrides."""

    path: Path
    sections: dict[str, ConfigSection] = field(default_factory=dict)

    @classmethod
    def load(
        cls,
        config_file: str | os.PathLike[str] | None = None,
        *,
        env: Mapping[str, str] | None = None,
    ) -> ConfigStore:
        """Load the store from disk and apply environment overrides."""
        resolved_env = dict(os.environ if env is None else env)
        path = _determine_config_path(DEFAULT_CONFIG_FILE, config_file, resolved_env)
        store = cls.from_mapping(_load_yaml_file(path), path)
        for section_name, key, value in _build_env_overrides(resolved_env):
            store.section(section_name).set(key, value)
        return store

    @classmethod
    def from_mapping(
        cls,
        data: Mapping[str, object],
        path: str | os.PathLike[str],
    ) -> ConfigStore:
        """Build a store from a ``{section: {key: value}}`` mapping."""
        store = cls(Path(path))
        for section_name, raw_section in data.items():
            if not isinstance(section_name, str):
                raise ConfigError(f"Section names must be strings. Got {section_name!r}.")
            values = _as_section_dict(raw_section, section_name)
            store.sections[section_name] = ConfigSection(section_name, values)
        return store

    @property
    def work_path(self) -> Path:
        """Directory that relative paths in the store are resolved against."""
        return self.path.expanduser().parent

    def section(self, name: str) -> ConfigSection:
        """Return the section called *name*, creating an empty one if absent."""
        existing = self.sections.get(name)
        if existing is None:
            existing = ConfigSection(name)
            self.sections[name] = existing
        return existing

    def get_section(self, name: str) -> ConfigSection | None:
        """Return the section called *name* if it exists."""
        return self.sections.get(name)

    def prepare_saving(self) -> SaveTransaction:
        """Open a save transaction against the file on disk.

        The transaction works on a fresh copy of the file without environment
        overrides, so callers must write values into both this store and the
        transaction when they want the running process to see them too.
        """
        try:
            disk_copy = ConfigStore.from_mapping(_load_yaml_file(self.path), self.path)
        except ConfigError as exc:
            raise ConfigSaveError(f"Cannot prepare {self.path} for saving: {exc}") from exc
        return SaveTransaction(disk_copy)

    def to_dict(self) -> dict[str, dict[str, str]]:
        """Return a serialisable representation of the store."""
        return {name: section.to_dict() for name, section in self.sections.items()}


@dataclass(slots=True)
class SaveTransaction:
    """Pending write-back of the configuration file."""

    store: ConfigStore

    def section(self, name: str) -> ConfigSection:
        """Return the transaction's copy of section *name*."""
        return self.store.section(name)

    def save(self) -> None:
        """Atomically replace the configuration file with the transaction's copy."""
        path = self.store.path.expanduser()
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            mode = stat.S_IMODE(path.stat().st_mode) if path.exists() else NEW_FILE_MODE
            tmp_fd, tmp_name = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.")
        except OSError as exc:
            raise ConfigSaveError(f"Failed to prepare {path} for writing: {exc}") from exc

        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(tmp_fd, "w", encoding="utf-8") as handle:
                yaml.safe_dump(self.store.to_dict(), handle, sort_keys=False)
            os.chmod(tmp_path, mode)
            os.replace(tmp_path, path)
        except OSError as exc:
            raise ConfigSaveError(f"Failed to write config file {path}: {exc}") from exc
        finally:
            tmp_path.unlink(missing_ok=True)
        LOGGER.debug("Saved configuration file %s", path)


def parse_duration(text: str) -> timedelta:
    """Parse a Go-style duration string (``300ms``, ``1.5h``, ``2h45m``)."""
    raw = text.strip()
    if raw in {"0", "+0", "-0"}:
        return timedelta(0)
    sign = 1.0
    if raw[:1] in {"+", "-"}:
        sign = -1.0 if raw[0] == "-" else 1.0
        raw = raw[1:]
    if not raw:
        raise ValueError(f"Invalid duration: {text!r}")

    total = 0.0
    position = 0
    for match in _DURATION_PART.finditer(raw):
        if match.start() != position:
            raise ValueError(f"Invalid duration: {text!r}")
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        position = match.end()
    if position != len(raw) or position == 0:
        raise ValueError(f"Invalid duration: {text!r}")
    return timedelta(seconds=sign * total)


def _parse_int(text: str) -> int:
    try:
        return int(text, 0)
    except ValueError:
        digits = text[1:] if text[:1] in ("+", "-") else text
        if len(digits) > 1 and digits.startswith("0") and digits.isdigit():
            value = int(digits, 8)
            return -value if text.startswith("-") else value
        raise


def _warn_invalid(section: str, key: str, raw: str, kind: str, default: object) -> None:
    LOGGER.warning(
        "Invalid %s for [%s] %s: %r; using default %r.", kind, section, key, raw, default
    )


def _determine_config_path(
    default_path: str,
    cli_override: str | os.PathLike[str] | None,
    env: Mapping[str, str],
) -> Path:
    if cli_override:
        return Path(cli_override)
    if env.get(CONFIG_ENV_VAR):
        return Path(env[CONFIG_ENV_VAR])
    return Path(default_path)


def _load_yaml_file(path: Path) -> dict[str, object]:
    path = path.expanduser()
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:  # pragma: no cover - PyYAML owns detailed error
        raise ConfigError(f"Failed to parse config file {path}: {exc}") from exc
    except OSError as exc:
        raise ConfigError(f"Failed to read config file {path}: {exc}") from exc
    if not isinstance(data, Mapping):
        raise ConfigError(f"Config file {path} must contain a mapping at the top level.")
    return dict(data)


def _build_env_overrides(env: Mapping[str, str]) -> list[tuple[str, str, str]]:
    overrides: list[tuple[str, str, str]] = []
    for key, value in env.items():
        if not key.startswith(OVERRIDE_PREFIX):
            continue
        segments = key[len(OVERRIDE_PREFIX) :].split("__")
        if len(segments) != 2 or not all(segments):
            LOGGER.warning("Ignoring malformed configuration override %s.", key)
            continue
        section_name = segments[0].replace(DOT_ESCAPE, ".").lower()
        overrides.append((section_name, segments[1].upper(), value))
    return overrides


def _as_section_dict(value: object | None, label: str) -> dict[str, str]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigError(
            f"Expected section [{label}] to be a mapping. Got {type(value).__name__}."
        )
    result: dict[str, str] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            raise ConfigError(f"Section [{label}] must use string keys. Got {key!r}.")
        result[key] = _coerce_scalar(item, f"[{label}] {key}")
    return result


def _coerce_scalar(value: object, label: str) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (str, int, float)):
        return str(value)
    raise ConfigError(f"Expected {label} to be a scalar value. Got {type(value).__name__}.")


__all__ = [
    "CONFIG_ENV_VAR",
    "ConfigError",
    "ConfigSaveError",
    "ConfigSection",
    "ConfigStore",
    "SaveTransaction",
    "parse_duration",
]
