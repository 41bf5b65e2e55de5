"""Load-or-generate handling for fixed-length signing secrets.

A secret is stored as unpadded URL-safe base64 text, either directly under a
value key (``LFS_JWT_SECRET``) or behind a URI key (``LFS_JWT_SECRET_URI``)
pointing at ``file:///path`` or ``env:VARIABLE``. Provisioning runs in two
explicit phases:

* :func:`resolve_secret` returns the stored secret, or ``None`` when it is
  absent or cannot be decoded to the required length.
* :func:`provision_and_persist` generates a new secret, saves it to the
  configuration file and only then exposes it in the running store.

:func:`ensure_secret` composes the two. A generated secret that could not be
saved is always an error: it would otherwise change on every restart and
invalidate every token signed with the previous one.
"""
from __future__ import annotations

import base64
import binascii
import logging
import os
import secrets
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import unquote, urlsplit

from .config import ConfigError, ConfigSaveError, ConfigSection, ConfigStore

LOGGER = logging.getLogger(__name__)

LFS_JWT_SECRET_LENGTH = 32

RandomSource = Callable[[int], bytes]


class SecretDecodeError(ValueError):
    """Raised when secret text is not valid base64 of the expected length."""


class SecretSourceError(ConfigError):
    """Raised when a secret URI cannot be read."""


class SecretGenerationError(ConfigError):
    """Raised when random material for a new secret cannot be produced."""


class SecretPersistenceError(ConfigError):
    """Raised when a newly generated secret cannot be saved."""


@dataclass(frozen=True)
class SecretResult:
    """Outcome of :func:`ensure_secret`."""

    secret: bytes = field(repr=False)
    generated: bool


def encode_secret(raw: bytes) -> str:
    """Return *raw* as unpadded URL-safe base64 text."""
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def decode_secret_base64(text: str, length: int = LFS_JWT_SECRET_LENGTH) -> bytes:
    """Decode *text* and verify it holds exactly *length* bytes."""
    value = text.strip()
    padded = value + "=" * (-len(value) % 4)
    try:
        raw = base64.b64decode(padded.encode("ascii"), altchars=b"-_", validate=True)
    except (binascii.Error, UnicodeEncodeError) as exc:
        raise SecretDecodeError(f"secret is not valid base64: {exc}") from exc
    if len(raw) != length:
        raise SecretDecodeError(f"secret decodes to {len(raw)} bytes, expected {length}")
    return raw


def new_secret_base64(
    length: int = LFS_JWT_SECRET_LENGTH,
    random_source: RandomSource = secrets.token_bytes,
) -> tuple[bytes, str]:
    """Generate *length* random bytes and return them with their base64 text."""
    raw = random_source(length)
    if len(raw) != length:
        raise ValueError(f"random source returned {len(raw)} bytes, expected {length}")
    return raw, encode_secret(raw)


def read_secret_reference(
    section: ConfigSection,
    uri_key: str,
    value_key: str,
    *,
    env: Mapping[str, str] | None = None,
) -> str:
    """Return the secret text configured in *section*.

    The URI key is consulted first; the value key is only used when no URI is
    configured. An empty string means no secret is configured.
    """
    uri = section.get(uri_key).strip()
    value = section.get(value_key)
    if not uri:
        return value
    if value:
        LOGGER.warning(
            "Both [%s] %s and %s are set; using %s.", section.name, uri_key, value_key, uri_key
        )

    parts = urlsplit(uri)
    if parts.scheme == "file":
        path = Path(unquote(parts.path))
        try:
            content = path.read_text(encoding="utf-8").strip()
        except OSError as exc:
            raise SecretSourceError(
                f"Failed to read [{section.name}] {uri_key} ({path}): {exc}"
            ) from exc
        if not content:
            raise SecretSourceError(
                f"Failed to read [{section.name}] {uri_key} ({path}): the file is empty"
            )
        return content
    if parts.scheme == "env":
        variable = parts.netloc or parts.path
        resolved_env = os.environ if env is None else env
        content = resolved_env.get(variable, "").strip()
        if not variable or not content:
            raise SecretSourceError(
                f"Environment variable {variable!r} named by [{section.name}] {uri_key} "
                "is unset or empty"
            )
        return content
    raise SecretSourceError(
        f"Unsupported URI scheme {parts.scheme!r} ([{section.name}] {uri_key} = {uri!r})"
    )


def resolve_secret(
    store: ConfigStore,
    section_name: str,
    uri_key: str,
    value_key: str,
    length: int,
    *,
    env: Mapping[str, str] | None = None,
) -> bytes | None:
    """Return the stored secret, or ``None`` when it is absent or invalid."""
    section = store.get_section(section_name)
    if section is None:
        return None
    text = read_secret_reference(section, uri_key, value_key, env=env)
    if not text:
        return None
    try:
        return decode_secret_base64(text, length)
    except SecretDecodeError as exc:
        if section.get(uri_key).strip():
            LOGGER.warning(
                "Secret referenced by [%s] %s is invalid (%s); a new %s will be saved but "
                "%s still takes precedence, so it is replaced again on every start until "
                "the referenced secret is fixed.",
                section_name,
                uri_key,
                exc,
                value_key,
                uri_key,
            )
            return None
        LOGGER.warning(
            "Stored [%s] %s is invalid (%s); a new secret will be generated.",
            section_name,
            value_key,
            exc,
        )
        return None


def provision_and_persist(
    store: ConfigStore,
    section_name: str,
    value_key: str,
    length: int,
    *,
    random_source: RandomSource = secrets.token_bytes,
) -> bytes:
    """Generate a new secret, save it to disk and then expose it in *store*.

    The running store is only updated once the save succeeded, so a failed
    save leaves it exactly as it was.
    """
    try:
        raw, encoded = new_secret_base64(length, random_source)
    except (OSError, NotImplementedError, ValueError) as exc:
        raise SecretGenerationError(
            f"Error generating [{section_name}] {value_key}: {exc}"
        ) from exc

    try:
        transaction = store.prepare_saving()
        transaction.section(section_name).set(value_key, encoded)
        transaction.save()
    except ConfigSaveError as exc:
        raise SecretPersistenceError(
            f"Error saving generated [{section_name}] {value_key} to {store.path}: {exc}"
        ) from exc

    store.section(section_name).set(value_key, encoded)
    LOGGER.warning(
        "Generated a new [%s] %s and saved it to %s.", section_name, value_key, store.path
    )
    return raw


def ensure_secret(
    store: ConfigStore,
    section_name: str,
    uri_key: str,
    value_key: str,
    length: int,
    *,
    random_source: RandomSource = secrets.token_bytes,
    env: Mapping[str, str] | None = None,
) -> SecretResult:
    """Return a valid secret, generating and persisting one when needed."""
    existing = resolve_secret(store, section_name, uri_key, value_key, length, env=env)
    if existing is not None:
        return SecretResult(secret=existing, generated=False)
    raw = provision_and_persist(
        store, section_name, value_key, length, random_source=random_source
    )
    return SecretResult(secret=raw, generated=True)


__all__ = [
    "LFS_JWT_SECRET_LENGTH",
    "SecretDecodeError",
    "SecretGenerationError",
    "SecretPersistenceError",
    "SecretResult",
    "SecretSourceError",
    "decode_secret_base64",
    "encode_secret",
    "ensure_secret",
    "new_secret_base64",
    "provision_and_persist",
    "read_secret_reference",
    "resolve_secret",
]
