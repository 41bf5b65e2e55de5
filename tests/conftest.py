"""Pytest configuration helpers for the test suite."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from pathlib import Path

import pytest
import yaml

ConfigWriter = Callable[[Mapping[str, Mapping[str, object]]], Path]


@pytest.fixture
def write_config(tmp_path: Path) -> ConfigWriter:
    """Return a helper that writes ``app.yml`` under *tmp_path*."""

    def _write(data: Mapping[str, Mapping[str, object]]) -> Path:
        path = tmp_path / "app.yml"
        payload = {name: dict(values) for name, values in data.items()}
        path.write_text(yaml.safe_dump(payload, sort_keys=False), encoding="utf-8")
        return path

    return _write
