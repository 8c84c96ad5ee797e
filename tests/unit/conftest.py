"""Fixtures for unit tests."""

import pytest


@pytest.fixture(autouse=True)
def _clear_clickhouse_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep a developer's CLICKHOUSE_* variables out of unit tests."""
    for name in ("CLICKHOUSE_URL", "CLICKHOUSE_USER", "CLICKHOUSE_PASSWORD", "CLICKHOUSE_DATABASE"):
        monkeypatch.delenv(name, raising=False)
