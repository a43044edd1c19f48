"""Shared pytest fixtures for gemfinder tests."""

from __future__ import annotations

import time
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any

import pytest
from click.testing import CliRunner

from gemfinder.services.directory import LocationDirectory
from gemfinder.services.seed import seed_store
from gemfinder.services.store import LocalStore, StoreError

TEST_USER = "alice"
OTHER_USER = "bob"


class FlakyStore(LocalStore):
    """LocalStore that records calls and fails on request.

    ``fail_on`` holds (operation, table) pairs that raise StoreError.
    """

    def __init__(self, data_dir: Path) -> None:
        super().__init__(data_dir)
        self.calls: list[tuple[str, str]] = []
        self.fail_on: set[tuple[str, str]] = set()

    def _maybe_fail(self, operation: str, table: str) -> None:
        self.calls.append((operation, table))
        if (operation, table) in self.fail_on:
            raise StoreError(f"simulated {operation} failure on {table}")

    def select(self, table: str, filters: Any = None, *args: Any, **kwargs: Any) -> list[dict[str, Any]]:
        self._maybe_fail("select", table)
        return super().select(table, filters, *args, **kwargs)

    def insert(self, table: str, row: dict[str, Any]) -> dict[str, Any]:
        self._maybe_fail("insert", table)
        return super().insert(table, row)

    def update(self, table: str, filters: Any, values: dict[str, Any]) -> list[dict[str, Any]]:
        self._maybe_fail("update", table)
        return super().update(table, filters, values)

    def delete(self, table: str, filters: Any) -> list[dict[str, Any]]:
        self._maybe_fail("delete", table)
        return super().delete(table, filters)

    def writes(self) -> list[tuple[str, str]]:
        return [c for c in self.calls if c[0] != "select"]


@pytest.fixture
def temp_data_dir(tmp_path: Path) -> Path:
    """Empty data directory."""
    data_dir = tmp_path / "data"
    data_dir.mkdir()
    return data_dir


@pytest.fixture
def store(temp_data_dir: Path) -> FlakyStore:
    """Seeded local store with call recording."""
    flaky = FlakyStore(temp_data_dir)
    seed_store(flaky)
    flaky.calls.clear()
    return flaky


@pytest.fixture
def directory(store: FlakyStore) -> LocationDirectory:
    """Loaded location directory for the test user."""
    loaded = LocationDirectory(store, TEST_USER)
    assert loaded.load()
    store.calls.clear()
    return loaded


@pytest.fixture
def cli_runner() -> CliRunner:
    """Click test runner."""
    return CliRunner()


@pytest.fixture
def cli_data_dir(tmp_path: Path) -> Path:
    """Data directory seeded with starter locations for CLI tests."""
    data_dir = tmp_path / "cli-data"
    seed_store(LocalStore(data_dir))
    return data_dir


@pytest.fixture
def cli_env(cli_data_dir: Path, tmp_path: Path) -> dict[str, str]:
    """Environment pointing the CLI at the seeded data directory."""
    return {
        "GEMFINDER_DATA_DIR": str(cli_data_dir),
        "GEMFINDER_USER": TEST_USER,
        "GEMFINDER_CONFIG": str(tmp_path / "missing-config.toml"),
        "GEMFINDER_STORE_BACKEND": "local",
        "GEMFINDER_GUEST": "",
    }


@pytest.fixture
def local_tz(monkeypatch: pytest.MonkeyPatch) -> Iterator[Callable[[str], None]]:
    """Pin the process timezone for local-date conversions."""
    if not hasattr(time, "tzset"):
        pytest.skip("time.tzset is not available on this platform")

    def pin(name: str) -> None:
        monkeypatch.setenv("TZ", name)
        time.tzset()

    yield pin
    monkeypatch.undo()
    time.tzset()
