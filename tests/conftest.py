"""
Shared pytest fixtures and configuration for dyntable tests.

This module provides:
- Settings-cache and logging-context cleanup for test isolation
- SQLite database files under ``tmp_path`` with the tables used by the
  end-to-end scenarios (``film``, ``Products``)
- Models bound to those files

Usage:
    Fixtures are auto-discovered by pytest::

        def test_counts(film_model):
            assert film_model.count() == 1000
"""

from __future__ import annotations

import sqlite3
import sys
from collections.abc import Iterator
from pathlib import Path

import pytest

# Ensure dyntable is importable without an install
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from dyntable.core.logging import clear_context
from dyntable.core.model import DynamicModel
from dyntable.core.settings import clear_settings_cache

FILM_ROWS = 1000


# =============================================================================
# Test Markers Configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Auto-mark tests based on their location."""
    for item in items:
        test_path = Path(item.fspath).relative_to(Path(__file__).parent)

        if "integration" in str(test_path):
            item.add_marker(pytest.mark.integration)

        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration"}):
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Isolation Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def clean_settings(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Every test starts from uncached settings and no DYNTABLE_* overrides."""
    for name in (
        "DYNTABLE_CONNECTION_STRING",
        "DYNTABLE_PROVIDER_NAME",
        "DYNTABLE_CONNECTION_STRINGS",
        "DYNTABLE_DEFAULT_SEQUENCE",
        "DYNTABLE_AUTO_DEREFERENCE_FETCH_SIZE",
    ):
        monkeypatch.delenv(name, raising=False)
    clear_settings_cache()
    yield
    clear_settings_cache()
    clear_context()


# =============================================================================
# SQLite Databases
# =============================================================================


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    path = tmp_path / "dyntable.db"
    conn = sqlite3.connect(path)
    conn.executescript(
        """
        CREATE TABLE film (
            film_id INTEGER PRIMARY KEY AUTOINCREMENT,
            title TEXT NOT NULL,
            rental_duration INTEGER NOT NULL
        );
        CREATE TABLE Products (
            ID INTEGER PRIMARY KEY AUTOINCREMENT,
            Name TEXT,
            Price REAL,
            Status TEXT DEFAULT 'draft',
            CreatedAt TEXT DEFAULT CURRENT_TIMESTAMP
        );
        """
    )
    conn.executemany(
        "INSERT INTO film (title, rental_duration) VALUES (?, ?)",
        [(f"Film {i}", 3 + i % 5) for i in range(FILM_ROWS)],
    )
    conn.commit()
    conn.close()
    return path


@pytest.fixture
def connection_string(db_path: Path) -> str:
    return f"Data Source={db_path};ProviderName=sqlite"


@pytest.fixture
def film_model(connection_string: str) -> DynamicModel:
    return DynamicModel(connection_string, "film", "film_id")


@pytest.fixture
def products(connection_string: str) -> DynamicModel:
    return DynamicModel(connection_string, "Products", descriptor_field="Name")


@pytest.fixture
def raw(db_path: Path) -> Iterator[sqlite3.Connection]:
    """A plain sqlite3 connection for arranging and checking data."""
    conn = sqlite3.connect(db_path)
    yield conn
    conn.close()
