"""Shared test fixtures for Memex Search."""

from __future__ import annotations

from pathlib import Path

import pytest

from memex_search.store import SQLiteStore
from search_data import Dataset, build_dataset, seed


# ---------------------------------------------------------------------------
# Store fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def temp_state_dir(tmp_path: Path) -> Path:
    """Temporary state directory for test database."""
    state_dir = tmp_path / "state"
    state_dir.mkdir()
    return state_dir


@pytest.fixture
def dataset() -> Dataset:
    return build_dataset()


@pytest.fixture
async def store(temp_state_dir: Path) -> SQLiteStore:
    """Initialized empty SQLiteStore."""
    db = SQLiteStore(temp_state_dir)
    await db.initialize()
    yield db
    await db.close()


@pytest.fixture
async def seeded_store(store: SQLiteStore, dataset: Dataset) -> SQLiteStore:
    """SQLiteStore populated with the seeded dataset."""
    await seed(store, dataset)
    return store
