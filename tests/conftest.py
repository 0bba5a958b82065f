"""Pytest fixtures for pricesync tests"""
import pytest

from pricesync import ConflictEngine, InMemoryConflictStore, SQLiteConflictStore

from helpers import FakeClock


@pytest.fixture
def clock():
    """Clock starting at 2024-05-01T12:00:00Z."""
    return FakeClock()


@pytest.fixture
def memory_store():
    store = InMemoryConflictStore()
    yield store
    store.close()


@pytest.fixture
def sqlite_store(tmp_path):
    store = SQLiteConflictStore(tmp_path / "conflicts.sqlite")
    yield store
    store.close()


@pytest.fixture(params=["memory", "sqlite"])
def any_store(request, tmp_path):
    """Each store backend in turn."""
    if request.param == "memory":
        store = InMemoryConflictStore()
    else:
        store = SQLiteConflictStore(tmp_path / "conflicts.sqlite")
    yield store
    store.close()


@pytest.fixture
def engine(memory_store, clock):
    """Engine over an in-memory store with a fake clock."""
    return ConflictEngine(memory_store, clock=clock)
