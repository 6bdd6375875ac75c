"""Shared fixtures for taskchain tests."""

from datetime import datetime, timezone

import pytest

import taskchain.persistence as persistence
from taskchain.persistence import InMemoryTaskRepository
from taskchain.registry import default_registry

NOW = datetime(2026, 2, 12, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def registry():
    return default_registry()


@pytest.fixture
def repo():
    return InMemoryTaskRepository(clock=lambda: NOW)


@pytest.fixture(autouse=True)
def _reset_repository(monkeypatch):
    monkeypatch.setattr(persistence, "_repository_instance", None)
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.delenv("TASKCHAIN_DATABASE_URL", raising=False)
    monkeypatch.delenv("TASKCHAIN_CONFIG", raising=False)
