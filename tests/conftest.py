"""Shared fixtures: an in-memory event store and a repository over it."""
import pytest

from sinco_maquinaria.application.repository import AggregateRepository
from sinco_maquinaria.infrastructure.event_store import InMemoryEventStore
from sinco_maquinaria.infrastructure.snapshots import InMemorySnapshotStore


@pytest.fixture
def store():
    return InMemoryEventStore()


@pytest.fixture
def repository(store):
    return AggregateRepository(store, max_retries=3)


@pytest.fixture
def snapshots():
    return InMemorySnapshotStore()
