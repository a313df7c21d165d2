from __future__ import annotations

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from src.orchestrator.application.reconciler import ResultReconciler
from src.orchestrator.domain.repositories import JobBroker, LivenessRegistry, TaskStore
from src.orchestrator.infrastructure.memory.broker import InMemoryJobBroker
from src.orchestrator.infrastructure.memory.events import InMemoryEventPublisher
from src.orchestrator.infrastructure.memory.liveness import InMemoryLivenessRegistry
from src.orchestrator.infrastructure.memory.store import InMemoryTaskStore
from tests.fakes import FakeClock, patch_inject_instance


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> InMemoryTaskStore:
    return InMemoryTaskStore()


@pytest.fixture
def broker(clock: FakeClock) -> InMemoryJobBroker:
    return InMemoryJobBroker(clock=clock.time, poll_interval_sec=0.001)


@pytest.fixture
def registry(clock: FakeClock) -> InMemoryLivenessRegistry:
    return InMemoryLivenessRegistry(clock=clock.utcnow)


@pytest.fixture
def reconciler(store: InMemoryTaskStore) -> ResultReconciler:
    return ResultReconciler(store)


@pytest.fixture
def publisher() -> InMemoryEventPublisher:
    return InMemoryEventPublisher()


@pytest.fixture
def api_client(
    monkeypatch: pytest.MonkeyPatch,
    store: InMemoryTaskStore,
    broker: InMemoryJobBroker,
    registry: InMemoryLivenessRegistry,
):
    """FastAPI test client with services wired to in-memory adapters."""
    patch_inject_instance(
        monkeypatch,
        {TaskStore: store, JobBroker: broker, LivenessRegistry: registry},
    )
    from src.orchestrator.presentation import routes

    app = FastAPI()
    app.include_router(routes.router)
    client = TestClient(app)
    return client, store, broker, registry
