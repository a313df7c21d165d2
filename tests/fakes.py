"""Test doubles shared across test modules."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import UTC, datetime

import pytest

from src.orchestrator.domain.events.task_event import TaskEvent
from src.orchestrator.domain.exceptions import BrokerUnavailableError
from src.orchestrator.infrastructure.memory.broker import InMemoryJobBroker
from src.orchestrator.infrastructure.memory.liveness import InMemoryLivenessRegistry
from src.orchestrator.worker.executor import ExecutionOutput


class FakeClock:
    """Manually advanced clock exposing both epoch seconds and aware datetimes."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def time(self) -> float:
        return self.now

    def utcnow(self) -> datetime:
        return datetime.fromtimestamp(self.now, UTC)

    def advance(self, seconds: float) -> None:
        self.now += seconds


class StubExecutor:
    """Executor returning canned output, optionally after a delay or by raising."""

    def __init__(
        self,
        output: ExecutionOutput | None = None,
        *,
        delay: float = 0.0,
        error: Exception | None = None,
    ) -> None:
        self.output = output or ExecutionOutput(stdout="ok", stderr="", exit_code=0)
        self.delay = delay
        self.error = error
        self.calls: list[tuple[str, str | None, int]] = []

    async def execute(self, prompt: str, code: str | None, timeout: int) -> ExecutionOutput:
        self.calls.append((prompt, code, timeout))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.output


class FailingPublisher:
    def __init__(self) -> None:
        self.attempts: list[TaskEvent] = []

    async def publish(self, event: TaskEvent) -> None:
        self.attempts.append(event)
        raise BrokerUnavailableError("stream down")

    async def close(self) -> None:
        return None


class UnavailableBroker(InMemoryJobBroker):
    async def enqueue(self, message):  # type: ignore[override]
        raise BrokerUnavailableError("connection refused")


class UnavailableRegistry(InMemoryLivenessRegistry):
    async def list_heartbeats(self):  # type: ignore[override]
        raise BrokerUnavailableError("connection refused")


def patch_inject_instance(
    monkeypatch: pytest.MonkeyPatch,
    bindings: dict[object, object],
) -> Callable[[object], object]:
    """Patch `inject.instance` to resolve from the given bindings."""
    import inject

    def fake_instance(interface: object) -> object:
        if interface in bindings:
            return bindings[interface]
        raise RuntimeError(f"Unexpected dependency request: {interface}")

    monkeypatch.setattr(inject, "instance", fake_instance)
    return fake_instance
