from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta

from src.orchestrator.domain.models import HeartbeatRecord, WorkerInfo, WorkerStatus

DEFAULT_WORKER_TYPE = "local"
_KNOWN_TYPE_PREFIXES = ("cloud", "local")


@dataclass(frozen=True)
class LivenessThresholds:
    """Heartbeat ages separating active, idle and gone workers."""

    active: timedelta = timedelta(seconds=15)
    expiry: timedelta = timedelta(seconds=30)

    def __post_init__(self) -> None:
        if self.active > self.expiry:
            raise ValueError("active threshold must not exceed expiry threshold")


def classify(age: timedelta, thresholds: LivenessThresholds) -> WorkerStatus | None:
    """Return the worker status for a heartbeat ``age``; None means gone."""
    if age < thresholds.active:
        return WorkerStatus.ACTIVE
    if age < thresholds.expiry:
        return WorkerStatus.IDLE
    return None


def infer_worker_type(worker_id: str) -> str:
    """Fallback for records stored without an explicit type."""
    lowered = worker_id.lower()
    for prefix in _KNOWN_TYPE_PREFIXES:
        if lowered.startswith(prefix):
            return prefix
    return DEFAULT_WORKER_TYPE


def derive_workers(
    records: Iterable[HeartbeatRecord],
    now: datetime,
    thresholds: LivenessThresholds,
) -> list[WorkerInfo]:
    workers: list[WorkerInfo] = []
    for record in records:
        # Clock skew between hosts can put a heartbeat slightly in the future.
        age = max(now - record.last_seen, timedelta(0))
        status = classify(age, thresholds)
        if status is None:
            continue
        workers.append(
            WorkerInfo(
                id=record.worker_id,
                type=record.worker_type or infer_worker_type(record.worker_id),
                status=status,
                last_heartbeat=record.last_seen,
            )
        )
    workers.sort(key=lambda worker: worker.id)
    return workers
