from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class WorkerStatus(str, Enum):
    ACTIVE = "active"
    IDLE = "idle"


class HeartbeatRecord(BaseModel):
    worker_id: str = Field(description="Worker identity.")
    last_seen: datetime = Field(description="Timestamp of the latest heartbeat.")
    worker_type: str | None = Field(default=None, description="Stored worker type, if any.")


class WorkerInfo(BaseModel):
    """Worker as reported to monitoring; derived on every read."""

    id: str
    type: str
    status: WorkerStatus
    last_heartbeat: datetime
