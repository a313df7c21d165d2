from enum import Enum

from pydantic import BaseModel, Field


class ResultStatus(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"


class ResultMessage(BaseModel):
    """Outcome of one dispatch attempt, emitted by a worker."""

    task_id: str = Field(description="Identifier of the task.")
    worker_id: str = Field(description="Worker that ran the attempt.")
    status: ResultStatus = Field(description="Outcome of the attempt.")
    result: str | None = Field(default=None, description="Stdout of a successful run.")
    error_message: str | None = Field(default=None, description="Error description.")
    execution_time_ms: int = Field(default=0, ge=0, description="Wall-clock run time.")
    timed_out: bool = Field(default=False, description="Whether the deadline was exceeded.")
    attempt: int = Field(default=1, description="Delivery attempt that produced it.")
