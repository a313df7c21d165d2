from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from src.orchestrator.domain.models.task_status import TaskStatus

DEFAULT_TIMEOUT_SECONDS = 300
MAX_TIMEOUT_SECONDS = 3600


class NewTask(BaseModel):
    """Fields accepted from the submission path."""

    prompt: str = Field(min_length=1, description="Prompt or command to execute.")
    code: str | None = Field(default=None, description="Optional code payload.")
    timeout: int = Field(
        default=DEFAULT_TIMEOUT_SECONDS,
        ge=1,
        le=MAX_TIMEOUT_SECONDS,
        description="Execution deadline in seconds.",
    )

    @field_validator("prompt")
    @classmethod
    def _prompt_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("prompt must not be blank")
        return value


class Task(BaseModel):
    id: str = Field(description="Unique task identifier.")
    status: TaskStatus = Field(default=TaskStatus.QUEUED, description="Lifecycle status.")
    prompt: str = Field(description="Prompt or command to execute.")
    code: str | None = Field(default=None, description="Optional code payload.")
    timeout: int = Field(default=DEFAULT_TIMEOUT_SECONDS, description="Deadline in seconds.")
    worker_id: str | None = Field(default=None, description="Worker that claimed the task.")
    result: str | None = Field(default=None, description="Output of a completed run.")
    error_message: str | None = Field(default=None, description="Error of a failed run.")
    created_at: datetime = Field(description="When the task was submitted.")
    started_at: datetime | None = Field(default=None, description="When a worker claimed it.")
    completed_at: datetime | None = Field(default=None, description="When it became terminal.")

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal


class TaskUpdate(BaseModel):
    """Partial set of task fields; only explicitly set fields are written."""

    status: TaskStatus | None = None
    worker_id: str | None = None
    result: str | None = None
    error_message: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None

    def changes(self) -> dict:
        return self.model_dump(exclude_unset=True)
