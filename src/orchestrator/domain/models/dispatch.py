from pydantic import BaseModel, Field

from src.orchestrator.domain.models.task import DEFAULT_TIMEOUT_SECONDS, Task


class DispatchMessage(BaseModel):
    """Broker payload instructing a worker to execute a task."""

    task_id: str = Field(description="Task identifier; also the broker dedup key.")
    prompt: str = Field(description="Prompt or command to execute.")
    code: str | None = Field(default=None, description="Optional code payload.")
    timeout: int = Field(default=DEFAULT_TIMEOUT_SECONDS, description="Deadline in seconds.")
    attempt: int = Field(default=0, description="Delivery attempt, set by the broker on claim.")

    @classmethod
    def for_task(cls, task: Task) -> "DispatchMessage":
        return cls(task_id=task.id, prompt=task.prompt, code=task.code, timeout=task.timeout)

    def payload(self) -> dict:
        return self.model_dump(exclude={"attempt"})
