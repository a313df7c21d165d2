class TaskNotFoundError(Exception):
    """Raised when a task identifier does not exist in the task store."""
    def __init__(self, task_id: str) -> None:
        super().__init__(f"Task with id '{task_id}' was not found.")
        self.task_id = task_id


class TaskValidationError(Exception):
    """Raised when a submission is rejected before reaching the broker."""

    def __init__(self, message: str, errors: list | None = None) -> None:
        super().__init__(message)
        self.errors = errors or []


class TaskNotDeletableError(Exception):
    """Raised when deleting a task that has not reached a terminal state."""

    def __init__(self, task_id: str, status: str) -> None:
        super().__init__(f"Task '{task_id}' is {status} and cannot be deleted.")
        self.task_id = task_id
        self.status = status


class BrokerUnavailableError(Exception):
    """Raised when the queue transport cannot be reached."""


class ExecutionFailure(Exception):
    """Raised when the executor throws or exits with a nonzero code."""

    def __init__(self, message: str, exit_code: int | None = None) -> None:
        super().__init__(message)
        self.exit_code = exit_code


class ExecutionTimeout(ExecutionFailure):
    """Raised when a run exceeds its deadline."""

    def __init__(self, timeout: int) -> None:
        super().__init__(f"Execution timed out after {timeout}s", exit_code=124)
        self.timeout = timeout


class InvalidTransition(Exception):
    """Raised when a lifecycle event does not apply to the current status."""

    def __init__(self, task_id: str, status: str, event: str) -> None:
        super().__init__(f"Task '{task_id}': event '{event}' is not valid in status {status}.")
        self.task_id = task_id
        self.status = status
        self.event = event


class ReconciliationConflict(InvalidTransition):
    """Raised when an event arrives for a task that is already terminal."""
