from enum import Enum


class JobState(str, Enum):
    """Where a dispatch record currently sits inside the broker."""

    WAITING = "waiting"
    ACTIVE = "active"
    DELAYED = "delayed"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_live(self) -> bool:
        return self in (JobState.WAITING, JobState.ACTIVE, JobState.DELAYED)
