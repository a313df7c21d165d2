from src.orchestrator.domain.models.dispatch import DispatchMessage
from src.orchestrator.domain.models.job_state import JobState
from src.orchestrator.domain.models.result import ResultMessage, ResultStatus
from src.orchestrator.domain.models.stats import QueueStats, TaskStats
from src.orchestrator.domain.models.task import NewTask, Task, TaskUpdate
from src.orchestrator.domain.models.task_status import TERMINAL_STATUSES, TaskStatus
from src.orchestrator.domain.models.worker import HeartbeatRecord, WorkerInfo, WorkerStatus

__all__ = [
    "Task",
    "NewTask",
    "TaskUpdate",
    "TaskStatus",
    "TERMINAL_STATUSES",
    "DispatchMessage",
    "JobState",
    "ResultMessage",
    "ResultStatus",
    "QueueStats",
    "TaskStats",
    "HeartbeatRecord",
    "WorkerInfo",
    "WorkerStatus",
]
