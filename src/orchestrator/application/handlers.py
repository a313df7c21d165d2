import logging

from src.orchestrator.application.reconciler import ResultReconciler
from src.orchestrator.domain.events.task_event import TaskEvent
from src.orchestrator.domain.exceptions import TaskNotFoundError
from src.orchestrator.domain.models import ResultMessage

logger = logging.getLogger(__name__)


class TaskEventHandler:
    """Routes task stream events into the reconciler."""

    def __init__(self, reconciler: ResultReconciler | None = None) -> None:
        self._reconciler = reconciler or ResultReconciler()

    async def handle_claimed_event(self, event: TaskEvent) -> None:
        worker_id = event.payload.get("worker_id")
        if not isinstance(worker_id, str) or not worker_id:
            raise ValueError("Claimed payload is missing worker_id")
        try:
            await self._reconciler.mark_running(event.task_id, worker_id)
        except TaskNotFoundError:
            # Permanent inconsistency; retrying the event cannot fix it.
            logger.error("Claim notice for unknown task", extra={"task_id": event.task_id})

    async def handle_result_event(self, event: TaskEvent) -> None:
        result_payload = event.payload.get("result")
        if not isinstance(result_payload, dict):
            raise ValueError("Result payload is missing or invalid")
        result_data = dict(result_payload)
        result_data.setdefault("task_id", event.task_id)
        message = ResultMessage.model_validate(result_data)
        try:
            await self._reconciler.apply(message)
        except TaskNotFoundError:
            logger.error(
                "Result for unknown task",
                extra={"task_id": message.task_id, "worker_id": message.worker_id},
            )
