from __future__ import annotations

import asyncio
import logging
import time
from enum import Enum

from src.orchestrator.domain.events.task_event import TaskEvent
from src.orchestrator.domain.exceptions import (
    BrokerUnavailableError,
    ExecutionFailure,
    ExecutionTimeout,
    TaskValidationError,
)
from src.orchestrator.domain.models import DispatchMessage, ResultMessage, ResultStatus
from src.orchestrator.domain.repositories import JobBroker, TaskEventPublisher
from src.orchestrator.worker.executor import Executor
from src.orchestrator.worker.heartbeat import HeartbeatService

logger = logging.getLogger(__name__)

_BROKER_RETRY_DELAY_SEC = 1.0


class SlotState(str, Enum):
    IDLE = "idle"
    CLAIMED = "claimed"
    EXECUTING = "executing"
    REPORTING = "reporting"


class WorkerRuntime:
    """
    Claims dispatch messages and runs them through the executor, one job per slot.

    Every attempt that reaches ``process_job`` publishes exactly one Result
    Message. Failed attempts are handed back to the broker for retry after the
    result is published.
    """

    def __init__(
        self,
        worker_id: str,
        broker: JobBroker,
        publisher: TaskEventPublisher,
        executor: Executor,
        heartbeat: HeartbeatService | None = None,
        *,
        concurrency: int = 1,
        poll_interval_sec: float = 0.5,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.worker_id = worker_id
        self._broker = broker
        self._publisher = publisher
        self._executor = executor
        self._heartbeat = heartbeat
        self._concurrency = concurrency
        self._poll_interval_sec = poll_interval_sec
        self._stopping = asyncio.Event()
        self.slots: list[SlotState] = [SlotState.IDLE] * concurrency

    def request_stop(self) -> None:
        """Stop claiming new jobs; in-flight jobs run to completion."""
        if not self._stopping.is_set():
            logger.info("Worker shutdown requested", extra={"worker_id": self.worker_id})
        self._stopping.set()

    async def run(self) -> None:
        if self._heartbeat is not None:
            self._heartbeat.start()
        logger.info(
            "Worker started",
            extra={"worker_id": self.worker_id, "concurrency": self._concurrency},
        )
        try:
            await asyncio.gather(*(self._slot_loop(slot) for slot in range(self._concurrency)))
        finally:
            await self._shutdown()

    async def _shutdown(self) -> None:
        await self._broker.close()
        if self._heartbeat is not None:
            await self._heartbeat.stop()
        await self._publisher.close()
        logger.info("Worker stopped", extra={"worker_id": self.worker_id})

    async def _slot_loop(self, slot: int) -> None:
        while not self._stopping.is_set():
            try:
                message = await self._broker.claim(timeout=0)
            except BrokerUnavailableError:
                logger.warning(
                    "Broker unreachable while claiming",
                    extra={"worker_id": self.worker_id},
                    exc_info=True,
                )
                await self._idle(_BROKER_RETRY_DELAY_SEC)
                continue
            if message is None:
                await self._idle(self._poll_interval_sec)
                continue
            self.slots[slot] = SlotState.CLAIMED
            try:
                await self.handle(message, slot)
            finally:
                self.slots[slot] = SlotState.IDLE

    async def _idle(self, seconds: float) -> None:
        # Returns early once a stop is requested so no claim follows it.
        try:
            await asyncio.wait_for(self._stopping.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    async def handle(self, message: DispatchMessage, slot: int = 0) -> None:
        """Run one claimed message and settle it with the broker."""
        await self._publish_claimed(message)
        try:
            await self.process_job(message, slot)
        except Exception as exc:
            await self._settle(
                self._broker.retry(message.task_id, str(exc), attempt=message.attempt),
                message,
            )
        else:
            await self._settle(self._broker.ack(message.task_id, attempt=message.attempt), message)

    async def process_job(self, message: DispatchMessage, slot: int = 0) -> ResultMessage:
        """
        Execute ``message`` and publish its Result Message.

        Raises the execution error after publishing a failed result, so the
        broker's retry policy engages.
        """
        started = time.monotonic()
        self.slots[slot] = SlotState.EXECUTING
        error: Exception | None = None
        stdout = ""
        try:
            _validate(message)
            output = await asyncio.wait_for(
                self._executor.execute(message.prompt, message.code, message.timeout),
                timeout=message.timeout,
            )
            if output.exit_code != 0:
                raise ExecutionFailure(
                    output.stderr or f"Process exited with code {output.exit_code}",
                    exit_code=output.exit_code,
                )
            stdout = output.stdout
        except asyncio.TimeoutError:
            error = ExecutionTimeout(message.timeout)
        except (TaskValidationError, ExecutionFailure) as exc:
            error = exc
        except Exception as exc:
            error = ExecutionFailure(str(exc) or exc.__class__.__name__)
            error.__cause__ = exc

        elapsed_ms = int((time.monotonic() - started) * 1000)
        if isinstance(error, ExecutionTimeout):
            elapsed_ms = max(elapsed_ms, message.timeout * 1000)
        self.slots[slot] = SlotState.REPORTING
        if error is None:
            result = ResultMessage(
                task_id=message.task_id,
                worker_id=self.worker_id,
                status=ResultStatus.COMPLETED,
                result=stdout,
                execution_time_ms=elapsed_ms,
                attempt=message.attempt,
            )
            await self._publisher.publish(TaskEvent.result(result))
            logger.info(
                "Task completed",
                extra={"task_id": message.task_id, "worker_id": self.worker_id, "execution_time_ms": elapsed_ms},
            )
            return result

        result = ResultMessage(
            task_id=message.task_id or "",
            worker_id=self.worker_id,
            status=ResultStatus.FAILED,
            error_message=str(error),
            execution_time_ms=elapsed_ms,
            timed_out=isinstance(error, ExecutionTimeout),
            attempt=message.attempt,
        )
        try:
            await self._publisher.publish(TaskEvent.result(result))
        except Exception:
            logger.error(
                "Failed to publish failure result",
                extra={"task_id": message.task_id, "worker_id": self.worker_id},
                exc_info=True,
            )
        logger.warning(
            "Task failed: %s",
            error,
            extra={"task_id": message.task_id, "worker_id": self.worker_id, "execution_time_ms": elapsed_ms},
        )
        raise error

    async def _publish_claimed(self, message: DispatchMessage) -> None:
        try:
            await self._publisher.publish(
                TaskEvent.claimed(message.task_id, self.worker_id, message.attempt)
            )
        except Exception:
            # The result event still closes the lifecycle without the claim notice.
            logger.warning(
                "Failed to publish claim notice",
                extra={"task_id": message.task_id, "worker_id": self.worker_id},
                exc_info=True,
            )

    async def _settle(self, outcome, message: DispatchMessage) -> None:
        try:
            await outcome
        except BrokerUnavailableError:
            # The lease expires and the recovery sweep returns the message to the retry path.
            logger.error(
                "Failed to settle dispatch with broker",
                extra={"task_id": message.task_id, "worker_id": self.worker_id},
                exc_info=True,
            )


def _validate(message: DispatchMessage) -> None:
    if not message.task_id:
        raise TaskValidationError("Dispatch message is missing taskId")
    if not message.prompt or not message.prompt.strip():
        raise TaskValidationError("Dispatch message has an empty prompt")
