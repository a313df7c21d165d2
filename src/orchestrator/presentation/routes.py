from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from src.orchestrator.application.services import MonitoringService, TaskService
from src.orchestrator.domain.exceptions import (
    BrokerUnavailableError,
    TaskNotDeletableError,
    TaskNotFoundError,
    TaskValidationError,
)
from src.orchestrator.domain.models import QueueStats, Task, TaskStats, TaskStatus, WorkerInfo
from src.orchestrator.domain.models.task import DEFAULT_TIMEOUT_SECONDS, MAX_TIMEOUT_SECONDS
from src.setup.liveness_config import get_liveness_settings

router = APIRouter()


class SubmitTaskRequest(BaseModel):
    prompt: str = Field(..., min_length=1, description="Prompt or command to execute.")
    code: str | None = Field(default=None, description="Optional code payload.")
    timeout: int = Field(default=DEFAULT_TIMEOUT_SECONDS, ge=1, le=MAX_TIMEOUT_SECONDS)


class SubmitTaskResponse(BaseModel):
    id: str
    status: TaskStatus
    created_at: datetime


class StatsResponse(BaseModel):
    database: TaskStats
    queue: QueueStats


def get_task_service() -> TaskService:
    return TaskService()


def get_monitoring_service() -> MonitoringService:
    return MonitoringService(thresholds=get_liveness_settings().thresholds())


@router.post("/tasks", status_code=status.HTTP_202_ACCEPTED, response_model=SubmitTaskResponse)
async def submit_task(
    body: SubmitTaskRequest, service: TaskService = Depends(get_task_service)
) -> SubmitTaskResponse:
    try:
        task = await service.submit(body.prompt, code=body.code, timeout=body.timeout)
    except TaskValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except BrokerUnavailableError as exc:
        raise HTTPException(status_code=503, detail="Task queue is unavailable") from exc
    return SubmitTaskResponse(id=task.id, status=task.status, created_at=task.created_at)


@router.get("/tasks/stats", response_model=StatsResponse)
async def get_stats(service: MonitoringService = Depends(get_monitoring_service)) -> StatsResponse:
    try:
        queue = await service.get_queue_stats()
    except BrokerUnavailableError as exc:
        raise HTTPException(status_code=503, detail="Task queue is unavailable") from exc
    return StatsResponse(database=await service.get_task_stats(), queue=queue)


@router.get("/tasks/{task_id}", response_model=Task)
async def get_task(task_id: str, service: TaskService = Depends(get_task_service)) -> Task:
    try:
        return await service.get_task(task_id)
    except TaskNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.delete("/tasks/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_task(task_id: str, service: TaskService = Depends(get_task_service)) -> None:
    try:
        await service.delete_task(task_id)
    except TaskNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except TaskNotDeletableError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc


@router.get("/workers", response_model=list[WorkerInfo])
async def list_workers(
    service: MonitoringService = Depends(get_monitoring_service),
) -> list[WorkerInfo]:
    try:
        return await service.get_worker_list()
    except BrokerUnavailableError as exc:
        raise HTTPException(status_code=503, detail="Liveness registry is unavailable") from exc


@router.get("/health")
async def health(service: MonitoringService = Depends(get_monitoring_service)) -> dict:
    broker_ok = await service.broker_healthy()
    return {"status": "ok" if broker_ok else "degraded", "broker": "connected" if broker_ok else "disconnected"}
