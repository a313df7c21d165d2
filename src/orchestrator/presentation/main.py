import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import timedelta

import inject
from fastapi import FastAPI

from src.orchestrator.application.sweeper import RecoverySweeper
from src.orchestrator.domain.repositories import JobBroker, LivenessRegistry
from src.orchestrator.infrastructure.postgres.orm import PostgresOrm
from src.setup.api_config import get_api_settings
from src.setup.app_config import configure_di
from src.setup.logging_config import configure_logging
from src.setup.stream_config import build_stream_consumer
from src.setup.sweep_config import get_sweep_settings

settings = get_api_settings()
configure_logging(settings.LOG_LEVEL)
configure_di()

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    consumer = build_stream_consumer()
    await consumer.start()

    sweep = get_sweep_settings()
    sweeper: RecoverySweeper | None = None
    sweeper_task: asyncio.Task | None = None
    if sweep.SWEEP_ENABLED:
        sweeper = RecoverySweeper(
            queued_grace=timedelta(seconds=sweep.QUEUED_GRACE_SEC),
            running_grace=timedelta(seconds=sweep.RUNNING_GRACE_SEC),
            batch_size=sweep.BATCH_SIZE,
        )
        sweeper_task = asyncio.create_task(sweeper.run(sweep.SWEEP_INTERVAL_SEC), name="recovery-sweeper")
    logger.info("Orchestrator started")
    try:
        yield
    finally:
        if sweeper is not None and sweeper_task is not None:
            sweeper.stop()
            await asyncio.gather(sweeper_task, return_exceptions=True)
        await consumer.stop()
        await inject.instance(JobBroker).close()
        await inject.instance(LivenessRegistry).close()
        await inject.instance(PostgresOrm).dispose()
        logger.info("Orchestrator stopped")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Task dispatch, worker liveness and result reconciliation",
    lifespan=lifespan,
)

from src.orchestrator.presentation.routes import router as api_router  # noqa: E402

app.include_router(api_router, prefix="")
