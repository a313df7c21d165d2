import asyncio
import logging
import signal

from redis.asyncio import Redis

from src.orchestrator.infrastructure.redis.liveness import RedisLivenessRegistry
from src.orchestrator.worker.executor import ShellExecutor
from src.orchestrator.worker.heartbeat import HeartbeatService
from src.orchestrator.worker.runtime import WorkerRuntime
from src.setup.broker_config import get_broker_settings
from src.setup.liveness_config import get_liveness_settings
from src.setup.logging_config import configure_logging
from src.setup.queue_config import build_job_broker
from src.setup.stream_config import build_stream_publisher
from src.setup.worker_config import get_worker_settings

logger = logging.getLogger(__name__)


def build_runtime() -> WorkerRuntime:
    settings = get_worker_settings()
    liveness = get_liveness_settings()
    registry = RedisLivenessRegistry(
        Redis.from_url(liveness.REDIS_URL, decode_responses=True),
        prefix=liveness.KEY_PREFIX,
        ttl_seconds=liveness.HEARTBEAT_TTL_SEC,
    )
    heartbeat = HeartbeatService(
        registry,
        settings.WORKER_ID,
        settings.WORKER_TYPE,
        interval_seconds=liveness.HEARTBEAT_INTERVAL_SEC,
    )
    return WorkerRuntime(
        settings.WORKER_ID,
        broker=build_job_broker(get_broker_settings()),
        publisher=build_stream_publisher(),
        executor=ShellExecutor(settings.SHELL),
        heartbeat=heartbeat,
        concurrency=settings.CONCURRENCY,
        poll_interval_sec=settings.POLL_INTERVAL_SEC,
    )


async def run_worker() -> None:
    runtime = build_runtime()
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(signum, runtime.request_stop)
    await runtime.run()


def main() -> None:
    configure_logging(get_worker_settings().LOG_LEVEL)
    try:
        asyncio.run(run_worker())
    except Exception:
        logger.exception("Worker terminated with an error")
        raise SystemExit(1)


if __name__ == "__main__":
    main()
