import inject
from redis.asyncio import Redis

from src.orchestrator.domain.repositories import (
    JobBroker,
    LivenessRegistry,
    TaskStore,
)
from src.orchestrator.infrastructure.postgres.orm import PostgresOrm
from src.orchestrator.infrastructure.postgres.repositories import PostgresTaskStore
from src.orchestrator.infrastructure.redis.liveness import RedisLivenessRegistry
from src.setup.db_config import get_database_settings
from src.setup.liveness_config import get_liveness_settings
from src.setup.queue_config import build_job_broker


def _bindings(binder: inject.Binder) -> None:
    db = get_database_settings()
    liveness = get_liveness_settings()
    orm = PostgresOrm(db.DATABASE_URL, echo=db.DATABASE_ECHO)

    binder.bind(PostgresOrm, orm)
    binder.bind(TaskStore, PostgresTaskStore(orm))
    binder.bind(JobBroker, build_job_broker())
    binder.bind(
        LivenessRegistry,
        RedisLivenessRegistry(
            Redis.from_url(liveness.REDIS_URL, decode_responses=True),
            prefix=liveness.KEY_PREFIX,
            ttl_seconds=liveness.HEARTBEAT_TTL_SEC,
        ),
    )


def configure_di() -> None:
    """Bind the capability interfaces to their Redis/Postgres adapters once per process."""
    if inject.is_configured():
        return
    inject.configure(_bindings)
