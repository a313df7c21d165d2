from src.orchestrator.domain.policies import RetentionPolicy, RetryPolicy
from src.orchestrator.infrastructure.redis.broker import RedisJobBroker
from src.setup.broker_config import BrokerSettings, get_broker_settings


def build_job_broker(settings: BrokerSettings | None = None) -> RedisJobBroker:
    """Create a Redis job broker from settings."""
    if settings is None:
        settings = get_broker_settings()
    return RedisJobBroker.from_url(
        settings.REDIS_URL,
        settings.QUEUE_NAME,
        retry_policy=RetryPolicy(
            max_attempts=settings.MAX_ATTEMPTS,
            base_delay_ms=settings.BACKOFF_BASE_MS,
            max_delay_ms=settings.BACKOFF_MAX_MS,
        ),
        retention=RetentionPolicy(
            completed_count=settings.COMPLETED_RETENTION_COUNT,
            completed_age_sec=settings.COMPLETED_RETENTION_AGE_SEC,
            failed_age_sec=settings.FAILED_RETENTION_AGE_SEC,
        ),
        lease_margin_sec=settings.LEASE_MARGIN_SEC,
        poll_interval_sec=settings.POLL_INTERVAL_SEC,
    )
