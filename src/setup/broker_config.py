from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class BrokerSettings(BaseSettings):
    """Configuration for the Redis job broker."""
    REDIS_URL: str = "redis://redis:6379/0"
    QUEUE_NAME: str = "tasks"
    MAX_ATTEMPTS: int = 3
    BACKOFF_BASE_MS: int = 2000
    BACKOFF_MAX_MS: int = 60000
    COMPLETED_RETENTION_COUNT: int = 1000
    COMPLETED_RETENTION_AGE_SEC: int = 3600
    FAILED_RETENTION_AGE_SEC: int = 86400
    LEASE_MARGIN_SEC: int = 30
    POLL_INTERVAL_SEC: float = 0.5

    model_config = ConfigDict(env_file=".env", extra="ignore")


def get_broker_settings() -> BrokerSettings:
    """Return a fresh broker settings instance."""
    return BrokerSettings()
