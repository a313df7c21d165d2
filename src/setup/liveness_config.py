from datetime import timedelta

from pydantic import ConfigDict
from pydantic_settings import BaseSettings

from src.orchestrator.domain.liveness import LivenessThresholds


class LivenessSettings(BaseSettings):
    """Heartbeat cadence and the age thresholds used to classify workers."""
    REDIS_URL: str = "redis://redis:6379/0"
    KEY_PREFIX: str = "worker"
    HEARTBEAT_INTERVAL_SEC: float = 10.0
    HEARTBEAT_TTL_SEC: int = 30
    ACTIVE_THRESHOLD_SEC: float = 15.0
    IDLE_THRESHOLD_SEC: float = 30.0

    model_config = ConfigDict(env_file=".env", extra="ignore")

    def thresholds(self) -> LivenessThresholds:
        return LivenessThresholds(
            active=timedelta(seconds=self.ACTIVE_THRESHOLD_SEC),
            expiry=timedelta(seconds=self.IDLE_THRESHOLD_SEC),
        )


def get_liveness_settings() -> LivenessSettings:
    return LivenessSettings()
