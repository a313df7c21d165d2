from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class SweepSettings(BaseSettings):
    """Configuration for the recovery sweep run by the API process."""
    SWEEP_ENABLED: bool = True
    SWEEP_INTERVAL_SEC: float = 60.0
    QUEUED_GRACE_SEC: int = 120
    RUNNING_GRACE_SEC: int = 60
    BATCH_SIZE: int = 100

    model_config = ConfigDict(env_file=".env", extra="ignore")


def get_sweep_settings() -> SweepSettings:
    return SweepSettings()
