from pydantic import ConfigDict
from pydantic_settings import BaseSettings

class WorkerSettings(BaseSettings):
    """Configuration for a worker process."""
    WORKER_ID: str = "worker-1"
    WORKER_TYPE: str = "local"
    CONCURRENCY: int = 1
    POLL_INTERVAL_SEC: float = 0.5
    SHELL: str = "/bin/sh"
    LOG_LEVEL: str = "INFO"

    model_config = ConfigDict(env_file=".env", extra="ignore")


def get_worker_settings() -> WorkerSettings:
    """Return a fresh worker settings instance."""
    return WorkerSettings()
