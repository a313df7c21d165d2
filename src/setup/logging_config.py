import logging

_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Configure the root logger once per process."""
    logging.basicConfig(level=level.upper(), format=_FORMAT)
    # Connection-level chatter from the Redis client is not useful at INFO.
    logging.getLogger("redis").setLevel(logging.WARNING)
