from __future__ import annotations

from functools import wraps

from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from src.orchestrator.domain.exceptions import BrokerUnavailableError


def translate_transport_errors(func):
    """Re-raise Redis connection failures as ``BrokerUnavailableError``, labelled by ``self.transport_label``."""

    @wraps(func)
    async def wrapper(self, *args, **kwargs):
        try:
            return await func(self, *args, **kwargs)
        except (RedisConnectionError, RedisTimeoutError) as exc:
            raise BrokerUnavailableError(f"{self.transport_label} is unreachable: {exc}") from exc

    return wrapper
