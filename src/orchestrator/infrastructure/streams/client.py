from __future__ import annotations

import logging

from redis.asyncio import ConnectionPool, Redis
from redis.exceptions import ResponseError

logger = logging.getLogger(__name__)


class StreamsClient:
    def __init__(
        self,
        url: str,
        *,
        max_connections: int = 10,
        socket_timeout: float | None = None,
        socket_connect_timeout: float = 5.0,
        retry_on_timeout: bool = True,
    ) -> None:
        # Blocking XREADGROUP calls outlive a short socket timeout, so none by default.
        pool = ConnectionPool.from_url(
            url,
            max_connections=max_connections,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_connect_timeout,
            retry_on_timeout=retry_on_timeout,
            decode_responses=True,
        )
        self._redis = Redis(connection_pool=pool)

    @classmethod
    def from_redis(cls, redis: Redis) -> StreamsClient:
        client = cls.__new__(cls)
        client._redis = redis
        return client

    @property
    def redis(self) -> Redis:
        return self._redis

    async def ensure_consumer_group(
        self,
        *,
        stream: str,
        group: str,
        start_id: str = "0",
    ) -> None:
        try:
            await self._redis.xgroup_create(
                name=stream,
                groupname=group,
                id=start_id,
                mkstream=True,
            )
            logger.info(
                "Created Redis consumer group",
                extra={"stream": stream, "group": group},
            )
        except ResponseError as exc:
            message = str(exc)
            # Ignore BUSYGROUP error if the group already exists
            if "BUSYGROUP" in message:
                return
            raise

    async def close(self) -> None:
        await self._redis.aclose()
