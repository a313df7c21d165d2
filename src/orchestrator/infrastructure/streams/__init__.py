from src.orchestrator.infrastructure.streams.client import StreamsClient
from src.orchestrator.infrastructure.streams.consumer import StreamsConsumer
from src.orchestrator.infrastructure.streams.publisher import StreamsPublisher
from src.orchestrator.infrastructure.streams.router import EventRouter

__all__ = [
    "StreamsClient",
    "StreamsPublisher",
    "StreamsConsumer",
    "EventRouter",
]
