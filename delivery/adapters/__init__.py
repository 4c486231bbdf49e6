"""Adapter layer: payload mapping, persistence, vendor clients and Kafka glue."""

from .consumer_handler import handle_batch, handle_record
from .kafka_runtime import ChannelWorker, KafkaPublisher, run_channel_workers
from .payload import build_envelope, parse_envelope
from .providers import ProviderFactory
from .store import MessageStore

__all__ = [
    "ChannelWorker",
    "KafkaPublisher",
    "MessageStore",
    "ProviderFactory",
    "build_envelope",
    "handle_batch",
    "handle_record",
    "parse_envelope",
    "run_channel_workers",
]
