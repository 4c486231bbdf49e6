"""Multi-channel (WhatsApp/SMS/Email) delivery pipeline.

Module layout by abstraction layer:
- domain: channel rules, template rendering, secure-config codec
- application: producer and consumer use-cases
- adapters: payload mapping, message store, vendor adapters, Kafka runtime
"""

from .adapters.consumer_handler import handle_batch, handle_record
from .adapters.kafka_runtime import KafkaPublisher, run_channel_workers
from .adapters.providers.factory import ProviderFactory
from .adapters.store import MessageStore
from .application.consumer import DeliveryProcessor
from .application.producer import Producer
from .config import Settings
from .domain import CHANNEL_RULES, Channel, MessageStatus, render_template
from .domain.secure_config import decrypt_secure_config, encrypt_secure_config

__all__ = [
    "CHANNEL_RULES",
    "Channel",
    "DeliveryProcessor",
    "KafkaPublisher",
    "MessageStatus",
    "MessageStore",
    "Producer",
    "ProviderFactory",
    "Settings",
    "decrypt_secure_config",
    "encrypt_secure_config",
    "handle_batch",
    "handle_record",
    "render_template",
    "run_channel_workers",
]
