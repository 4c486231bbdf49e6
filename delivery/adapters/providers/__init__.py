"""Vendor adapters and the provider factory."""

from .base import DeliveryStatus, EmailAdapter, SMSAdapter, WhatsAppAdapter
from .factory import ProviderFactory

__all__ = [
    "DeliveryStatus",
    "EmailAdapter",
    "ProviderFactory",
    "SMSAdapter",
    "WhatsAppAdapter",
]
