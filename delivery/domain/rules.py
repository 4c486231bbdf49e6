"""Per-channel delivery rules used by the consumer."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable

from ..types import RecipientResult
from .models import Channel, ChannelMessage


@dataclass(frozen=True)
class DeliveryContext:
    """Resolved template data shared by every recipient of one envelope."""

    content: str
    subject: str = ""
    template_name: str = ""
    vendor_template_id: str | None = None


DeliverFn = Callable[[Any, ChannelMessage, Any, DeliveryContext], RecipientResult]


@dataclass(frozen=True)
class ChannelRules:
    channel: Channel
    deliver: DeliverFn
    # Email adapters have no template-send operation, so no vendor id is needed.
    requires_vendor_template_id: bool = True


def recipient_success(recipient: Any, vendor_message_id: str | None) -> RecipientResult:
    return {
        "recipient": recipient.address,
        "success": True,
        "error": None,
        "vendor_message_id": vendor_message_id,
    }


def recipient_failure(recipient: Any, error: str) -> RecipientResult:
    return {
        "recipient": recipient.address,
        "success": False,
        "error": error,
        "vendor_message_id": None,
    }
