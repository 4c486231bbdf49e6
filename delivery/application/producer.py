"""Producer use-case: accept a channel request and hand it to the queue.

The Message row is written before anything is published, so a consumer that
sees the envelope can always find (or safely recreate) its record.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Protocol, Sequence

from ..adapters.payload import build_envelope
from ..adapters.store import MessageStore, new_uuid
from ..domain.models import Channel, ChannelMessage, MessageStatus
from ..errors import InfrastructureError, ValidationError

log = logging.getLogger("delivery.producer")

ACCEPTED_REASON = "Message accepted for delivery"


class Publisher(Protocol):
    def publish(self, topic: str, key: str, payload: Mapping[str, Any]) -> Any: ...


class Producer:
    """Validates, persists and enqueues requests for one channel."""

    def __init__(self, channel: Channel, store: MessageStore, publisher: Publisher, topic: str) -> None:
        self.channel = Channel(channel)
        self.store = store
        self.publisher = publisher
        self.topic = topic

    def produce(self, message: ChannelMessage) -> dict[str, str]:
        _validate(self.channel, message)
        uuid = new_uuid()

        # Insert failures raise InfrastructureError and nothing is published.
        self.store.insert_message(
            uuid=uuid,
            channel=self.channel,
            refno=message.refno,
            identifiers=message.identifiers,
            categories=message.categories,
        )
        self.store.append_event(uuid, MessageStatus.ACCEPTED, reason=ACCEPTED_REASON)

        try:
            metadata = self.publisher.publish(self.topic, uuid, build_envelope(uuid, message))
        except Exception as exc:
            log.error(
                "[PUBLISH ERROR] uuid=%s topic=%s refno=%s error=%s (message row left in ACCEPTED)",
                uuid,
                self.topic,
                message.refno,
                exc,
            )
            raise InfrastructureError(f"failed to publish message {uuid} to {self.topic}: {exc}") from exc

        log.info(
            "[PRODUCED] uuid=%s channel=%s topic=%s refno=%s metadata=%s",
            uuid,
            self.channel.value,
            self.topic,
            message.refno,
            metadata,
        )
        return {"uuid": uuid, "refno": message.refno}

    def produce_batch(self, messages: Sequence[ChannelMessage]) -> list[dict[str, str]]:
        """Produce each message in order; stops at the first failure."""
        return [self.produce(message) for message in messages]


def _validate(channel: Channel, message: ChannelMessage) -> None:
    if message.channel is not channel:
        raise ValidationError(f"{channel.value} producer cannot accept a {message.channel.value} message")
    if not message.template.strip():
        raise ValidationError("template is required")
    if not message.provider.strip():
        raise ValidationError("provider is required")
    if not message.refno.strip():
        raise ValidationError("refno is required")
    if not message.tenant.strip():
        raise ValidationError("tenant is required")
    if not message.recipients:
        raise ValidationError("at least one recipient is required")
