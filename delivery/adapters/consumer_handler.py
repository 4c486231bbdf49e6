"""Consumer-handler adapter functions (broker-agnostic record flow).

Flow:
  record -> decode envelope -> DeliveryProcessor -> ack/nack decision

This module owns transport lifecycle decisions, not channel business rules:
- malformed payloads and infrastructure failures are nacked (redelivered);
- every other outcome, including a REJECTED message, is acked.
"""

from __future__ import annotations

from typing import Any, Sequence

from ..application.consumer import DeliveryProcessor
from ..errors import InfrastructureError
from ..types import AckFn, NackFn, Record
from .payload import deserialize_json_object, parse_envelope


def handle_record(
    record: Record,
    *,
    processor: DeliveryProcessor,
    ack: AckFn,
    nack: NackFn,
) -> dict[str, Any]:
    """Handle one incoming record and decide ack/nack."""
    try:
        payload = deserialize_json_object(record.get("value"))
        envelope = parse_envelope(processor.channel, payload)
    except Exception as exc:
        error = f"parse_failed: {exc}"
        nack(record, error)
        return {
            "status": "parse_failed",
            "record_meta": _record_meta(record),
            "uuid": None,
            "processing": None,
            "should_ack": False,
            "error": error,
        }

    try:
        processing = processor.process(envelope)
    except InfrastructureError as exc:
        error = f"infrastructure_error: {exc}"
        nack(record, error)
        return {
            "status": "infrastructure_error",
            "record_meta": _record_meta(record),
            "uuid": envelope.uuid,
            "processing": None,
            "should_ack": False,
            "error": error,
        }

    ack(record)
    return {
        "status": "processed_and_acked",
        "record_meta": _record_meta(record),
        "uuid": envelope.uuid,
        "processing": processing,
        "should_ack": True,
        "error": None,
    }


def handle_batch(
    records: Sequence[Record],
    *,
    processor: DeliveryProcessor,
    ack: AckFn,
    nack: NackFn,
) -> list[dict[str, Any]]:
    """Handle a batch of records sequentially using `handle_record`."""
    return [handle_record(record, processor=processor, ack=ack, nack=nack) for record in records]


def _record_meta(record: Record) -> dict[str, Any]:
    return {
        "topic": record.get("topic"),
        "partition": record.get("partition"),
        "offset": record.get("offset"),
    }
