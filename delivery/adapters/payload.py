"""Envelope payload mapping.

Translates the queue's JSON shape `{"uuid": ..., "message": {...}}` into
typed channel messages and back. Field names follow the ingress contract
(`refno`, `tenantId`, `contentType`, ...). Shape problems raise ValueError;
deciding what to do about them belongs to the consumer handler.
"""

from __future__ import annotations

import json
from typing import Any, Mapping

from ..domain.models import (
    Channel,
    ChannelMessage,
    EmailAttachment,
    EmailMessage,
    EmailRecipient,
    Envelope,
    SMSMessage,
    SMSRecipient,
    WhatsAppInlineAttachment,
    WhatsAppMessage,
    WhatsAppRecipient,
)
from ..types import Payload, PayloadDict


def parse_envelope(channel: Channel, payload: Payload) -> Envelope:
    uuid = _as_required_str(payload.get("uuid"), "uuid")
    message = payload.get("message")
    if not isinstance(message, Mapping):
        raise ValueError("envelope.message must be an object")
    return Envelope(uuid=uuid, message=parse_channel_message(channel, message))


def build_envelope(uuid: str, message: ChannelMessage) -> PayloadDict:
    return {"uuid": uuid, "message": message_to_payload(message)}


def parse_channel_message(channel: Channel, payload: Payload) -> ChannelMessage:
    channel = Channel(channel)
    identifiers = payload.get("identifiers") or {}
    if not isinstance(identifiers, Mapping):
        raise ValueError("message.identifiers must be an object")
    common: dict[str, Any] = {
        "template": _as_required_str(payload.get("template"), "message.template"),
        "provider": _as_required_str(payload.get("provider"), "message.provider"),
        "refno": _as_optional_str(payload.get("refno")),
        "tenant": _as_optional_str(payload.get("tenantId")) or _as_optional_str(identifiers.get("tenant")),
        "categories": [str(item) for item in _as_list(payload.get("categories"), "message.categories")],
        "identifiers": dict(identifiers),
        "params": _as_params(payload.get("params")),
    }
    to = _as_list(payload.get("to"), "message.to")

    if channel is Channel.WHATSAPP:
        attachments = payload.get("attachments") or {}
        inline = attachments.get("inline") if isinstance(attachments, Mapping) else None
        return WhatsAppMessage(
            **common,
            to=tuple(
                WhatsAppRecipient(
                    telephone=_as_required_str(item.get("telephone"), "message.to[].telephone"),
                    name=_as_optional_str(item.get("name")),
                )
                for item in _as_objects(to, "message.to")
            ),
            attachments=tuple(
                WhatsAppInlineAttachment(
                    filename=_as_optional_str(item.get("filename")),
                    type=_as_optional_str(item.get("type")),
                    content=_as_optional_str(item.get("content")),
                    content_id=_as_optional_str(item.get("contentId")),
                )
                for item in _as_objects(_as_list(inline, "message.attachments.inline"), "message.attachments.inline")
            ),
        )

    if channel is Channel.SMS:
        return SMSMessage(
            **common,
            to=tuple(
                SMSRecipient(telephone=_as_required_str(item.get("telephone"), "message.to[].telephone"))
                for item in _as_objects(to, "message.to")
            ),
        )

    return EmailMessage(
        **common,
        to=tuple(
            EmailRecipient(
                email=_as_required_str(item.get("email"), "message.to[].email"),
                name=_as_optional_str(item.get("name")),
            )
            for item in _as_objects(to, "message.to")
        ),
        subject=_as_optional_str(payload.get("subject")),
        attachments=tuple(
            EmailAttachment(
                filename=_as_required_str(item.get("filename"), "message.attachments[].filename"),
                content_type=_as_optional_str(item.get("contentType")),
                content=_as_optional_str(item.get("content")),
            )
            for item in _as_objects(_as_list(payload.get("attachments"), "message.attachments"), "message.attachments")
        ),
    )


def message_to_payload(message: ChannelMessage) -> PayloadDict:
    payload: PayloadDict = {
        "template": message.template,
        "provider": message.provider,
        "refno": message.refno,
        "tenantId": message.tenant,
        "categories": list(message.categories),
        "identifiers": dict(message.identifiers),
        "params": dict(message.params),
    }
    if isinstance(message, WhatsAppMessage):
        payload["to"] = [{"name": item.name, "telephone": item.telephone} for item in message.to]
        if message.attachments:
            payload["attachments"] = {
                "inline": [
                    {
                        "filename": item.filename,
                        "type": item.type,
                        "content": item.content,
                        "contentId": item.content_id,
                    }
                    for item in message.attachments
                ]
            }
    elif isinstance(message, SMSMessage):
        payload["to"] = [{"telephone": item.telephone} for item in message.to]
    elif isinstance(message, EmailMessage):
        payload["to"] = [{"name": item.name, "email": item.email} for item in message.to]
        if message.subject:
            payload["subject"] = message.subject
        if message.attachments:
            payload["attachments"] = [
                {"filename": item.filename, "contentType": item.content_type, "content": item.content}
                for item in message.attachments
            ]
    return payload


def serialize_json_object(payload: Mapping[str, Any]) -> bytes:
    return json.dumps(payload, separators=(",", ":")).encode("utf-8")


def deserialize_json_object(raw: bytes | str | Mapping[str, Any]) -> dict[str, Any]:
    if isinstance(raw, Mapping):
        return dict(raw)

    if isinstance(raw, bytes):
        text = raw.decode("utf-8")
    elif isinstance(raw, str):
        text = raw
    else:
        raise ValueError(f"Unsupported payload type: {type(raw).__name__}")

    parsed = json.loads(text)
    if not isinstance(parsed, dict):
        raise ValueError("payload must decode to a JSON object")
    return parsed


def _as_required_str(value: Any, field_name: str) -> str:
    text = str(value).strip() if value is not None else ""
    if not text:
        raise ValueError(f"Missing required field: {field_name}")
    return text


def _as_optional_str(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _as_list(value: Any, field_name: str) -> list[Any]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError(f"{field_name} must be a list")
    return value


def _as_objects(items: list[Any], field_name: str) -> list[Mapping[str, Any]]:
    for item in items:
        if not isinstance(item, Mapping):
            raise ValueError(f"{field_name} entries must be objects")
    return items


def _as_params(value: Any) -> dict[str, str]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ValueError("message.params must be an object")
    return {str(key): "" if item is None else str(item) for key, item in value.items()}

