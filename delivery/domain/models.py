"""Channel, status and message-shape definitions shared by every layer."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, ClassVar


class Channel(StrEnum):
    WHATSAPP = "WHATSAPP"
    SMS = "SMS"
    EMAIL = "EMAIL"


class MessageStatus(StrEnum):
    """Message and MessageEvent status.

    ACCEPTED is also the consumer's in-flight marker. DELIVERED and READ are
    only written by delivery-receipt collaborators (webhooks).
    """

    ACCEPTED = "ACCEPTED"
    SENT = "SENT"
    DELIVERED = "DELIVERED"
    READ = "READ"
    REJECTED = "REJECTED"


STATUS_ACTIVE = 1
STATUS_INACTIVE = 0

RENDERED_CONTENT_PARAM = "rendered_content"


@dataclass(frozen=True)
class WhatsAppRecipient:
    telephone: str
    name: str = ""

    @property
    def address(self) -> str:
        return self.telephone


@dataclass(frozen=True)
class SMSRecipient:
    telephone: str

    @property
    def address(self) -> str:
        return self.telephone


@dataclass(frozen=True)
class EmailRecipient:
    email: str
    name: str = ""

    @property
    def address(self) -> str:
        return self.email


@dataclass(frozen=True)
class EmailAttachment:
    filename: str
    content_type: str
    content: str  # base64


@dataclass(frozen=True)
class Attachment:
    """Decoded email attachment handed to adapters."""

    filename: str
    content_type: str
    content: bytes


@dataclass(frozen=True)
class WhatsAppInlineAttachment:
    filename: str
    type: str
    content: str
    content_id: str = ""


@dataclass(frozen=True)
class ChannelMessage:
    """Fields common to every channel request."""

    channel: ClassVar[Channel]

    template: str
    provider: str
    refno: str
    tenant: str
    categories: list[str] = field(default_factory=list)
    identifiers: dict[str, Any] = field(default_factory=dict)
    params: dict[str, str] = field(default_factory=dict)

    @property
    def recipients(self) -> tuple[Any, ...]:
        raise NotImplementedError


@dataclass(frozen=True)
class WhatsAppMessage(ChannelMessage):
    channel: ClassVar[Channel] = Channel.WHATSAPP

    to: tuple[WhatsAppRecipient, ...] = ()
    attachments: tuple[WhatsAppInlineAttachment, ...] = ()

    @property
    def recipients(self) -> tuple[WhatsAppRecipient, ...]:
        return self.to


@dataclass(frozen=True)
class SMSMessage(ChannelMessage):
    channel: ClassVar[Channel] = Channel.SMS

    to: tuple[SMSRecipient, ...] = ()

    @property
    def recipients(self) -> tuple[SMSRecipient, ...]:
        return self.to


@dataclass(frozen=True)
class EmailMessage(ChannelMessage):
    channel: ClassVar[Channel] = Channel.EMAIL

    to: tuple[EmailRecipient, ...] = ()
    subject: str = ""
    attachments: tuple[EmailAttachment, ...] = ()

    @property
    def recipients(self) -> tuple[EmailRecipient, ...]:
        return self.to


@dataclass(frozen=True)
class Envelope:
    """Queue payload pairing a Message UUID with its channel message."""

    uuid: str
    message: ChannelMessage

    @property
    def channel(self) -> Channel:
        return self.message.channel


MESSAGE_TYPES: dict[Channel, type[ChannelMessage]] = {
    Channel.WHATSAPP: WhatsAppMessage,
    Channel.SMS: SMSMessage,
    Channel.EMAIL: EmailMessage,
}
