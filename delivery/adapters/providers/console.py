"""Console adapters for local runs.

They implement the channel interfaces but only print what would be sent.
Selected with Provider.provider = "CONSOLE"; no credentials are needed.
"""

from __future__ import annotations

import json
from typing import Mapping, Sequence
import uuid

from ...domain.models import RENDERED_CONTENT_PARAM
from .base import Attachment, DeliveryStatus


def _console_id() -> str:
    return f"console-{uuid.uuid4().hex[:12]}"


class ConsoleWhatsAppAdapter:
    def send_text(self, to: str, message: str) -> str | None:
        print("[WHATSAPP]")
        print(f"to={to}")
        print(f"body={message}")
        return _console_id()

    def send_media(self, to: str, caption: str, media_type: str, media_url: str) -> str | None:
        print("[WHATSAPP MEDIA]")
        print(f"to={to}")
        print(f"caption={caption} media_type={media_type} media_url={media_url}")
        return _console_id()

    def send_template(self, to: str, vendor_template_id: str, params: Mapping[str, str]) -> str | None:
        variables = {key: value for key, value in params.items() if key != RENDERED_CONTENT_PARAM}
        print("[WHATSAPP TEMPLATE]")
        print(f"to={to}")
        print(f"template_id={vendor_template_id}")
        print(f"variables={json.dumps(variables)}")
        print(f"body={params.get(RENDERED_CONTENT_PARAM, '')}")
        return _console_id()

    def get_status(self, message_id: str) -> DeliveryStatus:
        return DeliveryStatus(message_id=message_id, status="sent", details="console adapter")


class ConsoleSMSAdapter:
    def send(self, to: str, message: str) -> str | None:
        print("[SMS]")
        print(f"to={to}")
        print(f"message={message}")
        return _console_id()

    def send_bulk(self, to: Sequence[str], message: str) -> list[str | None]:
        return [self.send(recipient, message) for recipient in to]

    def send_template(self, to: str, vendor_template_id: str, params: Mapping[str, str]) -> str | None:
        return self.send(to, params.get(RENDERED_CONTENT_PARAM, ""))

    def get_status(self, message_id: str) -> DeliveryStatus:
        return DeliveryStatus(message_id=message_id, status="sent", details="console adapter")


class ConsoleEmailAdapter:
    def send(self, to: Sequence[str], subject: str, body: str, is_html: bool) -> str | None:
        print("[EMAIL]")
        print(f"to={', '.join(to)}")
        print(f"subject={subject}")
        print(f"body={body}")
        return _console_id()

    def send_with_attachments(
        self,
        to: Sequence[str],
        subject: str,
        body: str,
        is_html: bool,
        attachments: Sequence[Attachment],
    ) -> str | None:
        message_id = self.send(to, subject, body, is_html)
        for attachment in attachments:
            print(f"attachment={attachment.filename} ({attachment.content_type}, {len(attachment.content)} bytes)")
        return message_id

    def get_status(self, message_id: str) -> DeliveryStatus:
        return DeliveryStatus(message_id=message_id, status="sent", details="console adapter")
