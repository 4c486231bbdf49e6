"""SendGrid email adapter (v3 mail/send, bearer auth).

Provider.config:         {"from", "baseUrl", "accountId"}
Provider.secure_config:  encrypted {"apikey"}
"""

from __future__ import annotations

import base64
from datetime import UTC, datetime
import json
import logging
from typing import Any, Mapping, Sequence

from ...logs import redact
from .. import http
from .base import (
    DEFAULT_TIMEOUT_SECONDS,
    Attachment,
    DeliveryStatus,
    config_str,
    reject_placeholder,
    required_config,
)

log = logging.getLogger("delivery.providers.sendgrid")

VENDOR = "sendgrid"
MESSAGE_ID_HEADER = "X-Message-Id"


class SendGridEmailAdapter:
    def __init__(
        self,
        *,
        api_key: str,
        from_email: str,
        base_url: str,
        account_id: str = "",
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self.api_key = api_key
        self.from_email = from_email
        self.base_url = base_url.rstrip("/")
        self.account_id = account_id
        self.timeout = timeout

    @classmethod
    def from_config(
        cls,
        config: Mapping[str, Any],
        secrets: Mapping[str, Any],
        *,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> "SendGridEmailAdapter":
        api_key = required_config(secrets, "apikey", "API key")
        reject_placeholder(api_key, "API key")
        return cls(
            api_key=api_key,
            from_email=required_config(config, "from", "from email"),
            base_url=required_config(config, "baseUrl", "base URL"),
            account_id=config_str(config, "accountId"),
            timeout=timeout,
        )

    def send(self, to: Sequence[str], subject: str, body: str, is_html: bool) -> str | None:
        return self._send_request(self._build_request(to, subject, body, is_html))

    def send_with_attachments(
        self,
        to: Sequence[str],
        subject: str,
        body: str,
        is_html: bool,
        attachments: Sequence[Attachment],
    ) -> str | None:
        request = self._build_request(to, subject, body, is_html)
        request["attachments"] = [
            {
                "content": base64.b64encode(attachment.content).decode("ascii"),
                "type": attachment.content_type,
                "filename": attachment.filename,
                "disposition": "attachment",
            }
            for attachment in attachments
        ]
        return self._send_request(request)

    def get_status(self, message_id: str) -> DeliveryStatus:
        return DeliveryStatus(
            message_id=message_id,
            status="unknown",
            details="SendGrid provider does not support status retrieval by message ID",
            timestamp=datetime.now(tz=UTC).isoformat(),
        )

    def _build_request(self, to: Sequence[str], subject: str, body: str, is_html: bool) -> dict[str, Any]:
        return {
            "personalizations": [{"to": [{"email": email} for email in to]}],
            "from": {"email": self.from_email},
            "subject": subject,
            "content": [{"type": "text/html" if is_html else "text/plain", "value": body}],
        }

    def _send_request(self, request: Mapping[str, Any]) -> str | None:
        endpoint = f"{self.base_url}/v3/mail/send"
        log.info(
            "[SENDGRID REQUEST] endpoint=%s from=%s to=%s subject=%r body=%s",
            endpoint,
            self.from_email,
            [item["email"] for item in request["personalizations"][0]["to"]],
            request["subject"],
            redact(json.dumps(request)[:1000], self.api_key),
        )
        response, headers = http.post_json(
            endpoint,
            request,
            authorization=http.bearer_auth_header(self.api_key),
            vendor=VENDOR,
            timeout=self.timeout,
            describe_error=describe_sendgrid_error,
            include_headers=True,
        )
        # 202 Accepted has an empty body; the id travels in a header.
        message_id = headers.get(MESSAGE_ID_HEADER) if headers is not None else None
        if not message_id and isinstance(response, Mapping):
            message_id = response.get("id")
        log.info("[SENDGRID SENT] endpoint=%s message_id=%s", endpoint, message_id)
        return str(message_id) if message_id else None


def describe_sendgrid_error(body: Any) -> str:
    if not isinstance(body, Mapping):
        return ""
    errors = body.get("errors")
    if not isinstance(errors, list):
        return ""
    parts = []
    for error in errors:
        if not isinstance(error, Mapping):
            continue
        field = error.get("field")
        message = error.get("message") or ""
        parts.append(f"{field}: {message}" if field else str(message))
    return "; ".join(parts)
