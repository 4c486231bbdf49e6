"""Mailgun email adapter (REST messages API, basic auth `api:<key>`).

Provider.config:         {"domain", "from", "baseUrl"}
Provider.secure_config:  encrypted {"apikey"}
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Sequence
import urllib.parse

from ...errors import ProviderCallError
from .. import http
from .base import (
    DEFAULT_TIMEOUT_SECONDS,
    Attachment,
    DeliveryStatus,
    config_str,
    reject_placeholder,
    required_config,
)

log = logging.getLogger("delivery.providers.mailgun")

VENDOR = "mailgun"
DEFAULT_BASE_URL = "https://api.mailgun.net"


class MailgunEmailAdapter:
    def __init__(
        self,
        *,
        api_key: str,
        domain: str,
        from_email: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self.api_key = api_key
        self.domain = domain
        self.from_email = from_email
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    @classmethod
    def from_config(
        cls,
        config: Mapping[str, Any],
        secrets: Mapping[str, Any],
        *,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> "MailgunEmailAdapter":
        api_key = required_config(secrets, "apikey", "API key")
        reject_placeholder(api_key, "API key")
        return cls(
            api_key=api_key,
            domain=required_config(config, "domain", "sending domain"),
            from_email=required_config(config, "from", "from email"),
            base_url=config_str(config, "baseUrl") or DEFAULT_BASE_URL,
            timeout=timeout,
        )

    def send(self, to: Sequence[str], subject: str, body: str, is_html: bool) -> str | None:
        fields = self._fields(to, subject, body, is_html)
        log.info("[MAILGUN REQUEST] endpoint=%s to=%s subject=%r", self._endpoint("messages"), list(to), subject)
        response = http.post_form(
            self._endpoint("messages"),
            fields,
            authorization=self._authorization(),
            vendor=VENDOR,
            timeout=self.timeout,
            describe_error=describe_mailgun_error,
        )
        return _message_id(response)

    def send_with_attachments(
        self,
        to: Sequence[str],
        subject: str,
        body: str,
        is_html: bool,
        attachments: Sequence[Attachment],
    ) -> str | None:
        fields = self._fields(to, subject, body, is_html)
        files = [
            ("attachment", attachment.filename, attachment.content_type, attachment.content)
            for attachment in attachments
        ]
        log.info(
            "[MAILGUN REQUEST] endpoint=%s to=%s subject=%r attachments=%s",
            self._endpoint("messages"),
            list(to),
            subject,
            len(files),
        )
        response = http.post_multipart(
            self._endpoint("messages"),
            fields,
            files,
            authorization=self._authorization(),
            vendor=VENDOR,
            timeout=self.timeout,
            describe_error=describe_mailgun_error,
        )
        return _message_id(response)

    def get_status(self, message_id: str) -> DeliveryStatus:
        query = urllib.parse.urlencode({"message-id": message_id.strip("<>"), "limit": "1"})
        data = http.get_json(
            f"{self._endpoint('events')}?{query}",
            authorization=self._authorization(),
            vendor=VENDOR,
            timeout=self.timeout,
            describe_error=describe_mailgun_error,
        )
        if not isinstance(data, Mapping):
            raise ProviderCallError(VENDOR, "mailgun API returned a non-JSON events response")

        items = data.get("items") or []
        if not items:
            return DeliveryStatus(message_id=message_id, status="unknown", details="no events recorded")
        latest = items[0]
        delivery_status = latest.get("delivery-status") or {}
        return DeliveryStatus(
            message_id=message_id,
            status=str(latest.get("event") or "unknown"),
            details=str(delivery_status.get("message") or delivery_status.get("description") or ""),
            timestamp=str(latest.get("timestamp") or ""),
        )

    def _endpoint(self, resource: str) -> str:
        encoded_domain = urllib.parse.quote(self.domain, safe="")
        return f"{self.base_url}/v3/{encoded_domain}/{resource}"

    def _authorization(self) -> str:
        return http.basic_auth_header("api", self.api_key)

    def _fields(self, to: Sequence[str], subject: str, body: str, is_html: bool) -> dict[str, str]:
        return {
            "from": self.from_email,
            "to": ", ".join(to),
            "subject": subject,
            "html" if is_html else "text": body,
        }


def _message_id(response: Any) -> str | None:
    if isinstance(response, Mapping) and response.get("id"):
        return str(response["id"])
    return None


def describe_mailgun_error(body: Any) -> str:
    if isinstance(body, Mapping) and body.get("message"):
        return str(body["message"])
    return ""
