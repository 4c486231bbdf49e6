"""Channel capability interfaces and shared provider-construction helpers.

Each channel has one small Protocol. Vendor adapters implement it fully and
are selected by the factory; the consumer only ever sees the Protocol.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Protocol, Sequence, runtime_checkable

from ...domain.models import Attachment
from ...errors import ProviderConfigError

DEFAULT_TIMEOUT_SECONDS = 10.0

PLACEHOLDER_SECRETS = (
    "your-auth-token-here",
    "your_auth_token_here",
    "your_auth_token",
    "your-auth-token",
    "auth_token_here",
    "your-api-key-here",
    "your_api_key_here",
    "your-api-key",
    "your_api_key",
)


@dataclass(frozen=True)
class DeliveryStatus:
    message_id: str
    status: str
    details: str = ""
    timestamp: str = ""


@runtime_checkable
class WhatsAppAdapter(Protocol):
    def send_text(self, to: str, message: str) -> str | None: ...

    def send_media(self, to: str, caption: str, media_type: str, media_url: str) -> str | None: ...

    def send_template(self, to: str, vendor_template_id: str, params: Mapping[str, str]) -> str | None: ...

    def get_status(self, message_id: str) -> DeliveryStatus: ...


@runtime_checkable
class SMSAdapter(Protocol):
    def send(self, to: str, message: str) -> str | None: ...

    def send_bulk(self, to: Sequence[str], message: str) -> list[str | None]: ...

    def send_template(self, to: str, vendor_template_id: str, params: Mapping[str, str]) -> str | None: ...

    def get_status(self, message_id: str) -> DeliveryStatus: ...


@runtime_checkable
class EmailAdapter(Protocol):
    def send(self, to: Sequence[str], subject: str, body: str, is_html: bool) -> str | None: ...

    def send_with_attachments(
        self,
        to: Sequence[str],
        subject: str,
        body: str,
        is_html: bool,
        attachments: Sequence[Attachment],
    ) -> str | None: ...

    def get_status(self, message_id: str) -> DeliveryStatus: ...


def config_str(config: Mapping[str, Any], key: str) -> str:
    value = config.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ProviderConfigError(f"provider config field {key!r} must be a string")
    return value.strip()


def required_config(config: Mapping[str, Any], key: str, label: str) -> str:
    value = config_str(config, key)
    if not value:
        raise ProviderConfigError(f"{label} not set in provider configuration")
    return value


def reject_placeholder(secret: str, label: str) -> None:
    lowered = secret.lower()
    for placeholder in PLACEHOLDER_SECRETS:
        if placeholder in lowered:
            raise ProviderConfigError(
                f"{label} contains placeholder value, please update with a real credential"
            )
