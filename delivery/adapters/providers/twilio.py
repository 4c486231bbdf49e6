"""Twilio adapters for the WhatsApp and SMS channels.

Both channels post to the same Messages endpoint with basic auth
(account SID / auth token); WhatsApp addresses carry a `whatsapp:` prefix.

Provider.config:         {"baseUrl", "fromNumber", "accountSid"}
Provider.secure_config:  encrypted {"authToken"}
"""

from __future__ import annotations

from dataclasses import dataclass
import json
import logging
from typing import Any, Mapping, Sequence
import urllib.parse

from ...domain.models import RENDERED_CONTENT_PARAM
from ...errors import ProviderCallError
from ...logs import mask_secret
from .. import http
from .base import (
    DEFAULT_TIMEOUT_SECONDS,
    DeliveryStatus,
    config_str,
    reject_placeholder,
    required_config,
)

log = logging.getLogger("delivery.providers.twilio")

VENDOR = "twilio"
DEFAULT_BASE_URL = "https://api.twilio.com/2010-04-01"
WHATSAPP_PREFIX = "whatsapp:"
INVALID_PARAMETER_CODE = 20422


@dataclass(frozen=True)
class TwilioCredentials:
    account_sid: str
    auth_token: str
    from_number: str
    base_url: str = DEFAULT_BASE_URL

    @classmethod
    def from_config(cls, config: Mapping[str, Any], secrets: Mapping[str, Any]) -> "TwilioCredentials":
        account_sid = required_config(config, "accountSid", "account SID")
        auth_token = required_config(secrets, "authToken", "auth token")
        reject_placeholder(auth_token, "auth token")
        from_number = required_config(config, "fromNumber", "from number")
        base_url = config_str(config, "baseUrl") or DEFAULT_BASE_URL
        return cls(
            account_sid=account_sid,
            auth_token=auth_token,
            from_number=from_number,
            base_url=base_url.rstrip("/"),
        )


class _TwilioClient:
    def __init__(
        self,
        credentials: TwilioCredentials,
        *,
        provider_name: str = "TWILIO",
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self.credentials = credentials
        self.provider_name = provider_name
        self.timeout = timeout
        log.debug(
            "[TWILIO CLIENT] account_sid=%s auth_token=%s from=%s base_url=%s",
            credentials.account_sid,
            mask_secret(credentials.auth_token),
            credentials.from_number,
            credentials.base_url,
        )

    @property
    def from_number(self) -> str:
        return self.credentials.from_number

    def _messages_url(self) -> str:
        sid = urllib.parse.quote(self.credentials.account_sid, safe="")
        return f"{self.credentials.base_url}/Accounts/{sid}/Messages.json"

    def _authorization(self) -> str:
        return http.basic_auth_header(self.credentials.account_sid, self.credentials.auth_token)

    def _post_message(self, fields: Mapping[str, str]) -> str | None:
        log.debug(
            "[TWILIO REQUEST] endpoint=%s from=%s to=%s content_sid=%s",
            self._messages_url(),
            fields.get("From"),
            fields.get("To"),
            fields.get("ContentSid", ""),
        )
        try:
            response = http.post_form(
                self._messages_url(),
                fields,
                authorization=self._authorization(),
                vendor=VENDOR,
                timeout=self.timeout,
                describe_error=describe_twilio_error,
            )
        except ProviderCallError as exc:
            if fields.get("ContentSid") and f"code {INVALID_PARAMETER_CODE}" in str(exc):
                raise ProviderCallError(
                    VENDOR,
                    f"twilio API invalid parameter error (code {INVALID_PARAMETER_CODE}) - likely an "
                    f"invalid template ID. Check that the template ID is configured for provider "
                    f"'{self.provider_name}'. {exc}",
                    status_code=exc.status_code,
                    details=exc.details,
                ) from exc
            raise

        sid = response.get("sid") if isinstance(response, Mapping) else None
        log.info("[TWILIO SENT] to=%s sid=%s", fields.get("To"), sid)
        return sid

    def get_status(self, message_id: str) -> DeliveryStatus:
        sid = urllib.parse.quote(self.credentials.account_sid, safe="")
        message_part = urllib.parse.quote(message_id, safe="")
        endpoint = f"{self.credentials.base_url}/Accounts/{sid}/Messages/{message_part}.json"
        data = http.get_json(
            endpoint,
            authorization=self._authorization(),
            vendor=VENDOR,
            timeout=self.timeout,
            describe_error=describe_twilio_error,
        )
        if not isinstance(data, Mapping):
            raise ProviderCallError(VENDOR, "twilio API returned a non-JSON status response")

        details = ""
        if data.get("error_code"):
            details = f"Error code: {data.get('error_code')}, Error message: {data.get('error_message') or ''}"
        return DeliveryStatus(
            message_id=message_id,
            status=str(data.get("status") or "unknown"),
            details=details,
            timestamp=str(data.get("date_updated") or ""),
        )


class TwilioWhatsAppAdapter(_TwilioClient):
    """WhatsApp over Twilio. Templates are sent as ContentSid/ContentVariables."""

    def __init__(
        self,
        credentials: TwilioCredentials,
        *,
        provider_name: str = "TWILIO",
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        credentials = TwilioCredentials(
            account_sid=credentials.account_sid,
            auth_token=credentials.auth_token,
            from_number=with_whatsapp_prefix(credentials.from_number),
            base_url=credentials.base_url,
        )
        super().__init__(credentials, provider_name=provider_name, timeout=timeout)

    def send_text(self, to: str, message: str) -> str | None:
        return self._post_message(
            {"From": self.from_number, "To": with_whatsapp_prefix(to), "Body": message}
        )

    def send_media(self, to: str, caption: str, media_type: str, media_url: str) -> str | None:
        fields = {"From": self.from_number, "To": with_whatsapp_prefix(to), "MediaUrl": media_url}
        if caption:
            fields["Body"] = caption
        log.debug("[TWILIO MEDIA] to=%s media_type=%s", to, media_type)
        return self._post_message(fields)

    def send_template(self, to: str, vendor_template_id: str, params: Mapping[str, str]) -> str | None:
        if not vendor_template_id.startswith("HX"):
            log.warning(
                "[TWILIO] content_sid=%s may not be a valid WhatsApp template id (expected HX...)",
                vendor_template_id,
            )
        variables = {key: value for key, value in params.items() if key != RENDERED_CONTENT_PARAM}
        return self._post_message(
            {
                "From": self.from_number,
                "To": with_whatsapp_prefix(to),
                "ContentSid": vendor_template_id,
                "ContentVariables": json.dumps(variables) if variables else "{}",
            }
        )


class TwilioSMSAdapter(_TwilioClient):
    """SMS over Twilio. Templates are sent as the rendered body."""

    def send(self, to: str, message: str) -> str | None:
        return self._post_message({"From": self.from_number, "To": to, "Body": message})

    def send_bulk(self, to: Sequence[str], message: str) -> list[str | None]:
        """Send to each number; raises the last failure after trying all of them."""
        sids: list[str | None] = []
        last_error: ProviderCallError | None = None
        for recipient in to:
            try:
                sids.append(self.send(recipient, message))
            except ProviderCallError as exc:
                log.error("[TWILIO BULK] recipient=%s error=%s", recipient, exc)
                sids.append(None)
                last_error = exc
        if last_error is not None:
            raise last_error
        return sids

    def send_template(self, to: str, vendor_template_id: str, params: Mapping[str, str]) -> str | None:
        rendered = params.get(RENDERED_CONTENT_PARAM)
        if rendered is None:
            raise ProviderCallError(VENDOR, f"{RENDERED_CONTENT_PARAM} not found in params")
        log.debug("[TWILIO SMS TEMPLATE] to=%s template=%s", to, vendor_template_id)
        return self.send(to, rendered)


def with_whatsapp_prefix(number: str) -> str:
    number = number.strip()
    if number.startswith(WHATSAPP_PREFIX):
        return number
    return WHATSAPP_PREFIX + number


def describe_twilio_error(body: Any) -> str:
    if not isinstance(body, Mapping):
        return ""
    parts = []
    if body.get("code") is not None:
        parts.append(f"code {body.get('code')}")
    if body.get("message"):
        parts.append(str(body.get("message")))
    if body.get("more_info"):
        parts.append(f"({body.get('more_info')})")
    return " ".join(parts)
