"""Provider factory: Provider record -> channel adapter.

Dispatch is on (channel, upper-cased Provider.provider). New vendors are
added with `register` without touching the consumer.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any, Callable, Mapping, Protocol

from ...domain.models import Channel
from ...domain.secure_config import decrypt_secure_config
from ...errors import ProviderConfigError
from .base import DEFAULT_TIMEOUT_SECONDS
from .console import ConsoleEmailAdapter, ConsoleSMSAdapter, ConsoleWhatsAppAdapter
from .mailgun import MailgunEmailAdapter
from .sendgrid import SendGridEmailAdapter
from .twilio import TwilioCredentials, TwilioSMSAdapter, TwilioWhatsAppAdapter

log = logging.getLogger("delivery.providers.factory")

# builder(config, secrets, *, timeout=..., provider_name=...) -> adapter
AdapterBuilder = Callable[..., Any]


class ProviderLike(Protocol):
    uuid: str
    code: str
    provider: str
    channel: str
    config: Any
    secure_config: Any


@dataclass(frozen=True)
class _Registration:
    builder: AdapterBuilder
    needs_secrets: bool = True


def _twilio_whatsapp(config, secrets, *, timeout, provider_name):
    return TwilioWhatsAppAdapter(
        TwilioCredentials.from_config(config, secrets), provider_name=provider_name, timeout=timeout
    )


def _twilio_sms(config, secrets, *, timeout, provider_name):
    return TwilioSMSAdapter(
        TwilioCredentials.from_config(config, secrets), provider_name=provider_name, timeout=timeout
    )


def _sendgrid(config, secrets, *, timeout, provider_name):
    return SendGridEmailAdapter.from_config(config, secrets, timeout=timeout)


def _mailgun(config, secrets, *, timeout, provider_name):
    return MailgunEmailAdapter.from_config(config, secrets, timeout=timeout)


_CONSOLE_ADAPTERS = {
    Channel.WHATSAPP: ConsoleWhatsAppAdapter,
    Channel.SMS: ConsoleSMSAdapter,
    Channel.EMAIL: ConsoleEmailAdapter,
}


def _default_registry() -> dict[tuple[Channel, str], _Registration]:
    registry = {
        (Channel.WHATSAPP, "TWILIO"): _Registration(_twilio_whatsapp),
        (Channel.SMS, "TWILIO"): _Registration(_twilio_sms),
        # SendGrid is part of Twilio; both names select it.
        (Channel.EMAIL, "SENDGRID"): _Registration(_sendgrid),
        (Channel.EMAIL, "TWILIO"): _Registration(_sendgrid),
        (Channel.EMAIL, "MAILGUN"): _Registration(_mailgun),
    }
    for channel, adapter_type in _CONSOLE_ADAPTERS.items():
        registry[(channel, "CONSOLE")] = _Registration(
            lambda config, secrets, *, timeout, provider_name, _type=adapter_type: _type(),
            needs_secrets=False,
        )
    return registry


class ProviderFactory:
    def __init__(self, encryption_key: bytes, *, timeout: float = DEFAULT_TIMEOUT_SECONDS) -> None:
        self._encryption_key = encryption_key
        self._timeout = timeout
        self._registry = _default_registry()

    def register(self, channel: Channel, name: str, builder: AdapterBuilder, *, needs_secrets: bool = True) -> None:
        self._registry[(Channel(channel), name.upper())] = _Registration(builder, needs_secrets)

    def supports(self, channel: Channel, name: str) -> bool:
        return (Channel(channel), name.upper()) in self._registry

    def create(self, provider: ProviderLike | None) -> Any:
        """Build the adapter for `provider`.

        Raises ProviderConfigError for unknown implementations and for missing,
        placeholder or undecryptable credentials.
        """
        if provider is None:
            raise ProviderConfigError("provider is required")

        try:
            channel = Channel(provider.channel)
        except ValueError as exc:
            raise ProviderConfigError(f"unsupported channel: {provider.channel}") from exc

        name = (provider.provider or "").strip()
        registration = self._registry.get((channel, name.upper()))
        if registration is None:
            log.error(
                "[FACTORY] unsupported implementation provider_uuid=%s channel=%s impl=%s",
                provider.uuid,
                channel.value,
                name,
            )
            raise ProviderConfigError(
                f"unsupported {channel.value} provider implementation: {provider.provider}"
            )

        config = provider.config or {}
        if not isinstance(config, Mapping):
            raise ProviderConfigError("failed to parse provider config: expected a JSON object")

        secrets: Mapping[str, Any] = {}
        if registration.needs_secrets:
            secrets = decrypt_secure_config(provider.secure_config, self._encryption_key)

        try:
            adapter = registration.builder(
                config, secrets, timeout=self._timeout, provider_name=name
            )
        except ProviderConfigError as exc:
            log.error(
                "[FACTORY] construction failed provider_uuid=%s channel=%s impl=%s error=%s",
                provider.uuid,
                channel.value,
                name,
                exc,
            )
            raise

        log.info(
            "[FACTORY] created adapter provider_uuid=%s code=%s channel=%s impl=%s adapter=%s",
            provider.uuid,
            provider.code,
            channel.value,
            name,
            type(adapter).__name__,
        )
        return adapter
