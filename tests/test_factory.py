from __future__ import annotations

from types import SimpleNamespace
import unittest
from typing import Any

from delivery.adapters.providers.console import ConsoleEmailAdapter, ConsoleSMSAdapter
from delivery.adapters.providers.factory import ProviderFactory
from delivery.adapters.providers.mailgun import MailgunEmailAdapter
from delivery.adapters.providers.sendgrid import SendGridEmailAdapter
from delivery.adapters.providers.twilio import TwilioSMSAdapter, TwilioWhatsAppAdapter
from delivery.domain.models import Channel
from delivery.domain.secure_config import encrypt_secure_config
from delivery.errors import ProviderConfigError, SecureConfigError

KEY = b"0123456789abcdef0123456789abcdef"


def make_provider(channel: Channel, impl: str, *, config: Any = None, secrets: Any = None, **overrides: Any) -> SimpleNamespace:
    values = {
        "uuid": "prov-uuid",
        "code": "prov-code",
        "provider": impl,
        "channel": channel.value,
        "config": config if config is not None else {},
        "secure_config": encrypt_secure_config(secrets, KEY) if secrets is not None else {},
    }
    values.update(overrides)
    return SimpleNamespace(**values)


TWILIO_CONFIG = {"accountSid": "AC123", "fromNumber": "+15555550100"}
TWILIO_SECRETS = {"authToken": "token-xyz"}


class ProviderFactoryTests(unittest.TestCase):
    def setUp(self) -> None:
        self.factory = ProviderFactory(KEY, timeout=3)

    def test_creates_twilio_whatsapp_adapter(self) -> None:
        adapter = self.factory.create(
            make_provider(Channel.WHATSAPP, "TWILIO", config=TWILIO_CONFIG, secrets=TWILIO_SECRETS)
        )

        self.assertIsInstance(adapter, TwilioWhatsAppAdapter)
        self.assertEqual(adapter.from_number, "whatsapp:+15555550100")
        self.assertEqual(adapter.credentials.auth_token, "token-xyz")
        self.assertEqual(adapter.timeout, 3)

    def test_implementation_name_is_case_insensitive(self) -> None:
        adapter = self.factory.create(
            make_provider(Channel.SMS, "twilio", config=TWILIO_CONFIG, secrets=TWILIO_SECRETS)
        )
        self.assertIsInstance(adapter, TwilioSMSAdapter)

    def test_email_twilio_and_sendgrid_both_select_sendgrid(self) -> None:
        config = {"from": "no-reply@example.com", "baseUrl": "https://api.sendgrid.com"}
        for impl in ("SENDGRID", "TWILIO"):
            with self.subTest(impl=impl):
                adapter = self.factory.create(
                    make_provider(Channel.EMAIL, impl, config=config, secrets={"apikey": "SG.key"})
                )
                self.assertIsInstance(adapter, SendGridEmailAdapter)

    def test_creates_mailgun_adapter(self) -> None:
        adapter = self.factory.create(
            make_provider(
                Channel.EMAIL,
                "MAILGUN",
                config={"domain": "mg.example.com", "from": "a@mg.example.com"},
                secrets={"apikey": "key-1"},
            )
        )
        self.assertIsInstance(adapter, MailgunEmailAdapter)

    def test_console_adapters_need_no_secrets(self) -> None:
        self.assertIsInstance(self.factory.create(make_provider(Channel.SMS, "CONSOLE")), ConsoleSMSAdapter)
        self.assertIsInstance(self.factory.create(make_provider(Channel.EMAIL, "console")), ConsoleEmailAdapter)

    def test_none_provider_is_rejected(self) -> None:
        with self.assertRaises(ProviderConfigError):
            self.factory.create(None)

    def test_unknown_implementation_is_rejected(self) -> None:
        with self.assertRaises(ProviderConfigError) as exc:
            self.factory.create(make_provider(Channel.WHATSAPP, "META"))
        self.assertEqual(str(exc.exception), "unsupported WHATSAPP provider implementation: META")

    def test_mailgun_is_not_a_whatsapp_implementation(self) -> None:
        self.assertFalse(self.factory.supports(Channel.WHATSAPP, "MAILGUN"))
        with self.assertRaises(ProviderConfigError):
            self.factory.create(make_provider(Channel.WHATSAPP, "MAILGUN"))

    def test_missing_secure_config_is_an_error(self) -> None:
        with self.assertRaises(SecureConfigError):
            self.factory.create(make_provider(Channel.SMS, "TWILIO", config=TWILIO_CONFIG))

    def test_missing_config_field_is_an_error(self) -> None:
        with self.assertRaises(ProviderConfigError) as exc:
            self.factory.create(
                make_provider(Channel.SMS, "TWILIO", config={"accountSid": "AC1"}, secrets=TWILIO_SECRETS)
            )
        self.assertIn("from number", str(exc.exception))

    def test_non_object_config_is_an_error(self) -> None:
        with self.assertRaises(ProviderConfigError):
            self.factory.create(make_provider(Channel.SMS, "CONSOLE", config=["not", "an", "object"]))

    def test_factory_with_wrong_key_length_fails_on_decrypt(self) -> None:
        factory = ProviderFactory(b"short")
        provider = make_provider(Channel.SMS, "TWILIO", config=TWILIO_CONFIG)
        provider.secure_config = {"encrypted": "AAAA"}

        with self.assertRaises(SecureConfigError) as exc:
            factory.create(provider)
        self.assertIn("32 bytes", str(exc.exception))

    def test_register_adds_a_new_implementation(self) -> None:
        calls: list[dict[str, Any]] = []

        def builder(config, secrets, *, timeout, provider_name):
            calls.append({"config": dict(config), "secrets": dict(secrets), "provider_name": provider_name})
            return "custom-adapter"

        self.factory.register(Channel.SMS, "acme", builder)
        adapter = self.factory.create(
            make_provider(Channel.SMS, "Acme", config={"region": "eu"}, secrets={"token": "t"})
        )

        self.assertEqual(adapter, "custom-adapter")
        self.assertEqual(calls, [{"config": {"region": "eu"}, "secrets": {"token": "t"}, "provider_name": "Acme"}])


if __name__ == "__main__":
    unittest.main()
