"""Consumer use-case: deliver one envelope.

Flow for one envelope:
  load/ensure Message -> resolve template and provider -> vendor template id
  -> build adapter -> mark in flight -> per-recipient render+send -> final status

Terminal problems (missing template/provider/mapping, bad credentials) reject
the whole message and are acknowledged. Per-recipient failures become
REJECTED events and never stop the batch. Store errors propagate as
InfrastructureError so the envelope is redelivered.
"""

from __future__ import annotations

import logging
from typing import Any

from ..adapters.providers.factory import ProviderFactory
from ..adapters.store import MessageRecord, MessageStore, TemplateRecord
from ..domain.models import Envelope, MessageStatus
from ..domain.rules import ChannelRules, DeliveryContext
from ..errors import NotFoundError, ProviderConfigError
from ..types import ProcessingResult, RecipientResult

log = logging.getLogger("delivery.consumer")

MISSING_RECORD_REASON = "Message created during processing due to missing record"
SENT_REASON = "Message sent successfully"


class DeliveryProcessor:
    def __init__(self, rules: ChannelRules, store: MessageStore, factory: ProviderFactory) -> None:
        self.rules = rules
        self.store = store
        self.factory = factory

    @property
    def channel(self):
        return self.rules.channel

    def process(self, envelope: Envelope) -> ProcessingResult:
        """Run the delivery algorithm; the returned result is always acknowledgeable."""
        message = envelope.message
        if message.channel is not self.channel:
            raise ValueError(f"{self.channel.value} processor received a {message.channel.value} envelope")

        log.info(
            "[PROCESS] uuid=%s channel=%s refno=%s template=%s provider=%s recipients=%s",
            envelope.uuid,
            self.channel.value,
            message.refno,
            message.template,
            message.provider,
            len(message.recipients),
        )

        record = self._load_or_create_message(envelope)
        if not message.recipients:
            return self._reject(record, "message has no recipients")

        try:
            template = self._resolve_template(envelope)
            provider = self.store.find_active_provider(message.provider, channel=self.channel)
            if provider is None:
                raise NotFoundError(f"provider not found or inactive: {message.provider}")
            vendor_template_id = None
            if self.rules.requires_vendor_template_id:
                vendor_template_id = vendor_template_id_for(template, provider.provider)
            try:
                adapter = self.factory.create(provider)
            except ProviderConfigError as exc:
                raise ProviderConfigError(
                    f"failed to create {self.channel.value} provider: {exc}"
                ) from exc
        except (NotFoundError, ProviderConfigError) as exc:
            return self._reject(record, str(exc))

        self.store.set_status(envelope.uuid, MessageStatus.ACCEPTED)

        context = DeliveryContext(
            content=template.content,
            subject=template.subject or "",
            template_name=template.name,
            vendor_template_id=vendor_template_id,
        )
        recipient_results = [
            self._deliver_to_recipient(envelope, adapter, recipient, context)
            for recipient in message.recipients
        ]

        sent = sum(1 for item in recipient_results if item["success"])
        status = MessageStatus.SENT if sent else MessageStatus.REJECTED
        self.store.set_status(envelope.uuid, status)
        log.info(
            "[PROCESSED] uuid=%s status=%s sent=%s rejected=%s",
            envelope.uuid,
            status.value,
            sent,
            len(recipient_results) - sent,
        )
        return _result(envelope, status, recipient_results=recipient_results)

    def _load_or_create_message(self, envelope: Envelope) -> MessageRecord:
        record = self.store.get_message(envelope.uuid)
        if record is not None:
            return record

        # Replica lag or a message pushed without the producer step.
        message = envelope.message
        record, created = self.store.ensure_message(
            uuid=envelope.uuid,
            channel=self.channel,
            refno=message.refno,
            identifiers=message.identifiers,
            categories=message.categories,
        )
        if created:
            self.store.append_event(envelope.uuid, MessageStatus.ACCEPTED, reason=MISSING_RECORD_REASON)
            log.info("[PROCESS] created missing message uuid=%s", envelope.uuid)
        return record

    def _resolve_template(self, envelope: Envelope) -> TemplateRecord:
        message = envelope.message
        template = self.store.find_active_template(message.template, tenant=message.tenant, channel=self.channel)
        if template is None:
            raise NotFoundError(f"template not found or inactive: {message.template}")
        return template

    def _deliver_to_recipient(self, envelope: Envelope, adapter: Any, recipient: Any, context: DeliveryContext) -> RecipientResult:
        result = self.rules.deliver(adapter, envelope.message, recipient, context)
        metadata = {"recipient": result["recipient"]}
        if result["success"]:
            if result.get("vendor_message_id"):
                metadata["vendor_message_id"] = result["vendor_message_id"]
            self.store.append_event(envelope.uuid, MessageStatus.SENT, reason=SENT_REASON, metadata=metadata)
            log.info("[RECIPIENT SENT] uuid=%s recipient=%s", envelope.uuid, result["recipient"])
        else:
            self.store.append_event(envelope.uuid, MessageStatus.REJECTED, reason=result["error"], metadata=metadata)
            log.error(
                "[RECIPIENT REJECTED] uuid=%s recipient=%s error=%s",
                envelope.uuid,
                result["recipient"],
                result["error"],
            )
        return result

    def _reject(self, record: MessageRecord, reason: str) -> ProcessingResult:
        log.error("[REJECT] uuid=%s reason=%s", record.uuid, reason)
        self.store.set_status(record.uuid, MessageStatus.REJECTED)
        self.store.append_event(record.uuid, MessageStatus.REJECTED, reason=reason)
        return {
            "uuid": record.uuid,
            "status": MessageStatus.REJECTED.value,
            "reason": reason,
            "recipient_results": [],
        }


def vendor_template_id_for(template: TemplateRecord, provider_name: str) -> str:
    """Look up the vendor template id keyed by the lower-cased implementation name."""
    template_ids = template.template_ids or {}
    key = (provider_name or "").lower()
    value = template_ids.get(key)
    if value is None:
        raise NotFoundError(f"template ID not found for provider {provider_name}")
    if not isinstance(value, str) or not value.strip():
        raise NotFoundError(f"invalid template ID format for provider {provider_name}")
    return value.strip()


def _result(envelope: Envelope, status: MessageStatus, *, recipient_results: list[RecipientResult]) -> ProcessingResult:
    return {
        "uuid": envelope.uuid,
        "status": status.value,
        "reason": None,
        "recipient_results": recipient_results,
    }
