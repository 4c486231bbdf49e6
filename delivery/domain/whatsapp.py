"""WhatsApp channel delivery rule.

For one recipient: render the template content, then hand the vendor
template id, the request params and the rendered content (as the
`rendered_content` param) to the adapter's template send. Failures are
returned as a result, never raised, so the batch carries on.
"""

from __future__ import annotations

import logging

from ..errors import RenderError
from ..types import RecipientResult
from .models import RENDERED_CONTENT_PARAM, Channel, WhatsAppMessage, WhatsAppRecipient
from .rendering import render_template
from .rules import ChannelRules, DeliveryContext, recipient_failure, recipient_success

log = logging.getLogger("delivery.domain.whatsapp")


def deliver_whatsapp(
    adapter,
    message: WhatsAppMessage,
    recipient: WhatsAppRecipient,
    context: DeliveryContext,
) -> RecipientResult:
    try:
        rendered = render_template(context.content, message.params)
    except RenderError as exc:
        return recipient_failure(recipient, f"Failed to render template for {recipient.telephone}: {exc}")

    if message.attachments:
        log.warning(
            "[WHATSAPP] inline attachments are not sent with templates refno=%s count=%s",
            message.refno,
            len(message.attachments),
        )

    params = dict(message.params)
    params[RENDERED_CONTENT_PARAM] = rendered
    try:
        vendor_message_id = adapter.send_template(recipient.telephone, context.vendor_template_id, params)
    except Exception as exc:
        return recipient_failure(recipient, f"Failed to send WhatsApp message to {recipient.telephone}: {exc}")

    return recipient_success(recipient, vendor_message_id)


WHATSAPP_RULES = ChannelRules(channel=Channel.WHATSAPP, deliver=deliver_whatsapp)
