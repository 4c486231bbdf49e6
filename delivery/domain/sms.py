"""SMS channel delivery rule."""

from __future__ import annotations

from ..errors import RenderError
from ..types import RecipientResult
from .models import RENDERED_CONTENT_PARAM, Channel, SMSMessage, SMSRecipient
from .rendering import render_template
from .rules import ChannelRules, DeliveryContext, recipient_failure, recipient_success


def deliver_sms(
    adapter,
    message: SMSMessage,
    recipient: SMSRecipient,
    context: DeliveryContext,
) -> RecipientResult:
    """Render the template for one number and send it through the template API."""
    try:
        rendered = render_template(context.content, message.params)
    except RenderError as exc:
        return recipient_failure(recipient, f"Failed to render template for {recipient.telephone}: {exc}")

    params = dict(message.params)
    params[RENDERED_CONTENT_PARAM] = rendered
    try:
        vendor_message_id = adapter.send_template(recipient.telephone, context.vendor_template_id, params)
    except Exception as exc:
        return recipient_failure(recipient, f"Failed to send SMS message to {recipient.telephone}: {exc}")

    return recipient_success(recipient, vendor_message_id)


SMS_RULES = ChannelRules(channel=Channel.SMS, deliver=deliver_sms)
