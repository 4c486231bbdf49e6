"""Email channel delivery rule.

Email has no vendor template id: the body is rendered here (HTML-escaped
params) and sent as HTML. The subject is chosen in this order:
request subject, `subject` param, rendered template subject, template name,
then DEFAULT_SUBJECT.
"""

from __future__ import annotations

import base64
import binascii

from ..errors import RenderError
from ..types import RecipientResult
from .models import Attachment, Channel, EmailMessage, EmailRecipient
from .rendering import render_template
from .rules import ChannelRules, DeliveryContext, recipient_failure, recipient_success

DEFAULT_SUBJECT = "Notification"


def resolve_subject(message: EmailMessage, context: DeliveryContext) -> str:
    """Pick the subject line; raises RenderError if the template subject is invalid."""
    if message.subject:
        return message.subject
    if message.params.get("subject"):
        return message.params["subject"]
    if context.subject:
        rendered = render_template(context.subject, message.params)
        if rendered.strip():
            return rendered
    return context.template_name or DEFAULT_SUBJECT


def decode_attachments(message: EmailMessage) -> list[Attachment]:
    decoded = []
    for item in message.attachments:
        try:
            content = base64.b64decode(item.content, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ValueError(f"failed to decode attachment {item.filename}: {exc}") from exc
        decoded.append(Attachment(filename=item.filename, content_type=item.content_type, content=content))
    return decoded


def deliver_email(
    adapter,
    message: EmailMessage,
    recipient: EmailRecipient,
    context: DeliveryContext,
) -> RecipientResult:
    try:
        subject = resolve_subject(message, context)
        body = render_template(context.content, message.params, autoescape=True)
    except RenderError as exc:
        return recipient_failure(recipient, f"Failed to render template for {recipient.email}: {exc}")

    try:
        attachments = decode_attachments(message)
    except ValueError as exc:
        return recipient_failure(recipient, str(exc))

    try:
        if attachments:
            vendor_message_id = adapter.send_with_attachments([recipient.email], subject, body, True, attachments)
        else:
            vendor_message_id = adapter.send([recipient.email], subject, body, True)
    except Exception as exc:
        return recipient_failure(recipient, f"Failed to send email to {recipient.email}: {exc}")

    return recipient_success(recipient, vendor_message_id)


EMAIL_RULES = ChannelRules(channel=Channel.EMAIL, deliver=deliver_email, requires_vendor_template_id=False)
