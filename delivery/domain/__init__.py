"""Domain layer: channel rules, rendering and the secret codec."""

from .email import EMAIL_RULES, deliver_email
from .models import Channel, MessageStatus
from .rendering import render_template
from .rules import ChannelRules, DeliveryContext
from .sms import SMS_RULES, deliver_sms
from .whatsapp import WHATSAPP_RULES, deliver_whatsapp

CHANNEL_RULES = {
    Channel.WHATSAPP: WHATSAPP_RULES,
    Channel.SMS: SMS_RULES,
    Channel.EMAIL: EMAIL_RULES,
}

__all__ = [
    "CHANNEL_RULES",
    "Channel",
    "ChannelRules",
    "DeliveryContext",
    "EMAIL_RULES",
    "MessageStatus",
    "SMS_RULES",
    "WHATSAPP_RULES",
    "deliver_email",
    "deliver_sms",
    "deliver_whatsapp",
    "render_template",
]
