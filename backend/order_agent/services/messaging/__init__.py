"""
WhatsApp Cloud API transport: inbound webhook parsing and outbound replies.
"""

from order_agent.services.messaging.dispatcher import ReplyDispatcher, WhatsAppDispatcher
from order_agent.services.messaging.inbound import InboundMessage, WebhookEvent, parse_webhook

__all__ = [
    "ReplyDispatcher",
    "WhatsAppDispatcher",
    "InboundMessage",
    "WebhookEvent",
    "parse_webhook",
]
