"""
Inbound webhook normalisation.

WhatsApp delivers user messages and delivery-status callbacks to the same
webhook. Only the first message of the first change is acted upon; button
and list replies are reduced to the id of the chosen option.
"""

from dataclasses import dataclass
from typing import Any, Literal

from shared.config.logging import get_logger

logger = get_logger(__name__)

EventKind = Literal["message", "status", "unrelated"]


@dataclass(frozen=True)
class InboundMessage:
    sender: str
    text: str
    message_id: str | None = None
    message_type: str | None = None


@dataclass(frozen=True)
class WebhookEvent:
    kind: EventKind
    message: InboundMessage | None = None


def _message_text(message: dict[str, Any]) -> str | None:
    interactive = message.get("interactive") or {}
    for reply_key in ("button_reply", "list_reply"):
        reply = interactive.get(reply_key) or {}
        if reply.get("id"):
            return str(reply["id"])

    # Quick-reply buttons on template messages
    button = message.get("button") or {}
    if button.get("payload") or button.get("text"):
        return str(button.get("payload") or button.get("text"))

    text = message.get("text") or {}
    if "body" in text:
        return str(text["body"])
    return None


def parse_webhook(body: Any) -> WebhookEvent:
    """
    Classify a webhook body.

    Returns kind "message" with the extracted InboundMessage, "status" for
    delivery receipts, and "unrelated" for anything else (including
    messages without usable text, such as images).
    """
    if not isinstance(body, dict) or not body.get("object"):
        return WebhookEvent(kind="unrelated")

    try:
        value = body["entry"][0]["changes"][0]["value"]
    except (KeyError, IndexError, TypeError):
        return WebhookEvent(kind="unrelated")
    if not isinstance(value, dict):
        return WebhookEvent(kind="unrelated")

    messages = value.get("messages") or []
    if messages:
        message = messages[0]
        sender = message.get("from")
        text = _message_text(message)
        if not sender or text is None:
            logger.info(
                "Ignoring inbound message without text",
                message_type=message.get("type"),
            )
            return WebhookEvent(kind="unrelated")
        return WebhookEvent(
            kind="message",
            message=InboundMessage(
                sender=str(sender),
                text=text,
                message_id=message.get("id"),
                message_type=message.get("type"),
            ),
        )

    if value.get("statuses"):
        return WebhookEvent(kind="status")

    return WebhookEvent(kind="unrelated")
