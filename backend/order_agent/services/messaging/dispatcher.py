"""
Reply Dispatcher for the WhatsApp Cloud API.

Renders reply directives into Graph API payloads and posts them. Free-form
messages may only be sent within the customer-service window that opens
with the user's last message; outside it a pre-approved template is sent
instead.
"""

import time
from collections.abc import Callable
from typing import Any, Protocol

import httpx

from order_agent.services.conversation.replies import (
    PlainText,
    QuickReplyButtons,
    Reply,
    SelectionList,
)
from order_agent.services.payments.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerError,
    whatsapp_breaker,
)
from shared.config.constants import Limits
from shared.config.logging import get_logger, mask_phone
from shared.config.settings import settings
from shared.utils.exceptions import DispatchError

logger = get_logger(__name__)


class ReplyDispatcher(Protocol):
    """What the engine and notifier need to talk back to a user."""

    async def send(self, sender: str, reply: Reply) -> None: ...


def _clip(value: str, limit: int) -> str:
    return value if len(value) <= limit else value[: limit - 1] + "…"


class WhatsAppDispatcher:
    """
    Sends reply directives through the Graph API messages endpoint.

    Usage:
        dispatcher = WhatsAppDispatcher(last_interaction=registry.last_interaction)
        await dispatcher.send(sender, PlainText("Hello"))

    Raises DispatchError when the API rejects the message, the request
    fails, or the whatsapp circuit breaker is open.
    """

    def __init__(
        self,
        last_interaction: Callable[[str], float | None],
        client: httpx.AsyncClient | None = None,
        token: str | None = None,
        phone_number_id: str | None = None,
        breaker: CircuitBreaker = whatsapp_breaker,
        window_seconds: float | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self._last_interaction = last_interaction
        self._client = client or httpx.AsyncClient(timeout=settings.http_timeout_seconds)
        self._owns_client = client is None
        self._token = token if token is not None else settings.whatsapp_token
        phone_id = phone_number_id if phone_number_id is not None else settings.whatsapp_phone_number_id
        self._url = (
            f"{settings.graph_api_url.rstrip('/')}/{settings.whatsapp_api_version}/{phone_id}/messages"
        )
        self._breaker = breaker
        self._window = window_seconds if window_seconds is not None else settings.messaging_window_seconds
        self._clock = clock

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def within_window(self, sender: str) -> bool:
        last = self._last_interaction(sender)
        return last is not None and self._clock() - last < self._window

    async def send(self, sender: str, reply: Reply) -> None:
        if self.within_window(sender):
            payload = self.render(sender, reply)
        else:
            logger.info("Outside messaging window, sending template", sender=mask_phone(sender))
            payload = self.render_template(sender)
        await self._post(sender, payload)

    # =========================================================================
    # Rendering
    # =========================================================================

    def render(self, sender: str, reply: Reply) -> dict[str, Any]:
        """Graph API payload for a reply directive."""
        if isinstance(reply, PlainText):
            return {
                "messaging_product": "whatsapp",
                "to": sender,
                "type": "text",
                "text": {"body": reply.body},
            }

        if isinstance(reply, QuickReplyButtons):
            return {
                "messaging_product": "whatsapp",
                "recipient_type": "individual",
                "to": sender,
                "type": "interactive",
                "interactive": {
                    "type": "button",
                    "body": {"text": reply.body},
                    "action": {
                        "buttons": [
                            {
                                "type": "reply",
                                "reply": {
                                    "id": option.id,
                                    "title": _clip(option.label, Limits.MAX_BUTTON_LABEL_LENGTH),
                                },
                            }
                            for option in reply.options[: Limits.MAX_BUTTONS]
                        ]
                    },
                },
            }

        if isinstance(reply, SelectionList):
            interactive: dict[str, Any] = {
                "type": "list",
                "header": {"type": "text", "text": reply.header},
                "body": {"text": reply.body},
                "action": {
                    "button": _clip(reply.button, Limits.MAX_BUTTON_LABEL_LENGTH),
                    "sections": [self._render_section(section) for section in reply.sections],
                },
            }
            if reply.footer:
                interactive["footer"] = {"text": reply.footer}
            return {
                "messaging_product": "whatsapp",
                "recipient_type": "individual",
                "to": sender,
                "type": "interactive",
                "interactive": interactive,
            }

        raise TypeError(f"Unsupported reply type: {type(reply).__name__}")

    def render_template(self, sender: str) -> dict[str, Any]:
        return {
            "messaging_product": "whatsapp",
            "to": sender,
            "type": "template",
            "template": {
                "name": settings.whatsapp_template_name,
                "language": {"code": settings.whatsapp_template_language},
            },
        }

    @staticmethod
    def _render_section(section) -> dict[str, Any]:
        rows = []
        for row in section.rows[: Limits.MAX_LIST_ROWS]:
            rendered = {"id": row.id, "title": _clip(row.label, Limits.MAX_ROW_TITLE_LENGTH)}
            if row.description:
                rendered["description"] = _clip(row.description, Limits.MAX_ROW_DESCRIPTION_LENGTH)
            rows.append(rendered)
        rendered_section: dict[str, Any] = {"rows": rows}
        if section.title:
            rendered_section["title"] = _clip(section.title, Limits.MAX_SECTION_TITLE_LENGTH)
        return rendered_section

    # =========================================================================
    # Transport
    # =========================================================================

    async def _post(self, sender: str, payload: dict[str, Any]) -> None:
        try:
            async with self._breaker.call():
                response = await self._client.post(
                    self._url,
                    json=payload,
                    headers={"Authorization": f"Bearer {self._token}"},
                )
                if response.is_error:
                    raise DispatchError(
                        f"WhatsApp API rejected message with HTTP {response.status_code}",
                        sender=mask_phone(sender),
                        response=response.text[:500],
                    )
        except CircuitBreakerError as e:
            raise DispatchError(
                "WhatsApp API temporarily unavailable",
                sender=mask_phone(sender),
                retry_after=e.retry_after,
            ) from e
        except httpx.HTTPError as e:
            raise DispatchError(
                f"WhatsApp API request failed: {e}",
                sender=mask_phone(sender),
            ) from e

        logger.debug("Message sent", sender=mask_phone(sender), message_type=payload.get("type"))
