"""
WhatsApp webhook router.

GET verifies the subscription handshake; POST receives user messages and
delivery-status callbacks. A message is run through the conversation engine
before the response is returned.
"""

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import PlainTextResponse

from order_agent.services.conversation.engine import ConversationEngine
from order_agent.services.messaging.inbound import parse_webhook
from shared.config.logging import get_logger, mask_phone
from shared.config.settings import settings

logger = get_logger(__name__)

router = APIRouter(tags=["webhook"])


def get_conversation(request: Request) -> ConversationEngine:
    """Conversation engine created by the lifespan."""
    return request.app.state.components.conversation


@router.get("/webhook", response_class=PlainTextResponse)
def verify_webhook(
    mode: str | None = Query(None, alias="hub.mode"),
    token: str | None = Query(None, alias="hub.verify_token"),
    challenge: str | None = Query(None, alias="hub.challenge"),
) -> str:
    """Echo the challenge when the verify token matches."""
    if mode == "subscribe" and token and token == settings.whatsapp_verify_token:
        logger.info("Webhook verified")
        return challenge or ""

    logger.warning("Webhook verification failed", mode=mode)
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Verification failed")


@router.post("/webhook")
async def receive_webhook(
    request: Request,
    conversation: ConversationEngine = Depends(get_conversation),
) -> dict[str, str]:
    """
    Handle a WhatsApp webhook notification.

    Returns 200 for user messages and status callbacks, 404 for bodies that
    are neither. The conversation engine answers the user itself; failures
    inside a turn are turned into a generic reply there, so only a broken
    pipeline reaches the 500 handler.
    """
    try:
        body = await request.json()
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON")

    event = parse_webhook(body)

    if event.kind == "status":
        return {"status": "ignored", "reason": "status callback"}

    if event.kind != "message" or event.message is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not a WhatsApp event")

    message = event.message
    logger.info(
        "Message received",
        sender=mask_phone(message.sender),
        message_type=message.message_type,
    )
    await conversation.process(message)
    return {"status": "processed"}
