"""
Per-sender ephemeral conversation state.
"""

from order_agent.services.session.registry import (
    CartLine,
    ConversationState,
    PendingPayment,
    Session,
    SessionRegistry,
)

__all__ = [
    "CartLine",
    "ConversationState",
    "PendingPayment",
    "Session",
    "SessionRegistry",
]
