"""
Payment gateway adapter and circuit breakers.
"""

from order_agent.services.payments.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitBreakerError,
    CircuitState,
    get_all_breaker_stats,
    razorpay_breaker,
    whatsapp_breaker,
)
from order_agent.services.payments.gateway import (
    IntentStatus,
    PaymentGateway,
    PaymentIntent,
    RazorpayGateway,
)

__all__ = [
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerError",
    "CircuitState",
    "get_all_breaker_stats",
    "razorpay_breaker",
    "whatsapp_breaker",
    "IntentStatus",
    "PaymentGateway",
    "PaymentIntent",
    "RazorpayGateway",
]
