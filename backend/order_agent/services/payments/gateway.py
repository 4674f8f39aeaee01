"""
Payment Gateway Adapter backed by Razorpay payment links.

A payment intent is a Razorpay payment link: the customer pays through the
short link, and the conversation later asks whether the link is paid.
Amounts are passed in paise.
"""

from dataclasses import dataclass
from typing import Any, Protocol

import httpx

from order_agent.services.payments.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerError,
    razorpay_breaker,
)
from shared.config.logging import get_logger, mask_phone
from shared.config.settings import settings
from shared.utils.exceptions import GatewayError

logger = get_logger(__name__)

PAID_STATUS = "paid"


@dataclass(frozen=True)
class PaymentIntent:
    intent_id: str
    short_link: str


@dataclass(frozen=True)
class IntentStatus:
    paid: bool
    status: str


class PaymentGateway(Protocol):
    """What the conversation engine needs from a payment provider."""

    async def create_intent(
        self,
        amount_minor: int,
        currency: str,
        customer_ref: str,
        reference: str | None = None,
    ) -> PaymentIntent: ...

    async def fetch_status(self, intent_id: str) -> IntentStatus: ...

    async def cancel(self, intent_id: str) -> None: ...


def _digits_only(value: str) -> str:
    return "".join(ch for ch in value if ch.isdigit())


class RazorpayGateway:
    """
    Razorpay payment links over httpx.

    Every call runs inside the razorpay circuit breaker; transport errors,
    non-2xx responses and an open circuit all surface as GatewayError.

    Usage:
        gateway = RazorpayGateway()
        intent = await gateway.create_intent(25000, "INR", sender)
        status = await gateway.fetch_status(intent.intent_id)
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        key_id: str | None = None,
        key_secret: str | None = None,
        base_url: str | None = None,
        breaker: CircuitBreaker = razorpay_breaker,
    ):
        self._client = client or httpx.AsyncClient(timeout=settings.http_timeout_seconds)
        self._owns_client = client is None
        self._auth = httpx.BasicAuth(
            key_id if key_id is not None else settings.razorpay_key_id,
            key_secret if key_secret is not None else settings.razorpay_key_secret,
        )
        self._base_url = (base_url or settings.razorpay_api_url).rstrip("/")
        self._breaker = breaker

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def create_intent(
        self,
        amount_minor: int,
        currency: str,
        customer_ref: str,
        reference: str | None = None,
    ) -> PaymentIntent:
        """Create a payment link for amount_minor paise."""
        payload: dict[str, Any] = {
            "amount": amount_minor,
            "currency": currency,
            "accept_partial": False,
            "description": "Payment for your order",
            "customer": {"contact": _digits_only(customer_ref)},
            "notify": {"sms": False, "email": False, "whatsapp": False},
            "reminder_enable": True,
        }
        if reference:
            payload["notes"] = {"order_id": reference}

        data = await self._request("create payment link", "POST", "/payment_links", json=payload)

        intent = PaymentIntent(intent_id=data["id"], short_link=data["short_url"])
        logger.info(
            "Payment link created",
            intent_id=intent.intent_id,
            amount_minor=amount_minor,
            customer=mask_phone(customer_ref),
        )
        return intent

    async def fetch_status(self, intent_id: str) -> IntentStatus:
        data = await self._request("fetch payment link", "GET", f"/payment_links/{intent_id}")
        status = str(data.get("status", ""))
        return IntentStatus(paid=status == PAID_STATUS, status=status)

    async def cancel(self, intent_id: str) -> None:
        await self._request("cancel payment link", "POST", f"/payment_links/{intent_id}/cancel")
        logger.info("Payment link cancelled", intent_id=intent_id)

    async def _request(self, operation: str, method: str, path: str, **kwargs: Any) -> dict:
        try:
            async with self._breaker.call():
                response = await self._client.request(
                    method,
                    f"{self._base_url}{path}",
                    auth=self._auth,
                    **kwargs,
                )
                if response.is_error:
                    raise GatewayError(
                        operation,
                        provider_status=response.status_code,
                        response=response.text[:500],
                    )
                data = response.json()
        except CircuitBreakerError as e:
            raise GatewayError(
                operation,
                detail=f"Payment service temporarily unavailable, retry in {int(e.retry_after)}s",
                retry_after=e.retry_after,
            ) from e
        except httpx.HTTPError as e:
            raise GatewayError(operation, error=str(e)) from e
        except ValueError as e:
            raise GatewayError(operation, detail="Invalid JSON from payment provider") from e

        if not isinstance(data, dict):
            raise GatewayError(operation, detail="Unexpected response from payment provider")
        return data
