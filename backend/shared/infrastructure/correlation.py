"""
Log correlation for conversation turns.

Two task-local values are attached to every log record:
- request_id: one per webhook call (X-Request-ID) or notifier tick
- sender: the masked phone number of the customer being handled

Usage:
    with sender_context(message.sender):
        await engine.handle(message.sender, message.text)
"""

import re
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from shared.config.logging import mask_phone

request_id_var: ContextVar[str] = ContextVar("request_id", default="")
sender_var: ContextVar[str] = ContextVar("sender", default="")

# Caller-supplied ids end up in log lines; anything else is replaced
_VALID_REQUEST_ID = re.compile(r"^[A-Za-z0-9._:-]{1,64}$")


def get_request_id() -> str:
    return request_id_var.get()


def new_request_id() -> str:
    """Generate and set a fresh request ID for work started outside HTTP."""
    request_id = str(uuid.uuid4())
    request_id_var.set(request_id)
    return request_id


@contextmanager
def sender_context(sender: str) -> Iterator[None]:
    """Tag log records emitted inside the block with the masked sender."""
    token = sender_var.set(mask_phone(sender))
    try:
        yield
    finally:
        sender_var.reset(token)


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """
    Sets request_id for the duration of a request and echoes it back.

    An incoming X-Request-ID is reused when it is a short token; otherwise a
    new UUID is generated.
    """

    HEADER_NAME = "X-Request-ID"

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        incoming = request.headers.get(self.HEADER_NAME, "")
        request_id = incoming if _VALID_REQUEST_ID.match(incoming) else str(uuid.uuid4())

        token = request_id_var.set(request_id)
        try:
            request.state.request_id = request_id
            response = await call_next(request)
        finally:
            request_id_var.reset(token)

        response.headers[self.HEADER_NAME] = request_id
        return response


class CorrelationIdFilter:
    """Logging filter that copies request_id and sender onto each record."""

    def filter(self, record) -> bool:
        record.request_id = request_id_var.get() or "-"
        record.sender = sender_var.get() or "-"
        return True
