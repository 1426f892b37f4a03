"""Capability interface between the connection manager and the WhatsApp library."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, Protocol, runtime_checkable

from wagateway.session.events import SessionEvent

EventHandler = Callable[[SessionEvent], None]


@runtime_checkable
class SessionTransport(Protocol):
    """One session handle. A new instance is built for every connect attempt.

    Implementations deliver events to subscribers synchronously and report
    exactly one ``SessionClosed`` when the handle goes away.
    """

    def subscribe(self, handler: EventHandler) -> None:
        """Register a callback for session events."""

    async def connect(self, credentials: dict[str, Any] | None) -> None:
        """Open the session. Raises on transport failure."""

    async def send_text(self, to: str, text: str) -> str:
        """Send a text message and return the library's message id.

        Raises ``NotConnectedError`` when the session dropped underneath.
        """

    async def close(self) -> None:
        """Close the handle. Safe to call more than once."""
