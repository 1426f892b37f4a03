"""Send gateway: validation, readiness wait, duplicate check and dispatch."""

from __future__ import annotations

import asyncio
import re
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Protocol

from loguru import logger

from wagateway.errors import (
    ConnectionUnavailableError,
    NotConnectedError,
    SendFailureError,
    ValidationError,
)
from wagateway.outbound.dedup import DedupCache
from wagateway.telemetry.base import NullTelemetry, TelemetryPort

ADDRESS_SEPARATOR = "@"


class SessionSender(Protocol):
    @property
    def ready(self) -> bool: ...

    async def send(self, recipient: str, body: str) -> str: ...


@dataclass(slots=True, frozen=True)
class SendRequest:
    recipient: str
    body: str


@dataclass(slots=True, frozen=True)
class SendResult:
    delivered: bool
    deduped: bool
    recipient: str
    message_id: str | None = None


def normalize_recipient(number: str, default_domain: str) -> str:
    """Turn a bare phone number into a user address on ``default_domain``.

    Addresses that already carry a domain are kept as given; either way the
    result must be ``<digits>@<default_domain>``.
    """
    address = number.strip()
    if ADDRESS_SEPARATOR not in address:
        address = f"{address}{ADDRESS_SEPARATOR}{default_domain}"
    pattern = rf"[0-9]+{re.escape(ADDRESS_SEPARATOR + default_domain)}"
    if not re.fullmatch(pattern, address):
        raise ValidationError(
            f"{address!r} is not a valid recipient address",
            error="Invalid number format. Use: 254712345678",
        )
    return address


def build_send_request(number: Any, message: Any, *, default_domain: str) -> SendRequest:
    """Validate raw request fields and normalize the recipient."""
    number_text = str(number).strip() if isinstance(number, (str, int)) and not isinstance(number, bool) else ""
    message_text = message if isinstance(message, str) else ""
    if not number_text or not message_text.strip():
        raise ValidationError(
            "Both 'number' and 'message' are required",
            error="Missing number or message",
            extra={"received": {"number": bool(number_text), "message": bool(message_text.strip())}},
        )
    return SendRequest(recipient=normalize_recipient(number_text, default_domain), body=message_text)


class SendGateway:
    """Applies the send policy in front of the connection manager."""

    def __init__(
        self,
        session: SessionSender,
        cache: DedupCache,
        *,
        default_domain: str = "s.whatsapp.net",
        max_attempts: int = 3,
        retry_delay_s: float = 5.0,
        telemetry: TelemetryPort | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._session = session
        self.cache = cache
        self.default_domain = default_domain
        self.max_attempts = max(0, int(max_attempts))
        self.retry_delay_s = max(0.0, float(retry_delay_s))
        self._telemetry = telemetry or NullTelemetry()
        self._sleep = sleep

    async def send_with_policy(self, recipient: Any, body: Any) -> SendResult:
        """Send ``body`` to ``recipient`` unless it is a recent duplicate.

        Waits up to ``max_attempts`` times for the session to become ready.
        A session drop surfaced by the send itself is retried once.
        """
        request = build_send_request(recipient, body, default_domain=self.default_domain)
        fingerprint = self.cache.fingerprint(request.recipient, request.body)
        waits = 0
        resent = False

        while True:
            if not self._session.ready:
                if waits >= self.max_attempts:
                    self._record_failure("unavailable")
                    raise ConnectionUnavailableError(
                        f"WhatsApp not connected after {self.max_attempts} attempts"
                    )
                waits += 1
                logger.info(f"Waiting for connection... (Attempt {waits}/{self.max_attempts})")
                await self._sleep(self.retry_delay_s)
                continue

            suppressed = self.cache.should_suppress(fingerprint)
            self._telemetry.gauge("dedup_cache_entries", float(len(self.cache)))
            if suppressed:
                logger.info(f"Duplicate message blocked for {request.recipient}")
                self._telemetry.incr("messages_deduplicated_total")
                return SendResult(delivered=True, deduped=True, recipient=request.recipient)

            started = time.monotonic()
            try:
                message_id = await self._session.send(request.recipient, request.body)
            except NotConnectedError as e:
                self.cache.forget(fingerprint)
                if resent:
                    self._record_failure("not_connected")
                    raise
                resent = True
                logger.warning(f"Send to {request.recipient} failed ({e}); retrying once")
                await self._sleep(self.retry_delay_s)
                continue
            except SendFailureError as e:
                self.cache.forget(fingerprint)
                self._record_failure("rejected")
                logger.error(f"Send message error for {request.recipient}: {e}")
                raise

            self._telemetry.histogram("send_duration_seconds", time.monotonic() - started)
            self._telemetry.incr("messages_sent_total")
            logger.info(f"Message sent to {request.recipient}")
            return SendResult(
                delivered=True,
                deduped=False,
                recipient=request.recipient,
                message_id=message_id or None,
            )

    def _record_failure(self, reason: str) -> None:
        self._telemetry.incr("send_failures_total", labels=(("reason", reason),))
