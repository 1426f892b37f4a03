"""Connection manager: owns the single WhatsApp session and its reconnect policy."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import Any

from loguru import logger

from wagateway.errors import NotConnectedError, ReconnectExhaustedError, SendFailureError
from wagateway.session.credentials import CredentialStore
from wagateway.session.events import (
    ConnectionState,
    CredentialsUpdated,
    PairingChallenge,
    SessionClosed,
    SessionConnecting,
    SessionEvent,
    SessionOpened,
    SessionUser,
)
from wagateway.session.transport import SessionTransport
from wagateway.telemetry.base import NullTelemetry, TelemetryPort

TransportFactory = Callable[[], SessionTransport]
PairingRenderer = Callable[[str], None]
Sleep = Callable[[float], Awaitable[None]]


class ConnectionManager:
    """Drives the session through Disconnected -> Connecting -> Ready.

    Every connect attempt builds a fresh transport handle. When a handle
    reports closed, the run loop decides between a fixed-delay reconnect,
    giving up (Exhausted) or stopping for good (LoggedOut). Attempts are
    serialized: the next one starts only after the previous handle closed.
    """

    def __init__(
        self,
        transport_factory: TransportFactory,
        credentials: CredentialStore,
        *,
        max_retries: int = 10,
        retry_delay_s: float = 5.0,
        on_pairing: PairingRenderer | None = None,
        telemetry: TelemetryPort | None = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self._transport_factory = transport_factory
        self._credentials = credentials
        self.max_retries = max(0, int(max_retries))
        self.retry_delay_s = max(0.0, float(retry_delay_s))
        self._on_pairing = on_pairing
        self._telemetry = telemetry or NullTelemetry()
        self._sleep = sleep

        self._state = ConnectionState.DISCONNECTED
        self._transport: SessionTransport | None = None
        self._closed: asyncio.Future[SessionClosed] | None = None
        self._running = False
        self.retry_count = 0
        self.connect_attempts = 0
        self.last_disconnect: SessionClosed | None = None
        self.user: SessionUser | None = None
        self.pairing_pending = False
        self.exhausted_error: ReconnectExhaustedError | None = None
        self.state_changed_at = time.time()

    # ── State ────────────────────────────────────────────────────────

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def ready(self) -> bool:
        return self._state is ConnectionState.READY

    @property
    def running(self) -> bool:
        return self._running

    def _set_state(self, state: ConnectionState) -> None:
        if state is self._state:
            return
        logger.debug(f"WhatsApp session state {self._state.value} -> {state.value}")
        self._state = state
        self.state_changed_at = time.time()
        self._telemetry.gauge("session_ready", 1.0 if state is ConnectionState.READY else 0.0)

    # ── Lifecycle ────────────────────────────────────────────────────

    async def run(self) -> None:
        """Connect and keep reconnecting until stopped, exhausted or logged out."""
        if self._running:
            raise RuntimeError("Connection manager is already running")
        self._running = True
        try:
            while self._running:
                closed = await self.start()
                if not self._running:
                    break
                if not self._should_reconnect(closed):
                    break
                logger.info(
                    f"Reconnect attempt {self.retry_count}/{self.max_retries} "
                    f"in {self.retry_delay_s:g}s..."
                )
                self._telemetry.incr("reconnect_attempts_total")
                await self._sleep(self.retry_delay_s)
        finally:
            self._running = False

    async def start(self) -> SessionClosed:
        """Run one connect attempt and wait until that session handle closes.

        A failure raised while connecting is reported as a close with an
        unknown cause so it goes through the same reconnect policy.
        """
        logger.info("Starting WhatsApp connection...")
        self._set_state(ConnectionState.CONNECTING)
        self.connect_attempts += 1

        credentials = self._credentials.load()
        transport = self._transport_factory()
        self._transport = transport
        self._closed = asyncio.get_running_loop().create_future()
        transport.subscribe(lambda event: self._handle_event(transport, event))

        try:
            try:
                await transport.connect(credentials)
            except Exception as e:
                logger.error(f"Failed to start WhatsApp session: {e}")
                self._handle_event(transport, SessionClosed(status_code=None, message=str(e)))
            return await self._closed
        finally:
            if self._transport is transport:
                self._transport = None
            await transport.close()

    async def stop(self) -> None:
        """Stop reconnecting and close the current session handle."""
        self._running = False
        transport = self._transport
        if self._closed is not None and not self._closed.done():
            self._closed.set_result(SessionClosed(status_code=None, message="Session stopped"))
        if transport is not None:
            await transport.close()
        self._set_state(ConnectionState.DISCONNECTED)

    def restart(self) -> None:
        """Clear the exhausted/logged-out verdict so ``run`` may be called again."""
        if self._running:
            return
        self.retry_count = 0
        self.exhausted_error = None
        self._set_state(ConnectionState.DISCONNECTED)

    # ── Events ───────────────────────────────────────────────────────

    def _handle_event(self, transport: SessionTransport, event: SessionEvent) -> None:
        if transport is not self._transport:
            logger.debug(f"Ignoring {type(event).__name__} from a stale session handle")
            return

        if isinstance(event, CredentialsUpdated):
            self._credentials.save(event.credentials)
        elif isinstance(event, PairingChallenge):
            self.pairing_pending = True
            self.retry_count = 0
            self._set_state(ConnectionState.CONNECTING)
            if self._on_pairing is not None:
                self._on_pairing(event.payload)
        elif isinstance(event, SessionConnecting):
            logger.info("Connecting to WhatsApp...")
            self._set_state(ConnectionState.CONNECTING)
        elif isinstance(event, SessionOpened):
            self.retry_count = 0
            self.pairing_pending = False
            self.user = event.user
            self._set_state(ConnectionState.READY)
            logger.info("WhatsApp connected successfully")
            if event.user is not None:
                logger.info(f"Connected as: {event.user.name or event.user.id}")
        elif isinstance(event, SessionClosed):
            self.last_disconnect = event
            self._set_state(ConnectionState.DISCONNECTED)
            logger.warning(
                f"Connection closed - Code: {event.status_code}, Error: {event.message or '-'}"
            )
            logger.info(event.describe())
            if self._closed is not None and not self._closed.done():
                self._closed.set_result(event)

    def _should_reconnect(self, closed: SessionClosed) -> bool:
        if closed.is_terminal:
            self._set_state(ConnectionState.LOGGED_OUT)
            logger.error("WhatsApp session logged out; not reconnecting. Reset the session and pair again.")
            return False

        if self.retry_count < self.max_retries:
            self.retry_count += 1
            return True

        self.exhausted_error = ReconnectExhaustedError(self.retry_count, self.max_retries)
        self._set_state(ConnectionState.EXHAUSTED)
        logger.error(str(self.exhausted_error))
        return False

    # ── Sending ──────────────────────────────────────────────────────

    async def send(self, recipient: str, body: str) -> str:
        """Send through the live session and return the message id."""
        transport = self._transport
        if not self.ready or transport is None:
            raise NotConnectedError("WhatsApp not connected")
        try:
            return await transport.send_text(recipient, body)
        except NotConnectedError:
            raise
        except Exception as e:
            raise SendFailureError(str(e) or type(e).__name__) from e

    def snapshot(self) -> dict[str, Any]:
        return {
            "state": self._state.value,
            "ready": self.ready,
            "retry_count": self.retry_count,
            "max_retries": self.max_retries,
            "connect_attempts": self.connect_attempts,
            "pairing_pending": self.pairing_pending,
            "user": self.user.to_dict() if self.user else None,
            "last_disconnect": self.last_disconnect.to_dict() if self.last_disconnect else None,
            "exhausted": self.exhausted_error is not None,
            "state_changed_at": self.state_changed_at,
        }
