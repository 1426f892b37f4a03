import asyncio
from typing import Any

import pytest

from wagateway.config.schema import Config
from wagateway.session.events import SessionEvent, SessionOpened, SessionUser


class FakeTransport:
    """Scriptable session handle standing in for the bridge websocket."""

    def __init__(
        self,
        *,
        on_connect: list[SessionEvent] | None = None,
        open_on_connect: bool = True,
        connect_error: Exception | None = None,
    ):
        self.handlers: list = []
        self.on_connect = list(on_connect or [])
        self.open_on_connect = open_on_connect
        self.connect_error = connect_error
        self.connect_credentials: dict[str, Any] | None = None
        self.connected = False
        self.closed = False
        self.sent: list[tuple[str, str]] = []
        self.send_errors: list[Exception] = []

    def subscribe(self, handler) -> None:
        self.handlers.append(handler)

    def emit(self, event: SessionEvent) -> None:
        for handler in list(self.handlers):
            handler(event)

    async def connect(self, credentials: dict[str, Any] | None) -> None:
        self.connect_credentials = credentials
        self.connected = True
        if self.connect_error is not None:
            raise self.connect_error
        for event in self.on_connect:
            self.emit(event)
        if self.open_on_connect:
            self.emit(SessionOpened(user=SessionUser(id="254700000001@s.whatsapp.net", name="Gateway")))

    async def send_text(self, to: str, text: str) -> str:
        if self.send_errors:
            raise self.send_errors.pop(0)
        self.sent.append((to, text))
        return f"MSG-{len(self.sent)}"

    async def close(self) -> None:
        self.closed = True


class TransportFactory:
    """Hands out prepared transports in order, then default ones."""

    def __init__(self, *prepared: FakeTransport, default: dict[str, Any] | None = None):
        self.prepared = list(prepared)
        self.default = default or {}
        self.created: list[FakeTransport] = []

    def __call__(self) -> FakeTransport:
        transport = self.prepared.pop(0) if self.prepared else FakeTransport(**self.default)
        self.created.append(transport)
        return transport


async def wait_until(predicate, *, rounds: int = 200) -> None:
    for _ in range(rounds):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition not reached")


@pytest.fixture
def gateway_config(tmp_path) -> Config:
    return Config(
        session={"auth_dir": str(tmp_path / "auth_info"), "retry_delay_ms": 1, "max_retries": 2, "print_qr": False},
        send={"max_attempts": 100, "retry_delay_ms": 10},
        telemetry={"backend": "memory"},
    )
