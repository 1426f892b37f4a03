import asyncio

import pytest
from conftest import FakeTransport, TransportFactory, wait_until

from wagateway.errors import NotConnectedError, SendFailureError
from wagateway.session.credentials import CredentialStore
from wagateway.session.events import (
    ConnectionState,
    CredentialsUpdated,
    DisconnectReason,
    PairingChallenge,
    SessionClosed,
)
from wagateway.session.manager import ConnectionManager
from wagateway.telemetry.inmemory import InMemoryTelemetry


class NoSleep:
    def __init__(self):
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


def _closing(code: int | None = DisconnectReason.CONNECTION_CLOSED, **kwargs) -> FakeTransport:
    return FakeTransport(open_on_connect=False, on_connect=[SessionClosed(status_code=code, message="closed")], **kwargs)


def _manager(factory, tmp_path, **kwargs) -> ConnectionManager:
    kwargs.setdefault("sleep", NoSleep())
    return ConnectionManager(factory, CredentialStore(tmp_path / "auth"), retry_delay_s=5, **kwargs)


# ── Disconnect classification ────────────────────────────────────────


def test_only_logged_out_is_terminal() -> None:
    assert SessionClosed(status_code=401).is_terminal
    for code in (428, 408, 440, 500, 515, 411, 403, 503, None, 999):
        assert not SessionClosed(status_code=code).is_terminal


def test_closed_event_describes_reason() -> None:
    assert SessionClosed(status_code=408).to_dict()["reason"] == "connection_lost"
    assert SessionClosed(status_code=999).to_dict()["reason"] == "unknown"
    assert "Unknown disconnect" in SessionClosed(status_code=None).describe()


# ── Reconnect policy ─────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_reconnect_stops_after_max_retries(tmp_path) -> None:
    factory = TransportFactory(default={"open_on_connect": False, "on_connect": [SessionClosed(status_code=428)]})
    sleep = NoSleep()
    telemetry = InMemoryTelemetry()
    manager = _manager(factory, tmp_path, max_retries=3, sleep=sleep, telemetry=telemetry)

    await manager.run()

    assert manager.connect_attempts == 4
    assert manager.state is ConnectionState.EXHAUSTED
    assert manager.exhausted_error is not None
    assert manager.exhausted_error.max_retries == 3
    assert sleep.calls == [5.0, 5.0, 5.0]
    assert telemetry.get_counter("reconnect_attempts_total") == 3
    assert all(t.closed for t in factory.created)


@pytest.mark.asyncio
async def test_logged_out_is_never_retried(tmp_path) -> None:
    factory = TransportFactory(_closing(DisconnectReason.LOGGED_OUT))
    manager = _manager(factory, tmp_path, max_retries=5)

    await manager.run()

    assert manager.connect_attempts == 1
    assert manager.state is ConnectionState.LOGGED_OUT
    assert manager.snapshot()["last_disconnect"]["reason"] == "logged_out"


@pytest.mark.asyncio
async def test_pairing_challenge_resets_retry_count(tmp_path) -> None:
    rendered: list[str] = []
    pairing = FakeTransport(
        open_on_connect=False,
        on_connect=[PairingChallenge(payload="2@abc"), SessionClosed(status_code=408)],
    )
    factory = TransportFactory(
        _closing(),
        _closing(),
        pairing,
        default={"open_on_connect": False, "on_connect": [SessionClosed(status_code=428)]},
    )
    manager = _manager(factory, tmp_path, max_retries=2, on_pairing=rendered.append)

    await manager.run()

    assert rendered == ["2@abc"]
    assert manager.connect_attempts == 5
    assert manager.state is ConnectionState.EXHAUSTED


@pytest.mark.asyncio
async def test_connect_failure_is_handled_as_close(tmp_path) -> None:
    factory = TransportFactory(default={"connect_error": OSError("connection refused"), "open_on_connect": False})
    manager = _manager(factory, tmp_path, max_retries=1)

    await manager.run()

    assert manager.connect_attempts == 2
    assert manager.state is ConnectionState.EXHAUSTED
    assert manager.last_disconnect is not None
    assert "connection refused" in manager.last_disconnect.message


@pytest.mark.asyncio
async def test_open_session_resets_retries_and_records_user(tmp_path) -> None:
    factory = TransportFactory(_closing(), FakeTransport())
    manager = _manager(factory, tmp_path, max_retries=3)

    task = asyncio.create_task(manager.run())
    await wait_until(lambda: manager.ready)

    snapshot = manager.snapshot()
    assert snapshot["state"] == "ready"
    assert snapshot["retry_count"] == 0
    assert snapshot["user"]["name"] == "Gateway"

    await manager.stop()
    await task
    assert manager.state is ConnectionState.DISCONNECTED
    assert factory.created[-1].closed


@pytest.mark.asyncio
async def test_events_from_stale_handle_are_ignored(tmp_path) -> None:
    factory = TransportFactory(_closing(), FakeTransport())
    manager = _manager(factory, tmp_path)

    task = asyncio.create_task(manager.run())
    await wait_until(lambda: manager.ready)

    stale = factory.created[0]
    stale.emit(SessionClosed(status_code=DisconnectReason.LOGGED_OUT))
    assert manager.ready

    await manager.stop()
    await task


@pytest.mark.asyncio
async def test_run_twice_is_rejected(tmp_path) -> None:
    manager = _manager(TransportFactory(FakeTransport()), tmp_path)
    task = asyncio.create_task(manager.run())
    await wait_until(lambda: manager.ready)

    with pytest.raises(RuntimeError):
        await manager.run()

    await manager.stop()
    await task


@pytest.mark.asyncio
async def test_restart_clears_exhausted_verdict(tmp_path) -> None:
    factory = TransportFactory(default={"open_on_connect": False, "on_connect": [SessionClosed(status_code=428)]})
    manager = _manager(factory, tmp_path, max_retries=0)

    await manager.run()
    assert manager.state is ConnectionState.EXHAUSTED

    manager.restart()
    assert manager.state is ConnectionState.DISCONNECTED
    assert manager.exhausted_error is None
    assert manager.retry_count == 0


# ── Credentials ──────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_credential_updates_are_persisted_and_reused(tmp_path) -> None:
    creds = {"me": {"id": "254700000001@s.whatsapp.net"}, "noiseKey": "abc"}
    first = FakeTransport(
        open_on_connect=False,
        on_connect=[CredentialsUpdated(credentials=creds), SessionClosed(status_code=515)],
    )
    second = FakeTransport()
    manager = _manager(TransportFactory(first, second), tmp_path)

    task = asyncio.create_task(manager.run())
    await wait_until(lambda: manager.ready)

    assert first.connect_credentials is None
    assert second.connect_credentials == creds
    assert CredentialStore(tmp_path / "auth").load() == creds

    await manager.stop()
    await task


# ── Sending ──────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_send_requires_ready_session(tmp_path) -> None:
    manager = _manager(TransportFactory(), tmp_path)
    with pytest.raises(NotConnectedError):
        await manager.send("254712345678@s.whatsapp.net", "hello")


@pytest.mark.asyncio
async def test_send_wraps_library_errors(tmp_path) -> None:
    transport = FakeTransport()
    transport.send_errors = [ValueError("invalid jid"), NotConnectedError("gone")]
    manager = _manager(TransportFactory(transport), tmp_path)

    task = asyncio.create_task(manager.run())
    await wait_until(lambda: manager.ready)

    with pytest.raises(SendFailureError, match="invalid jid"):
        await manager.send("254712345678@s.whatsapp.net", "hello")
    with pytest.raises(NotConnectedError):
        await manager.send("254712345678@s.whatsapp.net", "hello")
    assert await manager.send("254712345678@s.whatsapp.net", "hello") == "MSG-1"

    await manager.stop()
    await task
