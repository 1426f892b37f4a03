import pytest

from wagateway.errors import (
    ConnectionUnavailableError,
    NotConnectedError,
    SendFailureError,
    ValidationError,
)
from wagateway.outbound.dedup import DedupCache
from wagateway.outbound.gateway import SendGateway, build_send_request, normalize_recipient
from wagateway.telemetry.inmemory import InMemoryTelemetry

DOMAIN = "s.whatsapp.net"


class FakeSession:
    def __init__(self, ready: bool = True):
        self.ready = ready
        self.sent: list[tuple[str, str]] = []
        self.errors: list[Exception] = []

    async def send(self, recipient: str, body: str) -> str:
        if self.errors:
            raise self.errors.pop(0)
        self.sent.append((recipient, body))
        return f"ID{len(self.sent)}"


class RecordingSleep:
    def __init__(self, on_sleep=None):
        self.calls: list[float] = []
        self.on_sleep = on_sleep

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        if self.on_sleep is not None:
            self.on_sleep(len(self.calls))


def _gateway(session: FakeSession, *, clock=None, sleep=None, telemetry=None, max_attempts: int = 3) -> SendGateway:
    cache = DedupCache(window_seconds=15, clock=clock) if clock else DedupCache(window_seconds=15)
    return SendGateway(
        session,
        cache,
        default_domain=DOMAIN,
        max_attempts=max_attempts,
        retry_delay_s=5,
        telemetry=telemetry,
        sleep=sleep or RecordingSleep(),
    )


# ── Validation ───────────────────────────────────────────────────────


def test_normalize_recipient_appends_default_domain() -> None:
    assert normalize_recipient("254712345678", DOMAIN) == "254712345678@s.whatsapp.net"
    assert normalize_recipient(" 254712345678@s.whatsapp.net ", DOMAIN) == "254712345678@s.whatsapp.net"


@pytest.mark.parametrize(
    "number",
    [
        "+254712345678",
        "0712 345 678",
        "abc",
        "254712345678@g.us",
        "٢٥٤٧١٢٣٤٥٦٧٨",
        "２５４７１２３４５６７８",
    ],
)
def test_normalize_recipient_rejects_bad_numbers(number: str) -> None:
    with pytest.raises(ValidationError) as exc_info:
        normalize_recipient(number, DOMAIN)
    assert exc_info.value.error == "Invalid number format. Use: 254712345678"
    assert exc_info.value.status_code == 400


def test_build_send_request_accepts_integer_number() -> None:
    request = build_send_request(254712345678, "hello", default_domain=DOMAIN)
    assert request.recipient == "254712345678@s.whatsapp.net"
    assert request.body == "hello"


@pytest.mark.parametrize(
    ("number", "message", "received"),
    [
        (None, None, {"number": False, "message": False}),
        ("254712345678", None, {"number": True, "message": False}),
        ("", "hi", {"number": False, "message": True}),
        ("254712345678", "   ", {"number": True, "message": False}),
    ],
)
def test_build_send_request_reports_missing_fields(number, message, received) -> None:
    with pytest.raises(ValidationError) as exc_info:
        build_send_request(number, message, default_domain=DOMAIN)
    payload = exc_info.value.to_payload()
    assert payload["error"] == "Missing number or message"
    assert payload["received"] == received


# ── Policy ───────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_duplicate_is_reported_without_second_dispatch() -> None:
    session = FakeSession()
    telemetry = InMemoryTelemetry()
    gateway = _gateway(session, telemetry=telemetry)

    first = await gateway.send_with_policy("254712345678", "hello")
    second = await gateway.send_with_policy("254712345678@s.whatsapp.net", "hello")

    assert first.deduped is False and first.message_id == "ID1"
    assert second.deduped is True and second.delivered is True
    assert session.sent == [("254712345678@s.whatsapp.net", "hello")]
    assert telemetry.get_counter("messages_sent_total") == 1
    assert telemetry.get_counter("messages_deduplicated_total") == 1


@pytest.mark.asyncio
async def test_same_text_goes_out_again_after_window() -> None:
    now = [0.0]
    session = FakeSession()
    gateway = _gateway(session, clock=lambda: now[0])

    await gateway.send_with_policy("254712345678", "hello")
    now[0] = 15.0
    result = await gateway.send_with_policy("254712345678", "hello")

    assert result.deduped is False
    assert len(session.sent) == 2


@pytest.mark.asyncio
async def test_unready_session_is_checked_max_attempts_times() -> None:
    session = FakeSession(ready=False)
    sleep = RecordingSleep()
    telemetry = InMemoryTelemetry()
    gateway = _gateway(session, sleep=sleep, telemetry=telemetry, max_attempts=3)

    with pytest.raises(ConnectionUnavailableError) as exc_info:
        await gateway.send_with_policy("254712345678", "hello")

    assert sleep.calls == [5.0, 5.0, 5.0]
    assert exc_info.value.status_code == 503
    assert session.sent == []
    assert len(gateway.cache) == 0
    assert telemetry.get_counter("send_failures_total", labels=(("reason", "unavailable"),)) == 1


@pytest.mark.asyncio
async def test_session_becoming_ready_during_wait_sends() -> None:
    session = FakeSession(ready=False)

    def on_sleep(count: int) -> None:
        if count == 2:
            session.ready = True

    sleep = RecordingSleep(on_sleep)
    gateway = _gateway(session, sleep=sleep)

    result = await gateway.send_with_policy("254712345678", "hello")

    assert result.deduped is False
    assert len(sleep.calls) == 2
    assert session.sent == [("254712345678@s.whatsapp.net", "hello")]


@pytest.mark.asyncio
async def test_send_dropped_mid_flight_is_retried_once() -> None:
    session = FakeSession()
    session.errors = [NotConnectedError("socket closed")]
    sleep = RecordingSleep()
    gateway = _gateway(session, sleep=sleep)

    result = await gateway.send_with_policy("254712345678", "hello")

    assert result.message_id == "ID1"
    assert sleep.calls == [5.0]
    assert session.sent == [("254712345678@s.whatsapp.net", "hello")]


@pytest.mark.asyncio
async def test_second_mid_flight_drop_propagates() -> None:
    session = FakeSession()
    session.errors = [NotConnectedError("dropped"), NotConnectedError("dropped again")]
    gateway = _gateway(session)

    with pytest.raises(NotConnectedError):
        await gateway.send_with_policy("254712345678", "hello")
    assert len(gateway.cache) == 0


@pytest.mark.asyncio
async def test_rejected_send_does_not_block_retry() -> None:
    session = FakeSession()
    session.errors = [SendFailureError("bad request")]
    gateway = _gateway(session)

    with pytest.raises(SendFailureError):
        await gateway.send_with_policy("254712345678", "hello")

    result = await gateway.send_with_policy("254712345678", "hello")
    assert result.deduped is False
    assert len(session.sent) == 1


@pytest.mark.asyncio
async def test_validation_error_skips_readiness_wait() -> None:
    sleep = RecordingSleep()
    gateway = _gateway(FakeSession(ready=False), sleep=sleep)

    with pytest.raises(ValidationError):
        await gateway.send_with_policy("not-a-number", "hello")
    assert sleep.calls == []
