import pytest

from wagateway.outbound.dedup import DedupCache


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def test_fingerprint_joins_recipient_and_body() -> None:
    assert DedupCache.fingerprint("254712345678@s.whatsapp.net", "hi") == "254712345678@s.whatsapp.net:hi"


def test_second_identical_send_inside_window_is_suppressed() -> None:
    clock = FakeClock()
    cache = DedupCache(window_seconds=15, clock=clock)
    key = cache.fingerprint("a@s.whatsapp.net", "hello")

    assert cache.should_suppress(key) is False
    clock.advance(14.9)
    assert cache.should_suppress(key) is True


def test_suppressed_call_does_not_extend_window() -> None:
    clock = FakeClock()
    cache = DedupCache(window_seconds=15, clock=clock)
    key = cache.fingerprint("a@s.whatsapp.net", "hello")

    cache.should_suppress(key)
    clock.advance(10)
    assert cache.should_suppress(key) is True
    clock.advance(5)
    assert cache.should_suppress(key) is False


def test_different_body_or_recipient_is_not_suppressed() -> None:
    cache = DedupCache(window_seconds=15, clock=FakeClock())
    assert cache.should_suppress(cache.fingerprint("a@x", "hello")) is False
    assert cache.should_suppress(cache.fingerprint("a@x", "hello!")) is False
    assert cache.should_suppress(cache.fingerprint("b@x", "hello")) is False
    assert len(cache) == 3


def test_prune_drops_only_entries_older_than_window() -> None:
    clock = FakeClock()
    cache = DedupCache(window_seconds=15, clock=clock)
    cache.should_suppress("old")
    clock.advance(10)
    cache.should_suppress("fresh")
    clock.advance(6)

    assert cache.prune() == 1
    assert "old" not in cache
    assert "fresh" in cache


def test_prune_accepts_explicit_now() -> None:
    clock = FakeClock()
    cache = DedupCache(window_seconds=15, clock=clock)
    cache.should_suppress("k")
    assert cache.prune(now=clock.now + 15) == 0
    assert cache.prune(now=clock.now + 15.1) == 1


def test_clear_reports_previous_size_and_allows_resend() -> None:
    cache = DedupCache(window_seconds=15, clock=FakeClock())
    cache.should_suppress("k1")
    cache.should_suppress("k2")

    assert cache.clear() == 2
    assert len(cache) == 0
    assert cache.should_suppress("k1") is False


def test_forget_releases_a_single_fingerprint() -> None:
    cache = DedupCache(window_seconds=15, clock=FakeClock())
    cache.should_suppress("k1")
    cache.should_suppress("k2")
    cache.forget("k1")
    cache.forget("missing")

    assert cache.should_suppress("k1") is False
    assert cache.should_suppress("k2") is True


def test_window_must_be_positive() -> None:
    with pytest.raises(ValueError):
        DedupCache(window_seconds=0)
