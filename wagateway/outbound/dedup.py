"""Duplicate suppression for outbound messages.

A fingerprint is ``recipient:body``. The same fingerprint is blocked while
its last accepted send is younger than the cooldown window; older entries
are inert until the periodic sweep drops them.
"""

from __future__ import annotations

import time
from collections.abc import Callable


class DedupCache:
    """Fixed-window map of fingerprint -> monotonic time of last accepted send."""

    def __init__(self, *, window_seconds: float = 15.0, clock: Callable[[], float] = time.monotonic) -> None:
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self.window_seconds = float(window_seconds)
        self._clock = clock
        self._last_sent: dict[str, float] = {}

    @staticmethod
    def fingerprint(recipient: str, body: str) -> str:
        return f"{recipient}:{body}"

    def should_suppress(self, fingerprint: str) -> bool:
        """Return True while ``fingerprint`` is cooling down.

        An allowed call records the current time for the fingerprint, so the
        window restarts from the last send that actually went out.
        """
        now = self._clock()
        last_sent = self._last_sent.get(fingerprint)
        if last_sent is not None and now - last_sent < self.window_seconds:
            return True
        self._last_sent[fingerprint] = now
        return False

    def forget(self, fingerprint: str) -> None:
        """Drop one fingerprint, e.g. after the send it allowed failed."""
        self._last_sent.pop(fingerprint, None)

    def prune(self, now: float | None = None) -> int:
        """Remove entries older than the window. Returns the number removed."""
        current = self._clock() if now is None else now
        expired = [key for key, ts in self._last_sent.items() if current - ts > self.window_seconds]
        for key in expired:
            del self._last_sent[key]
        return len(expired)

    def clear(self) -> int:
        """Empty the cache and return how many entries it held."""
        previous = len(self._last_sent)
        self._last_sent.clear()
        return previous

    def __contains__(self, fingerprint: object) -> bool:
        return fingerprint in self._last_sent

    def __len__(self) -> int:
        return len(self._last_sent)
