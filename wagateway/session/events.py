"""Typed session events and connection states."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    READY = "ready"
    EXHAUSTED = "exhausted"
    LOGGED_OUT = "logged_out"


class DisconnectReason(IntEnum):
    """Disconnect status codes reported by the bridge's WhatsApp library."""

    CONNECTION_CLOSED = 428
    CONNECTION_LOST = 408
    TIMED_OUT = 408
    CONNECTION_REPLACED = 440
    LOGGED_OUT = 401
    BAD_SESSION = 500
    RESTART_REQUIRED = 515
    MULTIDEVICE_MISMATCH = 411
    FORBIDDEN = 403
    UNAVAILABLE_SERVICE = 503

    @classmethod
    def classify(cls, status_code: int | None) -> DisconnectReason | None:
        if status_code is None:
            return None
        try:
            return cls(status_code)
        except ValueError:
            return None


_REASON_MESSAGES: dict[DisconnectReason, str] = {
    DisconnectReason.CONNECTION_CLOSED: "Connection closed, reconnecting...",
    DisconnectReason.CONNECTION_LOST: "Connection lost or timed out, reconnecting...",
    DisconnectReason.CONNECTION_REPLACED: "Connection replaced from another device",
    DisconnectReason.RESTART_REQUIRED: "Restart required, reconnecting...",
    DisconnectReason.LOGGED_OUT: "Logged out from the phone; pairing is required again",
    DisconnectReason.BAD_SESSION: "Bad session data, reconnecting...",
    DisconnectReason.MULTIDEVICE_MISMATCH: "Multi-device mismatch, reconnecting...",
    DisconnectReason.FORBIDDEN: "Access forbidden, reconnecting...",
    DisconnectReason.UNAVAILABLE_SERVICE: "Service unavailable, reconnecting...",
}


@dataclass(slots=True, frozen=True)
class SessionUser:
    id: str
    name: str | None = None
    phone: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "phone": self.phone}


@dataclass(slots=True, frozen=True)
class PairingChallenge:
    """QR payload the operator must scan to pair a new session."""

    payload: str


@dataclass(slots=True, frozen=True)
class SessionConnecting:
    pass


@dataclass(slots=True, frozen=True)
class SessionOpened:
    user: SessionUser | None = None


@dataclass(slots=True, frozen=True)
class SessionClosed:
    status_code: int | None = None
    message: str = ""

    @property
    def reason(self) -> DisconnectReason | None:
        return DisconnectReason.classify(self.status_code)

    @property
    def is_terminal(self) -> bool:
        return self.reason is DisconnectReason.LOGGED_OUT

    def describe(self) -> str:
        reason = self.reason
        if reason is None:
            return f"Unknown disconnect ({self.status_code}), reconnecting..."
        return _REASON_MESSAGES[reason]

    def to_dict(self) -> dict[str, Any]:
        reason = self.reason
        return {
            "status_code": self.status_code,
            "reason": reason.name.lower() if reason is not None else "unknown",
            "message": self.message,
        }


@dataclass(slots=True, frozen=True)
class CredentialsUpdated:
    credentials: dict[str, Any] = field(default_factory=dict)


SessionEvent = PairingChallenge | SessionConnecting | SessionOpened | SessionClosed | CredentialsUpdated
