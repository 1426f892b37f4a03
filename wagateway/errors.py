"""Error taxonomy shared by the session, the send gateway and the HTTP facade."""

from __future__ import annotations

from typing import Any


class GatewayError(RuntimeError):
    """Base error carrying the HTTP status and public error label for the facade."""

    status_code = 500
    error = "Internal error"

    def __init__(self, message: str, *, extra: dict[str, Any] | None = None):
        super().__init__(message)
        self.extra = dict(extra or {})

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"error": self.error, "details": str(self)}
        payload.update(self.extra)
        return payload


class ValidationError(GatewayError):
    """Bad or missing request fields. Never retried."""

    status_code = 400
    error = "Invalid request"

    def __init__(self, message: str, *, error: str | None = None, extra: dict[str, Any] | None = None):
        super().__init__(message, extra=extra)
        if error:
            self.error = error


class NotConnectedError(GatewayError):
    """The session cannot accept sends right now."""

    status_code = 503
    error = "Failed to send message"


class ConnectionUnavailableError(NotConnectedError):
    """The session stayed unready for every readiness check of a send."""


class SendFailureError(GatewayError):
    """The bridge rejected a send; the library message is passed through."""

    status_code = 503
    error = "Failed to send message"


class ReconnectExhaustedError(GatewayError):
    """Reconnect attempts ran out; the session stays unready until an operator acts."""

    status_code = 503
    error = "Reconnection exhausted"

    def __init__(self, attempts: int, max_retries: int):
        super().__init__(
            f"Max reconnection attempts reached ({attempts}/{max_retries}). "
            "Restart the server or POST /reconnect."
        )
        self.attempts = attempts
        self.max_retries = max_retries
