"""WhatsApp session lifecycle: credentials, transport and connection manager."""

from wagateway.session.bridge import BridgeProtocolError, BridgeTransport
from wagateway.session.credentials import CredentialStore
from wagateway.session.events import (
    ConnectionState,
    CredentialsUpdated,
    DisconnectReason,
    PairingChallenge,
    SessionClosed,
    SessionConnecting,
    SessionOpened,
    SessionUser,
)
from wagateway.session.manager import ConnectionManager
from wagateway.session.transport import SessionTransport

__all__ = [
    "BridgeProtocolError",
    "BridgeTransport",
    "ConnectionManager",
    "ConnectionState",
    "CredentialStore",
    "CredentialsUpdated",
    "DisconnectReason",
    "PairingChallenge",
    "SessionClosed",
    "SessionConnecting",
    "SessionOpened",
    "SessionTransport",
    "SessionUser",
]
