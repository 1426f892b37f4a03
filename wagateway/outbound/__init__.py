"""Outbound send policy: duplicate suppression and the send gateway."""

from wagateway.outbound.dedup import DedupCache
from wagateway.outbound.gateway import (
    SendGateway,
    SendRequest,
    SendResult,
    build_send_request,
    normalize_recipient,
)

__all__ = [
    "DedupCache",
    "SendGateway",
    "SendRequest",
    "SendResult",
    "build_send_request",
    "normalize_recipient",
]
