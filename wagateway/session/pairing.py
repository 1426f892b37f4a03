"""Rendering of pairing challenges for the operator."""

from __future__ import annotations

import io
import sys
from typing import TextIO

import qrcode
from loguru import logger


def render_qr_ascii(payload: str) -> str:
    """Return the QR code for ``payload`` as terminal-friendly ASCII art."""
    qr = qrcode.QRCode(border=1)
    qr.add_data(payload)
    qr.make(fit=True)
    buffer = io.StringIO()
    qr.print_ascii(out=buffer, invert=True)
    return buffer.getvalue()


class QRConsoleRenderer:
    """Prints pairing QR codes to a terminal stream."""

    def __init__(self, stream: TextIO | None = None, *, enabled: bool = True):
        self._stream = stream
        self.enabled = enabled

    def __call__(self, payload: str) -> None:
        logger.info("Pairing required: scan this QR code with WhatsApp > Linked devices")
        if not self.enabled:
            return
        stream = self._stream or sys.stdout
        stream.write(render_qr_ascii(payload))
        stream.flush()
