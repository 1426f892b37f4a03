"""Session transport backed by the WhatsApp bridge websocket (protocol v2)."""

from __future__ import annotations

import asyncio
import contextlib
import json
import uuid
from collections.abc import Awaitable, Callable
from typing import Any

from loguru import logger

from wagateway.config.schema import SessionConfig
from wagateway.errors import NotConnectedError
from wagateway.session.events import (
    CredentialsUpdated,
    PairingChallenge,
    SessionClosed,
    SessionConnecting,
    SessionEvent,
    SessionOpened,
    SessionUser,
)
from wagateway.session.transport import EventHandler

PROTOCOL_VERSION = 2
NOT_CONNECTED_CODE = "ERR_NOT_CONNECTED"

WebSocketConnect = Callable[..., Awaitable[Any]]


class BridgeProtocolError(RuntimeError):
    """Bridge returned a protocol-level error."""

    def __init__(self, code: str, message: str, retryable: bool):
        super().__init__(f"{code}: {message}")
        self.code = code
        self.message = message
        self.retryable = retryable


def _parse_user(raw: Any) -> SessionUser | None:
    if not isinstance(raw, dict):
        return None
    user_id = str(raw.get("id") or "").strip()
    if not user_id:
        return None
    name = str(raw.get("name") or "").strip() or None
    phone = str(raw.get("phone") or "").strip() or None
    return SessionUser(id=user_id, name=name, phone=phone)


def _parse_status_code(raw: Any) -> int | None:
    if isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw
    if isinstance(raw, str) and raw.strip().isdigit():
        return int(raw.strip())
    return None


class BridgeTransport:
    """One bridge websocket = one session handle."""

    def __init__(
        self,
        config: SessionConfig,
        *,
        command_timeout_s: float = 20.0,
        connect: WebSocketConnect | None = None,
    ):
        self.config = config
        self._command_timeout_s = command_timeout_s
        self._connect = connect
        self._ws: Any | None = None
        self._reader_task: asyncio.Task[None] | None = None
        self._send_lock = asyncio.Lock()
        self._pending: dict[str, asyncio.Future[dict[str, Any]]] = {}
        self._handlers: list[EventHandler] = []
        self._closing = False
        self._closed_emitted = False

    @property
    def connected(self) -> bool:
        return self._ws is not None and not self._closing

    def subscribe(self, handler: EventHandler) -> None:
        self._handlers.append(handler)

    async def connect(self, credentials: dict[str, Any] | None) -> None:
        """Open the bridge websocket and ask the bridge to start a session."""
        connect = self._connect
        if connect is None:
            import websockets

            connect = websockets.connect

        logger.info(f"Connecting to WhatsApp bridge at {self.config.bridge_url}...")
        self._ws = await connect(
            self.config.bridge_url,
            max_size=self.config.max_payload_bytes,
            ping_interval=self.config.keep_alive_interval_ms / 1000.0,
            ping_timeout=20,
        )
        self._reader_task = asyncio.create_task(self._read_loop())
        await self._send_command(
            "connect",
            {"credentials": credentials, "options": self._session_options()},
            timeout_seconds=self.config.connect_timeout_seconds,
        )

    async def send_text(self, to: str, text: str) -> str:
        if not self.connected:
            raise NotConnectedError("WhatsApp bridge not connected")
        try:
            result = await self._send_command(
                "send_text",
                {"to": to, "text": text},
                timeout_seconds=self._command_timeout_s,
            )
        except BridgeProtocolError as e:
            if e.code == NOT_CONNECTED_CODE:
                raise NotConnectedError(f"WhatsApp not connected: {e.message}") from e
            raise
        message_id = result.get("messageId")
        return str(message_id) if message_id else ""

    async def close(self) -> None:
        self._closing = True
        if self._reader_task:
            self._reader_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._reader_task
            self._reader_task = None
        if self._ws is not None:
            await self._ws.close()
            self._ws = None
        self._fail_pending("Session closed")

    def _session_options(self) -> dict[str, Any]:
        return {
            "browser": list(self.config.browser),
            "markOnlineOnConnect": self.config.mark_online_on_connect,
            "connectTimeoutMs": self.config.connect_timeout_ms,
            "keepAliveIntervalMs": self.config.keep_alive_interval_ms,
            "printQRInTerminal": False,
        }

    async def _read_loop(self) -> None:
        reason = "Bridge connection closed"
        try:
            async for raw in self._ws:
                self._handle_frame(raw)
        except Exception as e:
            reason = f"Bridge connection error: {e}"
            logger.warning(reason)
        finally:
            self._fail_pending(reason)
            if not self._closing:
                self._emit_closed(SessionClosed(status_code=None, message=reason))

    def _handle_frame(self, raw: str | bytes) -> None:
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Invalid JSON from bridge")
            return

        if not isinstance(data, dict):
            logger.warning("Invalid bridge frame shape")
            return

        version = data.get("version")
        if version != PROTOCOL_VERSION:
            logger.warning(f"Unexpected bridge protocol version: {version!r}")
            return

        msg_type = data.get("type")
        payload = data.get("payload")
        if not isinstance(payload, dict):
            payload = {}

        if msg_type == "response":
            request_id = data.get("requestId")
            if isinstance(request_id, str):
                self._resolve_pending(request_id, payload)
            return

        if msg_type == "qr":
            qr = payload.get("qr")
            if isinstance(qr, str) and qr:
                self._emit(PairingChallenge(payload=qr))
            return

        if msg_type == "connection":
            self._handle_connection_update(payload)
            return

        if msg_type == "creds":
            creds = payload.get("creds")
            if isinstance(creds, dict):
                self._emit(CredentialsUpdated(credentials=creds))
            else:
                logger.warning("Dropping malformed credentials update from bridge")
            return

        if msg_type == "error":
            logger.error(f"WhatsApp bridge error: {payload.get('error')}")
            return

        logger.debug(f"Ignoring bridge frame type {msg_type!r}")

    def _handle_connection_update(self, payload: dict[str, Any]) -> None:
        connection = payload.get("connection")
        if connection == "connecting":
            self._emit(SessionConnecting())
        elif connection == "open":
            self._emit(SessionOpened(user=_parse_user(payload.get("user"))))
        elif connection == "close":
            error = payload.get("error")
            self._emit_closed(
                SessionClosed(
                    status_code=_parse_status_code(payload.get("statusCode")),
                    message=str(error) if error else "",
                )
            )
        else:
            logger.debug(f"Ignoring connection update {connection!r}")

    def _emit_closed(self, event: SessionClosed) -> None:
        if self._closed_emitted:
            return
        self._closed_emitted = True
        self._emit(event)

    def _emit(self, event: SessionEvent) -> None:
        for handler in list(self._handlers):
            try:
                handler(event)
            except Exception as e:
                logger.error(f"Session event handler failed for {type(event).__name__}: {e}")

    async def _send_command(
        self,
        command_type: str,
        payload: dict[str, Any],
        timeout_seconds: float,
    ) -> dict[str, Any]:
        if self._ws is None:
            raise NotConnectedError("Bridge websocket not connected")

        request_id = uuid.uuid4().hex
        future: asyncio.Future[dict[str, Any]] = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future

        envelope = {
            "version": PROTOCOL_VERSION,
            "type": command_type,
            "token": self.config.bridge_token,
            "requestId": request_id,
            "payload": payload,
        }

        try:
            async with self._send_lock:
                await self._ws.send(json.dumps(envelope))
            return await asyncio.wait_for(future, timeout=timeout_seconds)
        finally:
            self._pending.pop(request_id, None)

    def _resolve_pending(self, request_id: str, payload: dict[str, Any]) -> None:
        future = self._pending.get(request_id)
        if not future or future.done():
            return

        if payload.get("ok"):
            result = payload.get("result")
            future.set_result(result if isinstance(result, dict) else {})
            return

        error = payload.get("error") if isinstance(payload.get("error"), dict) else {}
        code = str(error.get("code") or "ERR_INTERNAL")
        message = str(error.get("message") or "Bridge command failed")
        retryable = bool(error.get("retryable", False))
        future.set_exception(BridgeProtocolError(code, message, retryable))

    def _fail_pending(self, reason: str) -> None:
        for future in self._pending.values():
            if not future.done():
                future.set_exception(NotConnectedError(reason))
        self._pending.clear()
