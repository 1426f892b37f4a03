"""FastAPI-based HTTP facade for the WhatsApp gateway.

Endpoints:
- POST /send - Send a text message (duplicate-protected)
- GET /status - Session and duplicate-cache status
- DELETE /clear-duplicates - Reset the duplicate cache
- POST /reconnect - Restart an exhausted or logged-out session
- GET / - Service descriptor
- GET /health - Liveness probe
- GET /metrics - Prometheus metrics

Security:
- Optional Bearer token (server.authToken); / and /health stay open
"""

import hmac
import json
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from fastapi import Depends, FastAPI, HTTPException, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import BaseModel, ConfigDict

from wagateway import __version__
from wagateway.errors import GatewayError, ValidationError
from wagateway.session.events import ConnectionState
from wagateway.telemetry.prometheus import CONTENT_TYPE, PrometheusTelemetry
from wagateway.utils.helpers import format_seconds, utc_timestamp

if TYPE_CHECKING:
    from wagateway.app.bootstrap import GatewayRuntime

SHUTDOWN_GRACE_SECONDS = 1

ENDPOINTS = {
    "POST /send": "Send message",
    "GET /status": "Check status",
    "DELETE /clear-duplicates": "Clear cache",
    "POST /reconnect": "Restart the WhatsApp session",
    "GET /health": "Liveness probe",
    "GET /metrics": "Prometheus metrics",
}


class SendPayload(BaseModel):
    """Body of ``POST /send``. Field checks happen in the send gateway."""

    model_config = ConfigDict(extra="ignore")

    number: Any = None
    message: Any = None


def _check_auth(auth_header: str | None, expected_token: str) -> bool:
    """Validate Bearer token auth."""
    if not auth_header:
        return False
    if not auth_header.startswith("Bearer "):
        return False
    token = auth_header[7:]
    return hmac.compare_digest(token, expected_token)


def _status_label(snapshot: dict[str, Any], *, ready_label: str = "Ready") -> str:
    state = snapshot["state"]
    if state == ConnectionState.READY.value:
        return ready_label
    if state == ConnectionState.EXHAUSTED.value:
        return "Reconnection exhausted"
    if state == ConnectionState.LOGGED_OUT.value:
        return "Logged out"
    if snapshot.get("pairing_pending"):
        return "Waiting for QR scan"
    return "Connecting..."


async def _read_send_payload(request: Request) -> SendPayload:
    """Decode the ``/send`` body. Runs after auth, so rejected callers never get a parse error."""
    raw = await request.body()
    if not raw.strip():
        return SendPayload()
    try:
        data = json.loads(raw)
    except ValueError as e:
        raise ValidationError(f"Malformed JSON body: {e}", error="Invalid request body") from e
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object", error="Invalid request body")
    return SendPayload.model_validate(data)


def create_app(runtime: "GatewayRuntime", *, manage_runtime: bool = True) -> FastAPI:
    """Create the FastAPI application.

    Args:
        runtime: Wired gateway runtime (session manager, cache, send gateway)
        manage_runtime: Start the runtime on startup and shut it down on exit

    Returns:
        FastAPI application instance
    """
    server_cfg = runtime.config.server
    cooldown = format_seconds(runtime.cache.window_seconds)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if manage_runtime:
            await runtime.start()
        logger.info(f"Server running on port {server_cfg.port}")
        try:
            yield
        finally:
            if manage_runtime:
                await runtime.shutdown()
            logger.info("Gateway API shut down")

    app = FastAPI(
        title="WhatsApp Gateway",
        description="HTTP facade over a single WhatsApp session",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=server_cfg.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(GatewayError)
    async def gateway_error_handler(request: Request, exc: GatewayError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(f"API Error: {exc}")
        payload = exc.to_payload()
        payload["timestamp"] = utc_timestamp()
        return JSONResponse(status_code=exc.status_code, content=payload)

    @app.exception_handler(HTTPException)
    async def http_error_handler(request: Request, exc: HTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": "Request rejected", "details": str(exc.detail), "timestamp": utc_timestamp()},
            headers=exc.headers,
        )

    def verify_auth(request: Request) -> None:
        """Verify authentication for protected endpoints."""
        if not server_cfg.auth_token:
            return

        auth_header = request.headers.get("Authorization")
        if not _check_auth(auth_header, server_cfg.auth_token):
            raise HTTPException(
                status_code=401,
                detail="Invalid or missing authentication token",
                headers={"WWW-Authenticate": "Bearer"},
            )

    protected = [Depends(verify_auth)]

    @app.get("/", tags=["service"])
    async def service_descriptor() -> dict[str, Any]:
        snapshot = runtime.manager.snapshot()
        return {
            "service": "WhatsApp Gateway",
            "version": __version__,
            "status": _status_label(snapshot, ready_label="Connected"),
            "endpoints": ENDPOINTS,
        }

    @app.get("/health", tags=["health"])
    async def health_check() -> dict[str, str]:
        return {"status": "ok"}

    @app.post("/send", tags=["messages"], dependencies=protected)
    async def send_message(request: Request) -> dict[str, Any]:
        """Send a text message unless the same text went to the same number recently."""
        body = await _read_send_payload(request)
        result = await runtime.gateway.send_with_policy(body.number, body.message)
        return {
            "status": "success",
            "message": "Duplicate blocked" if result.deduped else "Message sent",
            "to": result.recipient,
            "duplicate": result.deduped,
            "cooldown": cooldown if result.deduped else None,
            "message_id": result.message_id,
            "timestamp": utc_timestamp(),
        }

    @app.get("/status", tags=["status"], dependencies=protected)
    async def get_status() -> dict[str, Any]:
        snapshot = runtime.manager.snapshot()
        return {
            "connected": snapshot["ready"],
            "status": _status_label(snapshot),
            "state": snapshot["state"],
            "retry_count": snapshot["retry_count"],
            "max_retries": snapshot["max_retries"],
            "duplicate_protection": {
                "active": True,
                "cooldown": cooldown,
                "tracked_messages": len(runtime.cache),
            },
            "session": {
                "user": snapshot["user"],
                "last_disconnect": snapshot["last_disconnect"],
                "pairing_pending": snapshot["pairing_pending"],
                "connect_attempts": snapshot["connect_attempts"],
                "loop_running": runtime.session_running,
            },
            "uptime_seconds": round(runtime.uptime_seconds, 2),
            "timestamp": utc_timestamp(),
        }

    @app.delete("/clear-duplicates", tags=["messages"], dependencies=protected)
    async def clear_duplicates() -> dict[str, Any]:
        previous = runtime.cache.clear()
        runtime.telemetry.gauge("dedup_cache_entries", 0.0)
        logger.info(f"Duplicate cache cleared ({previous} entries)")
        return {
            "status": "success",
            "cleared": True,
            "previous_entries": previous,
            "message": "Duplicate cache cleared",
        }

    @app.post("/reconnect", tags=["status"], dependencies=protected)
    async def reconnect(request: Request) -> dict[str, Any]:
        client_ip = request.client.host if request.client else "unknown"
        started = runtime.start_session()
        if started:
            logger.info(f"Session restart requested from {client_ip}")
        return {
            "status": "restarted" if started else "already_running",
            "state": runtime.manager.state.value,
        }

    @app.get("/metrics", tags=["metrics"], dependencies=protected)
    async def get_metrics() -> Response:
        if isinstance(runtime.telemetry, PrometheusTelemetry):
            return Response(content=runtime.telemetry.render(), media_type=CONTENT_TYPE)
        return Response(content="# Prometheus backend disabled\n", media_type=CONTENT_TYPE)

    return app


def run_server(runtime: "GatewayRuntime") -> None:
    """Run the gateway HTTP server until interrupted.

    uvicorn turns SIGINT/SIGTERM into a graceful shutdown, which runs the
    lifespan exit: duplicate cache cleared and session handle closed.
    Open requests get SHUTDOWN_GRACE_SECONDS before they are cancelled.
    """
    import uvicorn

    server_cfg = runtime.config.server
    app = create_app(runtime)

    uvicorn.run(
        app,
        host=server_cfg.host,
        port=server_cfg.port,
        log_level="info",
        timeout_graceful_shutdown=SHUTDOWN_GRACE_SECONDS,
    )
