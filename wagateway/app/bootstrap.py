"""Gateway runtime composition and background task ownership."""

from __future__ import annotations

import asyncio
import contextlib
import time
from dataclasses import dataclass, field

from loguru import logger

from wagateway.config.schema import Config
from wagateway.outbound.dedup import DedupCache
from wagateway.outbound.gateway import SendGateway
from wagateway.session.bridge import BridgeTransport
from wagateway.session.credentials import CredentialStore
from wagateway.session.manager import ConnectionManager, TransportFactory
from wagateway.session.pairing import QRConsoleRenderer
from wagateway.telemetry.base import TelemetryPort
from wagateway.telemetry.inmemory import InMemoryTelemetry
from wagateway.telemetry.prometheus import PrometheusTelemetry


@dataclass
class GatewayRuntime:
    """Owns the session loop, the prune sweep and shutdown cleanup."""

    config: Config
    credentials: CredentialStore
    manager: ConnectionManager
    cache: DedupCache
    gateway: SendGateway
    telemetry: TelemetryPort
    started_at: float = field(default_factory=time.monotonic)
    _session_task: asyncio.Task[None] | None = field(default=None, init=False, repr=False)
    _prune_task: asyncio.Task[None] | None = field(default=None, init=False, repr=False)

    @property
    def uptime_seconds(self) -> float:
        return time.monotonic() - self.started_at

    @property
    def session_running(self) -> bool:
        return self._session_task is not None and not self._session_task.done()

    async def start(self) -> None:
        self.started_at = time.monotonic()
        logger.info(
            f"Duplicate protection active: {self.cache.window_seconds:g} seconds cooldown"
        )
        self.start_session()
        if self._prune_task is None:
            self._prune_task = asyncio.create_task(self._prune_loop())

    def start_session(self) -> bool:
        """Launch the session loop unless one is already running."""
        if self.session_running:
            return False
        self.manager.restart()
        self._session_task = asyncio.create_task(self.manager.run())
        self._session_task.add_done_callback(self._on_session_task_done)
        return True

    async def shutdown(self) -> None:
        logger.info("Cleaning up...")
        cleared = self.cache.clear()
        if cleared:
            logger.info(f"Dropped {cleared} duplicate-cache entries")

        if self._prune_task:
            self._prune_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._prune_task
            self._prune_task = None

        await self.manager.stop()
        if self._session_task:
            if not self._session_task.done():
                self._session_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._session_task
            self._session_task = None

    async def _prune_loop(self) -> None:
        interval = self.config.dedup.cleanup_interval_seconds
        while True:
            await asyncio.sleep(interval)
            removed = self.cache.prune()
            self.telemetry.gauge("dedup_cache_entries", float(len(self.cache)))
            if removed:
                logger.debug(f"Duplicate cache sweep removed {removed} expired entries")

    def _on_session_task_done(self, task: asyncio.Task[None]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"WhatsApp session loop failed: {exc}")
        elif not self.manager.ready:
            logger.warning(f"WhatsApp session loop ended in state {self.manager.state.value}")


def make_telemetry(config: Config) -> TelemetryPort:
    if config.telemetry.backend == "memory":
        return InMemoryTelemetry()
    return PrometheusTelemetry()


def build_runtime(
    config: Config,
    *,
    transport_factory: TransportFactory | None = None,
    telemetry: TelemetryPort | None = None,
) -> GatewayRuntime:
    """Wire credential store, connection manager, dedup cache and send gateway."""
    telemetry = telemetry or make_telemetry(config)
    session_cfg = config.session

    def default_transport() -> BridgeTransport:
        return BridgeTransport(
            session_cfg,
            command_timeout_s=config.send.command_timeout_seconds,
        )

    credentials = CredentialStore(session_cfg.auth_path)
    manager = ConnectionManager(
        transport_factory or default_transport,
        credentials,
        max_retries=session_cfg.max_retries,
        retry_delay_s=session_cfg.retry_delay_seconds,
        on_pairing=QRConsoleRenderer(enabled=session_cfg.print_qr),
        telemetry=telemetry,
    )
    cache = DedupCache(window_seconds=config.dedup.window_seconds)
    gateway = SendGateway(
        manager,
        cache,
        default_domain=config.send.default_domain,
        max_attempts=config.send.max_attempts,
        retry_delay_s=config.send.retry_delay_seconds,
        telemetry=telemetry,
    )
    return GatewayRuntime(
        config=config,
        credentials=credentials,
        manager=manager,
        cache=cache,
        gateway=gateway,
        telemetry=telemetry,
    )
