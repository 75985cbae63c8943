"""
Lifecycle Controller.

States: Unconfigured → Configured → Serving → Draining → Stopped

- configure(): open the repository, migrate, seed the admin credential
- start() / startSecure(): bind the listener (plain / TLS) and serve
- stop(): stop accepting, wait up to the grace period for in-flight requests,
  release the repository. Idempotent.
- run(): serve until the shutdown channel fires, then stop()

Shutdown channel: a single ShutdownSignal fed by SIGINT/SIGTERM and by the
kill endpoint. The first trigger wins; later triggers are ignored.
"""

import asyncio
import contextlib
import signal
import ssl
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from aiohttp import web

from eventshub.core.repository import EventRepository
from eventshub.core.database import SQLiteRepository
from eventshub.core.temporal import TemporalCodec, TimeZoneUnavailable
from eventshub.server.auth import TokenAuthority
from eventshub.server.config import ServerConfig, ConfigurationError
from eventshub.server.gateway import RequestGateway
from sdk.logging import getLogger


class LifecycleState(str, Enum):
    UNCONFIGURED = "Unconfigured"
    CONFIGURED = "Configured"
    SERVING = "Serving"
    DRAINING = "Draining"
    STOPPED = "Stopped"


class ShutdownSignal:
    """
    One-shot shutdown notification shared by every trigger source.

    trigger() returns True only for the call that actually fired it.
    """

    def __init__(self):
        self._event = asyncio.Event()
        self.reason: Optional[str] = None
        self.log = getLogger()

    def trigger(self, reason: str) -> bool:
        if self._event.is_set():
            self.log.debug("Shutdown already triggered, ignoring", reason=reason, firstReason=self.reason)
            return False
        self.reason = reason
        self._event.set()
        self.log.info("Shutdown triggered", reason=reason)
        return True

    def triggerLater(self, reason: str, delaySeconds: float) -> asyncio.TimerHandle:
        """Schedule trigger(reason) on the running loop after delaySeconds"""
        return asyncio.get_running_loop().call_later(delaySeconds, self.trigger, reason)

    def isSet(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> str:
        await self._event.wait()
        return self.reason


@dataclass
class ServerContext:
    """Everything a request handler may touch, built once by configure()"""
    config: ServerConfig
    repository: EventRepository
    authority: TokenAuthority
    codec: TemporalCodec
    shutdown: ShutdownSignal


RepositoryFactory = Callable[[ServerConfig, TemporalCodec], EventRepository]


def defaultRepositoryFactory(config: ServerConfig, codec: TemporalCodec) -> EventRepository:
    return SQLiteRepository(config.dbPath, codec=codec)


class LifecycleController:
    """Owns the listener and the repository handle"""

    def __init__(self, config: ServerConfig, repositoryFactory: RepositoryFactory = defaultRepositoryFactory):
        self.config = config
        self.repositoryFactory = repositoryFactory
        self.log = getLogger()

        self.state = LifecycleState.UNCONFIGURED
        self.context: Optional[ServerContext] = None
        self._runner: Optional[web.AppRunner] = None
        self._site: Optional[web.TCPSite] = None

    def configure(self) -> ServerContext:
        """
        Build the server context.

        Raises:
            ConfigurationError: Time zone unavailable or credential seed rejected
            StorageError: Repository could not be opened or migrated
        """
        if self.state is not LifecycleState.UNCONFIGURED:
            raise RuntimeError(f"configure() called in state {self.state.value}")

        codec = TemporalCodec(self.config.timezone)
        try:
            codec.zone  # Loads the zone database
        except TimeZoneUnavailable as e:
            raise ConfigurationError(str(e)) from e

        repository = self.repositoryFactory(self.config, codec)
        try:
            repository.migrate()
            repository.addCredential(self.config.adminUsername, self.config.adminHash, alreadyHashed=True)
        except Exception:
            repository.close()
            raise

        self.context = ServerContext(
            config=self.config,
            repository=repository,
            authority=TokenAuthority(self.config.tokenSecret, self.config.tokenLifetimeSeconds),
            codec=codec,
            shutdown=ShutdownSignal()
        )
        self.state = LifecycleState.CONFIGURED
        self.log.info("Configured", config=repr(self.config))
        return self.context

    async def start(self):
        """Serve plain HTTP"""
        await self._serve(None)

    async def startSecure(self):
        """
        Serve HTTPS with the configured certificate and key.

        Raises:
            ConfigurationError: Certificate/key missing or unreadable
        """
        if not self.config.secure:
            raise ConfigurationError("TLS certificate and key are required for a secure listener")

        sslContext = ssl.create_default_context(ssl.Purpose.CLIENT_AUTH)
        try:
            sslContext.load_cert_chain(self.config.tlsCertificate, self.config.tlsKey)
        except (OSError, ssl.SSLError) as e:
            raise ConfigurationError(f"Cannot load TLS certificate/key: {e}") from e

        await self._serve(sslContext)

    async def _serve(self, sslContext: Optional[ssl.SSLContext]):
        if self.state is not LifecycleState.CONFIGURED:
            raise RuntimeError(f"start() called in state {self.state.value}")

        gateway = RequestGateway(self.context)

        self._runner = web.AppRunner(
            gateway.app,
            shutdown_timeout=self.config.shutdownGraceSeconds,
            keepalive_timeout=self.config.keepaliveTimeoutSeconds
        )
        await self._runner.setup()

        self._site = web.TCPSite(self._runner, self.config.host, self.config.port, ssl_context=sslContext)
        try:
            await self._site.start()
        except OSError:
            self.log.critical(f"Cannot bind {self.config.host}:{self.config.port}", exc_info=True)
            await self._runner.cleanup()
            raise

        self.state = LifecycleState.SERVING
        scheme = 'https' if sslContext else 'http'
        self.log.info(f"Listening on {scheme}://{self.config.host}:{self.boundPort}")

    @property
    def boundPort(self) -> Optional[int]:
        """Actual listening port (differs from config when port 0 was requested)"""
        if self._runner is None or not self._runner.addresses:
            return None
        return self._runner.addresses[0][1]

    async def stop(self):
        """
        Serving → Draining → Stopped.

        Waits at most the grace period for in-flight requests, then proceeds
        regardless. Calls after the first are no-ops.
        """
        if self.state in (LifecycleState.DRAINING, LifecycleState.STOPPED):
            return

        wasServing = self.state is LifecycleState.SERVING
        self.state = LifecycleState.DRAINING
        if self.context is not None:
            self.context.shutdown.trigger('stop')

        try:
            if wasServing and self._runner is not None:
                self.log.info("Draining", graceSeconds=self.config.shutdownGraceSeconds)
                try:
                    await asyncio.wait_for(self._runner.cleanup(), timeout=self.config.shutdownGraceSeconds)
                except asyncio.TimeoutError:
                    self.log.warning("Grace period elapsed, abandoning in-flight requests")
        finally:
            if self.context is not None:
                self.context.repository.close()
            self._runner = None
            self._site = None
            self.state = LifecycleState.STOPPED
            self.log.info("Stopped")

    async def run(self, secure: bool = True) -> str:
        """
        Configure if needed, serve until a shutdown trigger, then stop.

        Returns the reason of the trigger that ended serving.
        """
        if self.state is LifecycleState.UNCONFIGURED:
            self.configure()

        if secure:
            await self.startSecure()
        else:
            await self.start()

        loop = asyncio.get_running_loop()
        shutdown = self.context.shutdown
        installed = []
        for sig in (signal.SIGINT, signal.SIGTERM):
            # Not available on Windows event loops
            with contextlib.suppress(NotImplementedError):
                loop.add_signal_handler(sig, shutdown.trigger, sig.name)
                installed.append(sig)

        try:
            reason = await shutdown.wait()
            self.log.info("Shutting down", reason=reason)
        finally:
            for sig in installed:
                loop.remove_signal_handler(sig)
            await self.stop()

        return reason
