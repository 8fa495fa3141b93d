"""Pub repository server using aiohttp."""

from __future__ import annotations

import asyncio
import logging
import signal
from dataclasses import dataclass
from typing import Any, Dict, Optional

from aiohttp import web

from constants import Constants
from repository.base import PackageRepository
from repository.cache import MetadataCache
from repository.composite import CompositeRepository
from repository.disk import DiskRepository
from repository.mirror import MirrorRepository

from .handler import PubProtocolHandler
from .hooks import UploadObservers, WebhookNotifier, request_logging_middleware, upload_observer_middleware
from .package_cache import InMemoryPackageCache, PackageCache

logger = logging.getLogger(__name__)


@dataclass
class ServerConfig:
    """Configuration for the pub server."""

    host: str = Constants.DEFAULT_HOST
    port: int = Constants.DEFAULT_PORT
    directory: str = Constants.DEFAULT_DIRECTORY
    upstream_url: str = Constants.DEFAULT_UPSTREAM_URL
    standalone: bool = False
    timeout: int = Constants.REQUEST_TIMEOUT
    webhook_url: Optional[str] = None
    base_url: Optional[str] = None
    response_cache_ttl: int = Constants.RESPONSE_CACHE_TTL
    max_upload_bytes: int = Constants.MAX_UPLOAD_BYTES
    allow_external: bool = False

    @classmethod
    def from_args(cls, args: Any, file_config: Optional[Dict[str, Any]] = None) -> "ServerConfig":
        """Create config from CLI arguments.

        Values given on the command line win over ``file_config``, which wins
        over the defaults.

        Args:
            args: Parsed CLI arguments namespace.
            file_config: Settings loaded from a config file.

        Returns:
            ServerConfig instance.
        """
        config = cls()
        for key, value in (file_config or {}).items():
            if hasattr(config, key) and value is not None:
                setattr(config, key, value)

        overrides = {
            "host": getattr(args, "HOST", None),
            "port": getattr(args, "PORT", None),
            "directory": getattr(args, "DIRECTORY", None),
            "upstream_url": getattr(args, "UPSTREAM", None),
            "timeout": getattr(args, "TIMEOUT", None),
            "webhook_url": getattr(args, "WEBHOOK", None),
            "base_url": getattr(args, "BASE_URL", None),
            "response_cache_ttl": getattr(args, "CACHE_TTL", None),
        }
        for key, value in overrides.items():
            if value is not None:
                setattr(config, key, value)

        if getattr(args, "STANDALONE", False) is True:
            config.standalone = True
        if getattr(args, "ALLOW_EXTERNAL", False) is True:
            config.allow_external = True

        config.port = int(config.port)
        config.timeout = int(config.timeout)
        config.response_cache_ttl = int(config.response_cache_ttl)
        return config


def build_repository(config: ServerConfig) -> CompositeRepository:
    """Wire the local disk store, the upstream mirror and their caches."""
    local = DiskRepository(config.directory)
    remote: Optional[MirrorRepository] = None
    if not config.standalone:
        remote = MirrorRepository(config.upstream_url, timeout=config.timeout)
    return CompositeRepository(
        local,
        remote,
        standalone=config.standalone,
        local_cache=MetadataCache(local),
        remote_cache=MetadataCache(remote) if remote is not None else None,
    )


class PubServer:
    """HTTP server for a pub package repository."""

    def __init__(
        self,
        config: ServerConfig,
        repository: Optional[PackageRepository] = None,
        cache: Optional[PackageCache] = None,
        observers: Optional[UploadObservers] = None,
    ):
        """Initialize the server.

        Args:
            config: Server configuration.
            repository: Repository to serve; built from ``config`` when omitted.
            cache: Listing cache; an in-memory one is used when
                ``config.response_cache_ttl`` is positive and ``config.base_url`` is set.
            observers: Upload observers; a webhook notifier is added when
                ``config.webhook_url`` is set.
        """
        self._config = config
        self._app: Optional[web.Application] = None
        self._runner: Optional[web.AppRunner] = None

        self.repository = repository if repository is not None else build_repository(config)

        if cache is None and config.response_cache_ttl > 0:
            if config.base_url:
                cache = InMemoryPackageCache(ttl=config.response_cache_ttl)
            else:
                logger.warning("Listing cache disabled: --cache-ttl needs --base-url to be set.")
        self.cache = cache

        self.observers = observers if observers is not None else UploadObservers()
        if config.webhook_url:
            self.observers.add(WebhookNotifier(config.webhook_url, timeout=config.timeout))

        self.handler = PubProtocolHandler(
            self.repository,
            cache=self.cache,
            base_url=config.base_url,
            max_upload_bytes=config.max_upload_bytes,
        )

    def create_app(self) -> web.Application:
        """Create the aiohttp application."""
        middlewares = [request_logging_middleware]
        if len(self.observers):
            middlewares.append(upload_observer_middleware(self.observers))
        app = web.Application(
            client_max_size=self._config.max_upload_bytes,
            middlewares=middlewares,
        )
        app.router.add_get(Constants.HEALTH_PATH, self._health_check)
        app.router.add_route("*", "/{path:.*}", self.handler.handle)
        app.on_startup.append(self._on_startup)
        app.on_cleanup.append(self._on_cleanup)
        return app

    async def _health_check(self, request: web.Request) -> web.Response:
        """Health check endpoint."""
        return web.json_response({
            "status": "ok",
            "standalone": self._config.standalone,
            "cache": self.cache_stats(),
        })

    def _mirrors(self):
        if isinstance(self.repository, MirrorRepository):
            yield self.repository
        remote = getattr(self.repository, "remote", None)
        if isinstance(remote, MirrorRepository):
            yield remote

    async def _on_startup(self, app: web.Application) -> None:
        """Called when the server starts."""
        for mirror in self._mirrors():
            await mirror.start()
        logger.info("Pub server starting on %s:%s", self._config.host, self._config.port)

    async def _on_cleanup(self, app: web.Application) -> None:
        """Called when the server stops."""
        await self.observers.drain()
        for mirror in self._mirrors():
            await mirror.stop()
        logger.info("Pub server stopped")

    def cache_stats(self) -> Dict[str, Any]:
        """Get cache statistics.

        Returns:
            Dict with version cache and listing cache stats.
        """
        stats: Dict[str, Any] = {}
        if isinstance(self.repository, CompositeRepository):
            stats["versions"] = self.repository.cache_stats()
        if isinstance(self.cache, InMemoryPackageCache):
            stats["listings"] = self.cache.stats()
        return stats

    async def start(self) -> None:
        """Start the pub server."""
        self._app = self.create_app()
        self._runner = web.AppRunner(self._app)
        await self._runner.setup()

        site = web.TCPSite(self._runner, self._config.host, self._config.port)
        await site.start()

        logger.info(
            "Pub server listening on http://%s:%s", self._config.host, self._config.port
        )
        logger.info("Storage directory: %s", self._config.directory)
        if self._config.standalone:
            logger.info("Standalone mode: upstream disabled")
        else:
            logger.info("Upstream: %s", self._config.upstream_url)

    async def stop(self) -> None:
        """Stop the pub server."""
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
            self._app = None


def run_server_sync(config: ServerConfig) -> None:
    """Run the pub server synchronously.

    Installs signal handlers for SIGTERM and SIGINT for clean shutdown.

    Args:
        config: Server configuration.
    """
    server = PubServer(config)
    loop = asyncio.new_event_loop()

    async def run():
        await server.start()
        stop_event = asyncio.Event()
        running_loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            running_loop.add_signal_handler(sig, stop_event.set)
        await stop_event.wait()
        logger.info("Shutdown signal received, stopping...")
        await server.stop()

    try:
        loop.run_until_complete(run())
    except KeyboardInterrupt:
        # Fallback for platforms where signal handlers don't work (Windows)
        loop.run_until_complete(server.stop())
    finally:
        loop.close()
        logger.info("Pub server shutdown complete")
