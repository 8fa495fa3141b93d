"""Middlewares and upload observers for the pub server."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional, Set

import aiohttp
from aiohttp import web

from common.logging_utils import Timer, safe_url
from constants import Constants
from repository.models import VersionRef

from .handler import UPLOADED_VERSION_KEY
from .routes import UPLOAD_PATH

logger = logging.getLogger(__name__)

UploadObserver = Callable[[VersionRef], Awaitable[None]]
MessageBuilder = Callable[[VersionRef], Optional[Dict[str, Any]]]

_Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]


def default_message_builder(version: VersionRef) -> Dict[str, Any]:
    """Build the webhook payload announcing an uploaded version."""
    return {
        "event": "package_uploaded",
        "package": version.package_name,
        "version": version.version_string,
        "text": f"Package {version.package_name} {version.version_string} was uploaded.",
    }


class WebhookNotifier:
    """Upload observer posting a JSON message to a webhook URL."""

    def __init__(
        self,
        url: str,
        message_builder: MessageBuilder = default_message_builder,
        timeout: int = Constants.REQUEST_TIMEOUT,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        """Initialize the notifier.

        Args:
            url: Webhook endpoint.
            message_builder: Builds the payload; returning None skips the call.
            timeout: Total request timeout in seconds.
            session: Optional externally owned client session.
        """
        self.url = url
        self._message_builder = message_builder
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session = session

    async def __call__(self, version: VersionRef) -> None:
        payload = self._message_builder(version)
        if payload is None:
            return
        if self._session is not None:
            await self._post(self._session, payload)
            return
        async with aiohttp.ClientSession(timeout=self._timeout) as session:
            await self._post(session, payload)

    async def _post(self, session: aiohttp.ClientSession, payload: Dict[str, Any]) -> None:
        async with session.post(self.url, json=payload) as response:
            if response.status >= 400:
                logger.warning(
                    "Webhook %s answered %s for %s", safe_url(self.url), response.status, payload
                )
            else:
                logger.info("Webhook notified about %s", payload.get("package", payload))


class UploadObservers:
    """Background runner for upload observers.

    Observers are started as tasks so their latency and failures never reach
    the client; failures are logged.
    """

    def __init__(self, observers: Iterable[UploadObserver] = ()):
        self._observers = list(observers)
        self._tasks: Set[asyncio.Task] = set()

    def __len__(self) -> int:
        return len(self._observers)

    def add(self, observer: UploadObserver) -> None:
        self._observers.append(observer)

    def notify(self, version: VersionRef) -> None:
        """Start every observer for ``version``."""
        for observer in self._observers:
            self._schedule(observer, version)

    def _schedule(self, observer: UploadObserver, version: VersionRef) -> None:
        task = asyncio.ensure_future(observer(version))
        self._tasks.add(task)
        task.add_done_callback(self._on_done)

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning("Upload observer failed: %s", exc)

    async def drain(self) -> None:
        """Wait for observers still running."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


def upload_observer_middleware(observers: UploadObservers):
    """Notify ``observers`` after every successful simple upload.

    The upload response carries the stored VersionRef; the finish request
    that follows it does not identify the package.
    """

    @web.middleware
    async def middleware(request: web.Request, handler: _Handler) -> web.StreamResponse:
        response = await handler(request)
        if request.method == "POST" and request.path == UPLOAD_PATH and response.status == 302:
            version = response.get(UPLOADED_VERSION_KEY)
            if isinstance(version, VersionRef):
                observers.notify(version)
        return response

    return middleware


@web.middleware
async def request_logging_middleware(request: web.Request, handler: _Handler) -> web.StreamResponse:
    """Log one line per request with status and duration."""
    with Timer() as t:
        try:
            response = await handler(request)
        except web.HTTPException as exc:
            logger.info("%s %s -> %s (%.1f ms)", request.method, request.path, exc.status, t.duration_ms())
            raise
    logger.info("%s %s -> %s (%.1f ms)", request.method, request.path, response.status, t.duration_ms())
    return response
