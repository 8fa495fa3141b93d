"""Read-only repository proxying an upstream pub registry over HTTP."""

from __future__ import annotations

import asyncio
import json
import logging
import urllib.parse
from typing import Any, AsyncIterator, Optional

import aiohttp

from common.logging_utils import Timer, extra_context, is_debug_enabled, safe_url
from constants import Constants

from .base import ByteStream, DownloadUrlCapable, PackageRepository
from .errors import PackageNotFound, RepositoryError
from .models import VersionRef

logger = logging.getLogger(__name__)


class MirrorRepository(PackageRepository, DownloadUrlCapable):
    """Repository backed by the pub HTTP API of an upstream registry.

    Version listings are advisory: any failure to reach or understand the
    upstream yields an empty listing instead of an error. Uploads are not
    supported.
    """

    def __init__(
        self,
        base_url: str = Constants.DEFAULT_UPSTREAM_URL,
        timeout: int = Constants.REQUEST_TIMEOUT,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        """Initialize the mirror.

        Args:
            base_url: Upstream registry root, e.g. https://pub.dev.
            timeout: Socket read timeout in seconds.
            session: Optional externally owned client session.
        """
        self.base_url = base_url.rstrip("/")
        self._timeout = aiohttp.ClientTimeout(total=None, sock_connect=timeout, sock_read=timeout)
        self._session = session
        self._owns_session = session is None

    async def start(self) -> None:
        """Start the HTTP session."""
        if self._session is None:
            self._session = aiohttp.ClientSession(
                timeout=self._timeout,
                headers={"User-Agent": Constants.USER_AGENT},
            )
            self._owns_session = True

    async def stop(self) -> None:
        """Stop the HTTP session if this mirror created it."""
        if self._session is not None and self._owns_session:
            await self._session.close()
        if self._owns_session:
            self._session = None

    async def __aenter__(self) -> "MirrorRepository":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.stop()

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            await self.start()
        assert self._session is not None
        return self._session

    def _package_url(self, package: str) -> str:
        return f"{self.base_url}/api/packages/{urllib.parse.quote(package, safe='')}"

    async def download_url(self, package: str, version: str) -> str:
        package = urllib.parse.quote(package, safe="")
        version = urllib.parse.quote(version, safe="")
        return f"{self.base_url}/packages/{package}/versions/{version}.tar.gz"

    async def list_versions(self, package: str) -> AsyncIterator[VersionRef]:
        payload = await self._fetch_package_json(package)
        if payload is None:
            return
        versions = payload.get("versions") if isinstance(payload, dict) else None
        if not isinstance(versions, list):
            return
        for item in versions:
            ref = _version_from_json(item)
            if ref is not None:
                yield ref

    async def _fetch_package_json(self, package: str) -> Optional[Any]:
        url = self._package_url(package)
        session = await self._ensure_session()
        with Timer() as t:
            if is_debug_enabled(logger):
                logger.debug(
                    "HTTP request",
                    extra=extra_context(
                        event="http_request", component="mirror", action="GET", target=safe_url(url)
                    ),
                )
            try:
                async with session.get(url, headers={"Accept": "application/json"}) as response:
                    if response.status != 200:
                        logger.info("Upstream returned %s for %s", response.status, safe_url(url))
                        return None
                    text = await response.text()
            except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
                logger.warning("Upstream unreachable for %s: %s", package, exc)
                return None

            if is_debug_enabled(logger):
                logger.debug(
                    "HTTP response ok",
                    extra=extra_context(
                        event="http_response",
                        component="mirror",
                        action="GET",
                        outcome="success",
                        duration_ms=t.duration_ms(),
                        target=safe_url(url),
                    ),
                )
        try:
            return json.loads(text)
        except ValueError:
            logger.warning("Upstream sent invalid JSON for %s", package)
            return None

    async def download(self, package: str, version: str) -> ByteStream:
        logger.info("Downloading package %s/%s.", package, version)
        url = await self.download_url(package, version)
        session = await self._ensure_session()
        try:
            response = await session.get(url)
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise RepositoryError(f"Could not download {package}/{version}: {exc}") from exc

        if response.status == 404:
            response.release()
            raise PackageNotFound(f"{package}/{version} does not exist upstream.")
        if response.status != 200:
            response.release()
            raise RepositoryError(
                f"Upstream returned {response.status} for {package}/{version}."
            )
        return _stream_body(response)


def _version_from_json(item: Any) -> Optional[VersionRef]:
    if not isinstance(item, dict):
        return None
    pubspec = item.get("pubspec")
    if not isinstance(pubspec, dict):
        return None
    name = pubspec.get("name")
    version = pubspec.get("version")
    if not isinstance(name, str) or not isinstance(version, str):
        return None
    return VersionRef(name, version, json.dumps(pubspec))


async def _stream_body(response: aiohttp.ClientResponse) -> AsyncIterator[bytes]:
    try:
        async for chunk in response.content.iter_chunked(Constants.STREAM_CHUNK_SIZE):
            yield chunk
    finally:
        response.release()
