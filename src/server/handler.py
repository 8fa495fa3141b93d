"""aiohttp handler serving a :class:`PackageRepository` over the pub HTTP API.

Endpoints:

    GET /api/packages/<package>
        [200] {"name": ..., "latest": {...}, "versions": [{...}, ...]}
        [404] unknown package

    GET /api/packages/<package>/versions/<version>
        [200] {"archive_url": ..., "pubspec": {...}, "version": ...}
        [404] unknown version

    GET /packages/<package>/versions/<version>.tar.gz
        [200] archive bytes, or [303] redirect to the backend's download URL

    GET  /api/packages/versions/new            -> {"url": ..., "fields": {...}}
    POST /api/packages/versions/newUpload      -> [302] .../newUploadFinish[?error=...]
    GET  /api/packages/versions/newUploadFinish -> {"success": ...} or [400] {"error": ...}

    POST   /api/packages/<package>/uploaders          body: email=<address>
    DELETE /api/packages/<package>/uploaders/<email>

The handler holds no per-request state. The finish step of an upload carries
no package identity, so the uploaded VersionRef is attached to the upload
response itself under UPLOADED_VERSION_KEY for middlewares to pick up.
"""

from __future__ import annotations

import functools
import json
import logging
import urllib.parse
from typing import Any, Dict, Optional

from aiohttp import BodyPartReader, hdrs, web
from yarl import URL

from constants import Constants
from repository.base import PackageRepository
from repository.errors import (
    ClientSideProblem,
    InvalidVersionString,
    LastUploaderRemove,
    MalformedUpload,
    PackageNotFound,
    Unauthorized,
    UploaderAlreadyExists,
)
from repository.models import VersionRef
from versioning.semver import is_semantic_version, select_latest, sort_versions

from .package_cache import PackageCache
from .routes import FINISH_UPLOAD_PATH, UPLOAD_PATH, Endpoint, ParsedRoute, RouteMatcher

logger = logging.getLogger(__name__)

UPLOADED_VERSION_KEY = "pubmirror_uploaded_version"

_dumps = functools.partial(json.dumps, default=str)

# Fixed client messages for error kinds whose backend message is not shown.
_FIXED_MESSAGES = {
    UploaderAlreadyExists: "Cannot add an already-existent uploader to package.",
    LastUploaderRemove: "Cannot remove last uploader of a package.",
}


class PubProtocolHandler:
    """Routes pub API requests onto one repository."""

    def __init__(
        self,
        repository: PackageRepository,
        cache: Optional[PackageCache] = None,
        base_url: Optional[str] = None,
        max_upload_bytes: int = Constants.MAX_UPLOAD_BYTES,
    ):
        """Initialize the handler.

        Args:
            repository: Repository answering all requests.
            cache: Optional cache for encoded package listings. Requires
                ``base_url``, since cached listings embed absolute archive URLs.
            base_url: Public URL of this server; defaults to the request origin.
            max_upload_bytes: Largest accepted archive upload.

        Raises:
            ValueError: If a cache is given without a base URL.
        """
        if cache is not None and not base_url:
            raise ValueError("A listing cache requires a fixed base_url.")
        self.repository = repository
        self.cache = cache
        self._base_url = base_url.rstrip("/") if base_url else None
        self._max_upload_bytes = max_upload_bytes
        self._routes = RouteMatcher()

    async def handle(self, request: web.Request) -> web.StreamResponse:
        """Entry point for every request not claimed by another route."""
        route = self._routes.match(request.method, request.rel_url.raw_path)
        if route is None:
            return _not_found()
        try:
            return await self._dispatch(request, route)
        except web.HTTPException:
            raise
        except Exception as exc:  # pylint: disable=broad-except
            return _error_response(exc)

    async def _dispatch(self, request: web.Request, route: ParsedRoute) -> web.StreamResponse:
        endpoint = route.endpoint
        base = self._base(request)

        if endpoint is Endpoint.DOWNLOAD:
            if not is_semantic_version(route.version):
                return _invalid_version(route.version)
            return await self._download(request, route.package, route.version)

        if endpoint is Endpoint.LIST_VERSIONS:
            return await self._list_versions(base, route.package)

        if endpoint is Endpoint.SHOW_VERSION:
            if not is_semantic_version(route.version):
                return _invalid_version(route.version)
            return await self._show_version(base, route.package, route.version)

        if endpoint in (Endpoint.START_UPLOAD, Endpoint.UPLOAD, Endpoint.FINISH_UPLOAD):
            if not self.repository.supports_upload:
                return _not_found()
            if endpoint is Endpoint.UPLOAD:
                return await self._upload_simple(request, base)
            if self.repository.supports_async_upload:
                if endpoint is Endpoint.START_UPLOAD:
                    return await self._start_upload_async(base)
                return await self._finish_upload_async(request)
            if endpoint is Endpoint.START_UPLOAD:
                return self._start_upload_simple(base)
            return self._finish_upload_simple(request)

        if not self.repository.supports_uploader_management:
            return _not_found()
        if endpoint is Endpoint.ADD_UPLOADER:
            return await self._add_uploader(route.package, await request.text())
        return await self._remove_uploader(route.package, route.email)

    def _base(self, request: web.Request) -> str:
        if self._base_url:
            return self._base_url
        return str(request.url.origin())

    # Metadata handlers.

    async def _list_versions(self, base: str, package: str) -> web.Response:
        if self.cache is not None:
            data = await self.cache.get_package_data(package)
            if data is not None:
                return _binary_json_response(data)

        versions = sort_versions([ref async for ref in self.repository.list_versions(package)])
        if not versions:
            return _not_found()

        latest = select_latest(versions)
        data = _dumps({
            "name": package,
            "latest": _version_json(base, latest),
            "versions": [_version_json(base, ref) for ref in versions],
        }).encode("utf-8")

        if self.cache is not None:
            await self.cache.set_package_data(package, data)
        return _binary_json_response(data)

    async def _show_version(self, base: str, package: str, version: str) -> web.Response:
        ref = await self.repository.lookup_version(package, version)
        if ref is None:
            return _not_found()
        return _json_response(_version_json(base, ref))

    # Download handlers.

    async def _download(self, request: web.Request, package: str, version: str) -> web.StreamResponse:
        if self.repository.supports_download_url:
            url = await self.repository.download_url(package, version)
            return web.Response(status=303, headers={hdrs.LOCATION: url})

        stream = await self.repository.download(package, version)
        response = web.StreamResponse(
            status=200, headers={hdrs.CONTENT_TYPE: "application/octet-stream"}
        )
        try:
            await response.prepare(request)
            async for chunk in stream:
                await response.write(chunk)
            await response.write_eof()
        except ConnectionResetError:
            logger.info("Client disconnected while downloading %s/%s.", package, version)
        except Exception as exc:  # pylint: disable=broad-except
            if not response.prepared:
                raise
            # Headers are out; the body is cut short and the connection dropped.
            logger.warning(
                "Download of %s/%s failed mid-stream: %s", package, version, exc, exc_info=True
            )
            response.force_close()
        finally:
            await stream.aclose()
        return response

    # Async upload handlers.

    async def _start_upload_async(self, base: str) -> web.Response:
        info = await self.repository.start_async_upload(base + FINISH_UPLOAD_PATH)
        return _json_response({"url": info.url, "fields": info.fields})

    async def _finish_upload_async(self, request: web.Request) -> web.Response:
        try:
            version = await self.repository.finish_async_upload(str(request.url))
        except ClientSideProblem as exc:
            logger.info("A problem occurred while finishing upload: %s", exc)
            return _bad_request(str(exc))
        await self._invalidate_listing(version)
        return _success("Successfully uploaded package.")

    # Simple upload handlers.

    def _start_upload_simple(self, base: str) -> web.Response:
        logger.info("Start simple upload.")
        return _json_response({"url": base + UPLOAD_PATH, "fields": {}})

    async def _upload_simple(self, request: web.Request, base: str) -> web.Response:
        logger.info("Perform simple upload.")
        if request.content_type != "multipart/form-data":
            return _bad_request("Upload must contain a multipart/form-data content type.")

        finish_url = base + FINISH_UPLOAD_PATH
        try:
            archive = await self._read_first_part(request)
            version = await self.repository.upload(archive)
        except ClientSideProblem as exc:
            logger.info("Upload rejected: %s", exc)
            return _found(str(URL(finish_url).with_query(error=str(exc))))
        except Exception as exc:  # pylint: disable=broad-except
            # The finish redirect is the only error channel the client reads.
            logger.warning("Error occurred during upload: %s", exc, exc_info=True)
            return _found(str(URL(finish_url).with_query(error=str(exc))))

        await self._invalidate_listing(version)
        logger.info("Redirecting to found url.")
        response = _found(finish_url)
        response[UPLOADED_VERSION_KEY] = version
        return response

    async def _read_first_part(self, request: web.Request) -> bytes:
        """Read the first multipart part; any further parts are drained and ignored."""
        reader = await request.multipart()
        archive: Optional[bytes] = None
        while True:
            part = await reader.next()
            if part is None:
                break
            if archive is not None or not isinstance(part, BodyPartReader):
                await part.release()
                continue
            archive = await self._read_part(part)
        if archive is None:
            raise MalformedUpload("Upload did not contain a package archive.")
        return archive

    async def _read_part(self, part: BodyPartReader) -> bytes:
        buffer = bytearray()
        while True:
            chunk = await part.read_chunk()
            if not chunk:
                break
            buffer.extend(chunk)
            if len(buffer) > self._max_upload_bytes:
                raise MalformedUpload(
                    f"Upload exceeds the limit of {self._max_upload_bytes} bytes."
                )
        return bytes(buffer)

    def _finish_upload_simple(self, request: web.Request) -> web.Response:
        error = request.query.get("error")
        if error is not None:
            logger.info("Finish simple upload (error: %s).", error)
            return _bad_request(error)
        return _success("Successfully uploaded package.")

    async def _invalidate_listing(self, version: VersionRef) -> None:
        if self.cache is not None:
            logger.info("Invalidating cache for package %s.", version.package_name)
            await self.cache.invalidate_package_data(version.package_name)

    # Uploader handlers.

    async def _add_uploader(self, package: str, body: str) -> web.Response:
        pairs = urllib.parse.parse_qsl(body, keep_blank_values=True)
        if len(pairs) == 1 and pairs[0][0] == "email" and pairs[0][1]:
            await self.repository.add_uploader(package, pairs[0][1])
            return _success("Successfully added uploader to package.")
        return _bad_request("Invalid request")

    async def _remove_uploader(self, package: str, email: str) -> web.Response:
        await self.repository.remove_uploader(package, email)
        return _success("Successfully removed uploader from package.")


def _version_json(base: str, ref: VersionRef) -> Dict[str, Any]:
    return {
        "archive_url": _download_url(base, ref.package_name, ref.version_string),
        "pubspec": ref.manifest,
        "version": ref.version_string,
    }


def _download_url(base: str, package: str, version: str) -> str:
    package = urllib.parse.quote(package, safe="")
    version = urllib.parse.quote(version, safe="")
    return f"{base}/packages/{package}/versions/{version}.tar.gz"


def _error_response(exc: Exception) -> web.Response:
    """Translate a failure into its HTTP response."""
    if isinstance(exc, PackageNotFound):
        return _not_found()
    if isinstance(exc, Unauthorized):
        return _unauthorized()
    if isinstance(exc, ClientSideProblem):
        return _bad_request(_FIXED_MESSAGES.get(type(exc), str(exc)))
    logger.warning("Unhandled error while processing request: %s", exc, exc_info=True)
    return _json_response({"error": {"message": str(exc)}}, status=500)


def _invalid_version(version: str) -> web.Response:
    return _error_response(InvalidVersionString(version))


def _not_found() -> web.Response:
    return web.Response(status=404)


def _found(location: str) -> web.Response:
    return web.Response(status=302, headers={hdrs.LOCATION: location})


def _success(message: str) -> web.Response:
    return _json_response({"success": {"message": message}})


def _unauthorized() -> web.Response:
    return _json_response({"error": {"message": "Unauthorized request."}}, status=403)


def _bad_request(message: str) -> web.Response:
    return _json_response({"error": {"message": message}}, status=400)


def _json_response(data: Any, status: int = 200) -> web.Response:
    return web.json_response(data, status=status, dumps=_dumps)


def _binary_json_response(data: bytes, status: int = 200) -> web.Response:
    return web.Response(status=status, body=data, content_type="application/json")
