"""Route matching for the pub repository HTTP API."""

from __future__ import annotations

import re
import urllib.parse
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class Endpoint(Enum):
    """Operations exposed by the protocol handler."""

    LIST_VERSIONS = "list_versions"
    SHOW_VERSION = "show_version"
    DOWNLOAD = "download"
    START_UPLOAD = "start_upload"
    UPLOAD = "upload"
    FINISH_UPLOAD = "finish_upload"
    ADD_UPLOADER = "add_uploader"
    REMOVE_UPLOADER = "remove_uploader"


@dataclass
class ParsedRoute:
    """Result of matching a request against the route table."""

    endpoint: Endpoint
    package: Optional[str] = None
    version: Optional[str] = None
    email: Optional[str] = None


NEW_UPLOAD_PATH = "/api/packages/versions/new"
UPLOAD_PATH = "/api/packages/versions/newUpload"
FINISH_UPLOAD_PATH = "/api/packages/versions/newUploadFinish"


class RouteMatcher:
    """Maps (method, path) pairs onto endpoints.

    Path patterns:
        GET    /api/packages/{package}
        GET    /api/packages/{package}/versions/{version}
        GET    /packages/{package}/versions/{version}.tar.gz
        GET    /api/packages/versions/new
        POST   /api/packages/versions/newUpload
        GET    /api/packages/versions/newUploadFinish
        POST   /api/packages/{package}/uploaders
        DELETE /api/packages/{package}/uploaders/{email}
    """

    _PACKAGE_PATTERN = re.compile(r"^/api/packages/([^/]+)$")
    _VERSION_PATTERN = re.compile(r"^/api/packages/([^/]+)/versions/([^/]+)$")
    _DOWNLOAD_PATTERN = re.compile(r"^/packages/([^/]+)/versions/([^/]+)\.tar\.gz$")
    _ADD_UPLOADER_PATTERN = re.compile(r"^/api/packages/([^/]+)/uploaders$")
    _REMOVE_UPLOADER_PATTERN = re.compile(r"^/api/packages/([^/]+)/uploaders/([^/]+)$")

    def match(self, method: str, path: str) -> Optional[ParsedRoute]:
        """Match a request.

        Args:
            method: HTTP method.
            path: Raw (still percent-encoded) URL path.

        Returns:
            ParsedRoute, or None when no endpoint applies.
        """
        method = method.upper()
        if method == "GET":
            return self._match_get(path)
        if method == "POST":
            if path == UPLOAD_PATH:
                return ParsedRoute(Endpoint.UPLOAD)
            m = self._ADD_UPLOADER_PATTERN.match(path)
            if m:
                return ParsedRoute(Endpoint.ADD_UPLOADER, package=_decode(m.group(1)))
            return None
        if method == "DELETE":
            m = self._REMOVE_UPLOADER_PATTERN.match(path)
            if m:
                return ParsedRoute(
                    Endpoint.REMOVE_UPLOADER,
                    package=_decode(m.group(1)),
                    email=_decode(m.group(2)),
                )
        return None

    def _match_get(self, path: str) -> Optional[ParsedRoute]:
        if path == NEW_UPLOAD_PATH:
            return ParsedRoute(Endpoint.START_UPLOAD)
        if path == FINISH_UPLOAD_PATH:
            return ParsedRoute(Endpoint.FINISH_UPLOAD)

        m = self._DOWNLOAD_PATTERN.match(path)
        if m:
            return ParsedRoute(Endpoint.DOWNLOAD, package=_decode(m.group(1)), version=_decode(m.group(2)))

        m = self._PACKAGE_PATTERN.match(path)
        if m:
            return ParsedRoute(Endpoint.LIST_VERSIONS, package=_decode(m.group(1)))

        m = self._VERSION_PATTERN.match(path)
        if m:
            return ParsedRoute(Endpoint.SHOW_VERSION, package=_decode(m.group(1)), version=_decode(m.group(2)))
        return None


def _decode(component: str) -> str:
    return urllib.parse.unquote(component)
