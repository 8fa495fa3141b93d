"""Tests for pub API route matching."""

import pytest

from server.routes import Endpoint, RouteMatcher


class TestRouteMatcher:
    """Tests for RouteMatcher."""

    def setup_method(self):
        """Set up test fixtures."""
        self.matcher = RouteMatcher()

    def test_list_versions(self):
        route = self.matcher.match("GET", "/api/packages/foo")
        assert route.endpoint is Endpoint.LIST_VERSIONS
        assert route.package == "foo"

    def test_show_version(self):
        route = self.matcher.match("GET", "/api/packages/foo/versions/1.0.0")
        assert route.endpoint is Endpoint.SHOW_VERSION
        assert (route.package, route.version) == ("foo", "1.0.0")

    def test_download(self):
        route = self.matcher.match("GET", "/packages/foo/versions/1.0.0-dev.tar.gz")
        assert route.endpoint is Endpoint.DOWNLOAD
        assert (route.package, route.version) == ("foo", "1.0.0-dev")

    def test_percent_encoded_components(self):
        route = self.matcher.match("GET", "/packages/foo/versions/1.0.0%2Bbuild.tar.gz")
        assert route.version == "1.0.0+build"

    @pytest.mark.parametrize("path,endpoint", [
        ("/api/packages/versions/new", Endpoint.START_UPLOAD),
        ("/api/packages/versions/newUploadFinish", Endpoint.FINISH_UPLOAD),
    ])
    def test_upload_paths_win_over_package_routes(self, path, endpoint):
        assert self.matcher.match("GET", path).endpoint is endpoint

    def test_upload(self):
        assert self.matcher.match("POST", "/api/packages/versions/newUpload").endpoint is Endpoint.UPLOAD

    def test_add_uploader(self):
        route = self.matcher.match("POST", "/api/packages/foo/uploaders")
        assert route.endpoint is Endpoint.ADD_UPLOADER
        assert route.package == "foo"

    def test_remove_uploader(self):
        route = self.matcher.match("delete", "/api/packages/foo/uploaders/a%40example.com")
        assert route.endpoint is Endpoint.REMOVE_UPLOADER
        assert route.email == "a@example.com"

    @pytest.mark.parametrize("method,path", [
        ("GET", "/"),
        ("GET", "/api/packages"),
        ("GET", "/api/packages/foo/versions"),
        ("GET", "/packages/foo/versions/1.0.0.zip"),
        ("PUT", "/api/packages/foo"),
        ("POST", "/api/packages/foo"),
        ("DELETE", "/api/packages/foo/uploaders"),
    ])
    def test_unmatched(self, method, path):
        assert self.matcher.match(method, path) is None
