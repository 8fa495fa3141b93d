"""Tests for version ordering, VersionRef identity and archive parsing."""

import random

import pytest

from repository.archive import extract_manifest, is_safe_component, parse_manifest_identity
from repository.errors import InvalidVersionString, MalformedUpload
from repository.models import VersionRef
from versioning.semver import is_semantic_version, parse_version, select_latest, sort_versions

from conftest import build_archive


def _refs(*versions):
    return [VersionRef("foo", v, f"name: foo\nversion: {v}\n") for v in versions]


class TestVersionOrdering:
    """Tests for sorting and latest selection."""

    def test_sort_is_semantic_not_lexical(self):
        """1.10.0 sorts after 1.9.0."""
        ordered = sort_versions(_refs("1.10.0", "1.9.0", "0.1.0"))
        assert [r.version_string for r in ordered] == ["0.1.0", "1.9.0", "1.10.0"]

    def test_sort_drops_invalid_versions(self):
        ordered = sort_versions(_refs("1.0.0", "not-a-version"))
        assert [r.version_string for r in ordered] == ["1.0.0"]

    def test_prerelease_sorts_before_release(self):
        ordered = sort_versions(_refs("2.0.0", "2.0.0-beta"))
        assert [r.version_string for r in ordered] == ["2.0.0-beta", "2.0.0"]

    def test_latest_skips_prereleases(self):
        """The highest stable version wins over a newer prerelease."""
        latest = select_latest(sort_versions(_refs("1.0.0", "1.1.0", "2.0.0-beta")))
        assert latest.version_string == "1.1.0"

    def test_latest_falls_back_to_highest_prerelease(self):
        latest = select_latest(sort_versions(_refs("1.0.0-alpha", "0.9.0-beta")))
        assert latest.version_string == "1.0.0-alpha"

    @pytest.mark.parametrize("seed", range(10))
    def test_build_metadata_orders_deterministically(self, seed):
        """Builds of one version sort numerically whatever the input order."""
        refs = _refs("1.0.0+1", "1.0.0+2", "1.0.0+10", "1.0.0", "0.9.0+3")
        random.Random(seed).shuffle(refs)

        ordered = sort_versions(refs)

        assert [r.version_string for r in ordered] == ["0.9.0+3", "1.0.0", "1.0.0+1", "1.0.0+2", "1.0.0+10"]
        assert select_latest(ordered).version_string == "1.0.0+10"

    def test_latest_of_nothing(self):
        assert select_latest([]) is None

    def test_semantic_version_validation(self):
        assert is_semantic_version("1.2.3")
        assert is_semantic_version("1.2.3-dev+build.4")
        assert not is_semantic_version("1.2")
        assert not is_semantic_version("abc")

    def test_parse_version_raises_typed_error(self):
        with pytest.raises(InvalidVersionString) as excinfo:
            parse_version("abc")
        assert str(excinfo.value) == 'Version string "abc" is not a valid semantic version.'


class TestVersionRef:
    """Tests for VersionRef identity."""

    def test_descriptor_ignored_for_equality(self):
        a = VersionRef("foo", "1.0.0", "name: foo\nversion: 1.0.0\n")
        b = VersionRef("foo", "1.0.0", '{"name": "foo", "version": "1.0.0"}')
        assert a == b
        assert len({a, b}) == 1

    def test_different_versions_differ(self):
        assert VersionRef("foo", "1.0.0", "") != VersionRef("foo", "1.0.1", "")

    def test_manifest_reads_yaml_and_json(self):
        assert VersionRef("foo", "1.0.0", "name: foo\n").manifest == {"name": "foo"}
        assert VersionRef("foo", "1.0.0", '{"name": "foo"}').manifest == {"name": "foo"}

    def test_str(self):
        assert str(VersionRef("foo", "1.0.0", "")) == "foo@1.0.0"


class TestArchive:
    """Tests for manifest extraction from uploaded archives."""

    def test_extract_manifest(self):
        text = extract_manifest(build_archive("foo", "1.0.0"))
        assert parse_manifest_identity(text) == ("foo", "1.0.0")

    def test_extract_manifest_with_dot_prefix(self):
        text = extract_manifest(build_archive("foo", "1.0.0", prefix="./"))
        assert "name: foo" in text

    def test_nested_manifest_is_not_used(self):
        with pytest.raises(MalformedUpload) as excinfo:
            extract_manifest(build_archive("foo", "1.0.0", prefix="foo/"))
        assert str(excinfo.value) == "Did not find any pubspec.yaml file in upload. Aborting."

    def test_garbage_is_malformed(self):
        with pytest.raises(MalformedUpload) as excinfo:
            extract_manifest(b"this is not an archive")
        assert "Could not read package archive" in str(excinfo.value)

    def test_manifest_without_version(self):
        with pytest.raises(MalformedUpload):
            parse_manifest_identity("name: foo\n")

    def test_manifest_with_invalid_version(self):
        with pytest.raises(MalformedUpload):
            parse_manifest_identity("name: foo\nversion: one\n")

    def test_manifest_must_be_mapping(self):
        with pytest.raises(MalformedUpload):
            parse_manifest_identity("- foo\n- bar\n")

    def test_unsafe_name_rejected(self):
        with pytest.raises(MalformedUpload):
            parse_manifest_identity("name: ../evil\nversion: 1.0.0\n")

    def test_safe_components(self):
        assert is_safe_component("foo_bar")
        assert is_safe_component("1.0.0+build")
        assert not is_safe_component("")
        assert not is_safe_component("..")
        assert not is_safe_component(".hidden")
        assert not is_safe_component("a/b")
