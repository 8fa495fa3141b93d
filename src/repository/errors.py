"""Failure kinds raised by package repositories.

The set is closed: backends raise only these, and the protocol handler
translates each kind to an HTTP response in one place.
"""

from __future__ import annotations


class RepositoryError(Exception):
    """Base class for all repository failures."""

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class PackageNotFound(RepositoryError):
    """The requested package or version does not exist in this backend."""


class Unauthorized(RepositoryError):
    """The caller is not allowed to perform the operation."""


class ClientSideProblem(RepositoryError):
    """A failure caused by the request itself rather than the server."""


class InvalidVersionString(ClientSideProblem):
    """A version string that is not a semantic version."""

    def __init__(self, version: str):
        super().__init__(f'Version string "{version}" is not a valid semantic version.')
        self.version = version


class MalformedUpload(ClientSideProblem):
    """Uploaded data is not a usable package archive."""


class VersionConflict(ClientSideProblem):
    """The (package, version) pair already exists."""

    def __init__(self, package: str, version: str):
        super().__init__(f"`{package}` already exists at version `{version}`.")
        self.package = package
        self.version = version


class UploaderAlreadyExists(ClientSideProblem):
    """The uploader is already registered for the package."""


class LastUploaderRemove(ClientSideProblem):
    """Removing the uploader would leave the package without one."""


class GenericProcessingError(ClientSideProblem):
    """Any other client-visible processing failure; the message is passed through."""
