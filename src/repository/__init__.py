"""Package repositories: backend contract, storage backends and the composite read-through store."""

from .errors import (
    ClientSideProblem,
    GenericProcessingError,
    InvalidVersionString,
    LastUploaderRemove,
    MalformedUpload,
    PackageNotFound,
    RepositoryError,
    Unauthorized,
    UploaderAlreadyExists,
    VersionConflict,
)
from .models import AsyncUploadInfo, VersionRef
from .base import (
    AsyncUploadCapable,
    DownloadUrlCapable,
    PackageRepository,
    UploadCapable,
    UploaderManagementCapable,
)

__all__ = [
    "AsyncUploadCapable",
    "AsyncUploadInfo",
    "ClientSideProblem",
    "DownloadUrlCapable",
    "GenericProcessingError",
    "InvalidVersionString",
    "LastUploaderRemove",
    "MalformedUpload",
    "PackageNotFound",
    "PackageRepository",
    "RepositoryError",
    "Unauthorized",
    "UploadCapable",
    "UploaderAlreadyExists",
    "UploaderManagementCapable",
    "VersionConflict",
    "VersionRef",
]
