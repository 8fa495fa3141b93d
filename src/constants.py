"""Constants used in the project."""

from enum import Enum


class ExitCodes(Enum):
    """Exit codes for the program.

    Args:
        Enum (int): Exit codes for the program.
    """

    SUCCESS = 0
    FILE_ERROR = 1
    CONFIG_ERROR = 2


class Constants:  # pylint: disable=too-few-public-methods
    """General constants used in the project.
    Data holder for configuration constants; not intended to provide behavior.
    """

    DEFAULT_UPSTREAM_URL = "https://pub.dev"
    DEFAULT_DIRECTORY = "pubmirror-repository-data"
    DEFAULT_HOST = "localhost"
    DEFAULT_PORT = 8080
    LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"
    ENV_LOG_LEVEL = "PUBMIRROR_LOG_LEVEL"
    REQUEST_TIMEOUT = 30  # Socket read timeout in seconds for upstream calls
    USER_AGENT = "pubmirror/1.0"

    # Disk layout
    MANIFEST_FILE = "pubspec.yaml"
    ARCHIVE_FILE = "package.tar.gz"
    UPLOADERS_FILE = "uploaders.json"
    STREAM_CHUNK_SIZE = 64 * 1024

    # Uploads
    MAX_UPLOAD_BYTES = 100 * 1024 * 1024
    RESPONSE_CACHE_TTL = 0  # 0 disables the listing response cache

    HEALTH_PATH = "/_pubmirror/health"
