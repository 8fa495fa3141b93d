"""HTTP server for the pub repository.

Exposes a :class:`PackageRepository` over the pub package API using aiohttp.
"""

from .app import PubServer, ServerConfig, build_repository, run_server_sync
from .handler import PubProtocolHandler
from .package_cache import InMemoryPackageCache, PackageCache

__all__ = [
    "PubServer",
    "ServerConfig",
    "build_repository",
    "run_server_sync",
    "PubProtocolHandler",
    "InMemoryPackageCache",
    "PackageCache",
]
