"""CLI entry point for the pub repository server.

This module turns parsed command-line arguments into a server configuration
and runs the server until interrupted.
"""

from __future__ import annotations

import ipaddress
import logging
import os
import sys
from typing import Any, Dict, Optional

import yaml

from common.logging_utils import configure_logging
from constants import Constants, ExitCodes

logger = logging.getLogger(__name__)


def _is_local_bind_host(host: str) -> bool:
    """Return True if host is a loopback/local bind target."""
    if not host:
        return False
    host_lower = host.strip().lower()
    if host_lower in ("localhost",):
        return True
    try:
        return ipaddress.ip_address(host_lower).is_loopback
    except ValueError:
        # Non-IP hostnames are treated as non-local unless explicitly allowed.
        return False


def _enforce_local_binding(host: str, allow_external: bool) -> None:
    """Exit unless the bind host is local or external binding was allowed."""
    if _is_local_bind_host(host):
        return
    if not allow_external:
        sys.stderr.write(
            "ERROR: Non-local bindings require --allow-external.\n"
        )
        sys.exit(ExitCodes.CONFIG_ERROR.value)
    logger.warning(
        "Binding server to non-local address (%s). Uploads are not authenticated.",
        host,
    )


def _load_config_file(config_path: Optional[str]) -> Dict[str, Any]:
    """Load server settings from a YAML file.

    Settings may sit at the top level or under a ``server`` section.

    Args:
        config_path: Path to the YAML config file.

    Returns:
        Settings dict; empty when no path was given.
    """
    if not config_path:
        return {}

    if not os.path.isfile(config_path):
        sys.stderr.write(f"ERROR: Config file not found: {config_path}\n")
        sys.exit(ExitCodes.FILE_ERROR.value)

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as e:
        sys.stderr.write(f"ERROR: Failed to read config {config_path}: {e}\n")
        sys.exit(ExitCodes.FILE_ERROR.value)
    except yaml.YAMLError as e:
        sys.stderr.write(f"ERROR: Failed to parse config {config_path}: {e}\n")
        sys.exit(ExitCodes.CONFIG_ERROR.value)

    if not isinstance(data, dict):
        return {}
    section = data.get("server", data)
    return section if isinstance(section, dict) else {}


def _setup_logging(args: Any) -> None:
    """Configure logging based on CLI arguments.

    Args:
        args: Parsed CLI arguments.
    """
    configure_logging(getattr(args, "LOG_LEVEL", None))

    log_file = getattr(args, "LOG_FILE", None)
    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(logging.Formatter(Constants.LOG_FORMAT))
        logging.getLogger().addHandler(file_handler)
        logger.info("Logging to file: %s", log_file)


def _banner(config: Any) -> str:
    url = config.base_url or f"http://{config.host}:{config.port}"
    upstream = "disabled (standalone)" if config.standalone else config.upstream_url
    return (
        f"\n"
        f"  pubmirror\n"
        f"  =========\n"
        f"  Listening: http://{config.host}:{config.port}\n"
        f"  Storage:   {os.path.abspath(config.directory)}\n"
        f"  Upstream:  {upstream}\n"
        f"\n"
        f"  Point the pub client at this server:\n"
        f"    export PUB_HOSTED_URL={url}\n"
        f"\n"
        f"  Press Ctrl+C to stop\n"
    )


def run_pub_server(args: Any) -> None:
    """Entry point for the serve command.

    Args:
        args: Parsed CLI arguments namespace.
    """
    _setup_logging(args)

    from server.app import ServerConfig, run_server_sync  # pylint: disable=import-outside-toplevel

    config_path = getattr(args, "CONFIG", None)
    file_config = _load_config_file(config_path)
    if file_config:
        logger.info("Loaded server config from: %s", config_path)

    config = ServerConfig.from_args(args, file_config)
    _enforce_local_binding(config.host, config.allow_external)

    print(_banner(config))

    run_server_sync(config)
