"""Argument parsing functionality for pubmirror."""

import argparse
from constants import Constants


def parse_args(argv=None):
    """Parses the arguments passed to the program.

    Args:
        argv (list, optional): Argument list; defaults to ``sys.argv[1:]``.

    Returns:
        argparse.Namespace: Parsed arguments.
    """
    parser = argparse.ArgumentParser(
        prog="pubmirror",
        description=(
            "pubmirror - pub package repository with a read-through mirror of pub.dev"
        ),
        add_help=True,
    )

    parser.add_argument("-d", "--directory",
                        dest="DIRECTORY",
                        help=f"Directory holding uploaded and mirrored packages (default: {Constants.DEFAULT_DIRECTORY})",
                        action="store",
                        type=str)
    parser.add_argument("-H", "--host",
                        dest="HOST",
                        help=f"Host to bind to (default: {Constants.DEFAULT_HOST})",
                        action="store",
                        type=str)
    parser.add_argument("-p", "--port",
                        dest="PORT",
                        help=f"Port to listen on (default: {Constants.DEFAULT_PORT})",
                        action="store",
                        type=int)
    parser.add_argument("-s", "--standalone",
                        dest="STANDALONE",
                        help="Serve local packages only; never contact the upstream repository.",
                        action="store_true")
    parser.add_argument("--upstream",
                        dest="UPSTREAM",
                        help=f"Upstream repository URL (default: {Constants.DEFAULT_UPSTREAM_URL})",
                        action="store",
                        type=str)
    parser.add_argument("--timeout",
                        dest="TIMEOUT",
                        help=f"Upstream connect/read timeout in seconds (default: {Constants.REQUEST_TIMEOUT})",
                        action="store",
                        type=int)
    parser.add_argument("--webhook",
                        dest="WEBHOOK",
                        help="URL notified with a JSON message after each successful upload",
                        action="store",
                        type=str)
    parser.add_argument("--base-url",
                        dest="BASE_URL",
                        help="Public URL of this server, used in archive and upload URLs",
                        action="store",
                        type=str)
    parser.add_argument("--cache-ttl",
                        dest="CACHE_TTL",
                        help="Cache encoded package listings for this many seconds (0 disables)",
                        action="store",
                        type=int)
    parser.add_argument("--allow-external",
                        dest="ALLOW_EXTERNAL",
                        help="Allow binding to non-loopback addresses.",
                        action="store_true")
    parser.add_argument("--config",
                        dest="CONFIG",
                        help="YAML file with server settings (command-line options take precedence)",
                        action="store",
                        type=str)
    parser.add_argument("--loglevel",
                        dest="LOG_LEVEL",
                        help="Set the logging level (default: $PUBMIRROR_LOG_LEVEL or INFO)",
                        action="store",
                        type=str,
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'])
    parser.add_argument("--logfile",
                        dest="LOG_FILE",
                        help="Log output file",
                        action="store",
                        type=str)

    return parser.parse_args(argv)
