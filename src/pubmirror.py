"""pubmirror - pub package repository server with a read-through pub.dev mirror.

    Returns:
        int: Exit code
"""
import sys

from args import parse_args
from cli_serve import run_pub_server
from constants import ExitCodes


def main(argv=None):
    """Main function of the program."""
    args = parse_args(argv)
    run_pub_server(args)
    return ExitCodes.SUCCESS.value


if __name__ == "__main__":
    sys.exit(main())
