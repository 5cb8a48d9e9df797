"""
Command-line interface for dbdiff.

Available commands:
- run: Compare databases on two servers, print "true" or "false"
- report: Render a saved JSON report
"""

import logging
import sys

from ..errors import ConfigError
from ..utils.logging import setup_logging, shutdown_logging
from .commands import build_config, cmd_report, cmd_run, resolve_url
from .parser import create_parser

logger = logging.getLogger(__name__)

EXIT_CONFIG_ERROR = 2


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the dbdiff CLI"""
    parser = create_parser()
    args = parser.parse_args(argv)

    setup_logging(level=args.log_level, log_file=args.log_file, json_format=args.log_json)

    try:
        if args.command == "run":
            return cmd_run(args)
        if args.command == "report":
            return cmd_report(args)

        parser.print_help(sys.stderr)
        return EXIT_CONFIG_ERROR

    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        return EXIT_CONFIG_ERROR

    finally:
        shutdown_logging()


__all__ = [
    "main",
    "build_config",
    "cmd_run",
    "cmd_report",
    "create_parser",
    "resolve_url",
]
