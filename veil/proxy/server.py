"""
Relay Server Entry Point

Standalone server for running Veil on a UNIX domain socket.
"""

import argparse
import logging
import shutil
import sys
from pathlib import Path
from typing import List, Optional

import structlog
import uvicorn

from veil.config.settings import get_settings
from veil.proxy.config import ProxyConfig
from veil.proxy.gateway import create_proxy_app

logger = structlog.get_logger(__name__)

USAGE = "%(prog)s <path-to-target-socket> <path-to-exposed-socket> <path-to-access-rules-list>"


def configure_logging(level: str = "INFO") -> None:
    """Configure structured logging over the stdlib logging module."""
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, level.upper(), logging.INFO),
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="veil",
        usage=USAGE,
        description="Relay HTTP requests between UNIX sockets, filtered by an access-rules list",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        add_help=False,
        epilog="""
Access rules are read one per line as METHOD~path, e.g.:
  GET~/status
  POST~/containers/create

Environment:
  VEIL_LOG_LEVEL, VEIL_UPSTREAM_TIMEOUT, VEIL_ROUTING_MODE,
  VEIL_MIRROR_STATUS_CODES, VEIL_FORWARD_QUERY_STRING, VEIL_ACCESS_LOG
        """,
    )
    parser.add_argument("-h", "--help", action="store_true", help="usage help")
    parser.add_argument("paths", nargs="*", help=argparse.SUPPRESS)
    return parser


def remove_stale_socket(socket_path: str) -> None:
    """Remove whatever already exists at the exposed socket path."""
    path = Path(socket_path)
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
    else:
        path.unlink(missing_ok=True)


def run_proxy_server(config: ProxyConfig, log_level: str = "info") -> None:
    """
    Run the relay on the exposed UNIX socket.

    Args:
        config: Relay configuration
        log_level: uvicorn log level

    Binding failures are fatal; uvicorn exits the process.
    """
    logger.info(
        "launching_unix_socket_http_server",
        exposed_socket=config.exposed_socket_path,
        target_socket=config.target_socket_path,
        rules=config.rules_path,
    )

    app = create_proxy_app(config)
    remove_stale_socket(config.exposed_socket_path)

    uvicorn.run(
        app,
        uds=config.exposed_socket_path,
        log_level=log_level,
        access_log=config.access_log,
    )


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the relay server."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.help or len(args.paths) != 3:
        parser.print_help(sys.stderr)
        return 1

    settings = get_settings()
    configure_logging(settings.log_level)

    target_socket, exposed_socket, rules_path = args.paths
    config = ProxyConfig.from_settings(settings, target_socket, exposed_socket, rules_path)

    errors = config.validate()
    if errors:
        logger.error("configuration_invalid", errors=errors)
        return 1

    run_proxy_server(config, log_level=settings.log_level.lower())
    return 0


if __name__ == "__main__":
    sys.exit(main())
