"""
=============================================================================
STREAM SERVER CLI ENTRY POINT
=============================================================================

    # Stream a command's stdout to the first browser that asks
    python -m streamserver "./stream"

    # Raw CD-quality audio from the default capture device
    python -m streamserver "arecord -f cd -t raw"

    # Another port, verbose logs
    python -m streamserver "yes" --port 3000 --log-level DEBUG

Client side:

    fetch("http://localhost:8080")

Every status message is printed to stdout as it happens. The process exits
once one GET has been served (0), or when setup fails (1).

=============================================================================
"""

import argparse
import logging
import sys

from . import __version__
from .config import ServerConfig
from .errors import ServerError
from .server import serve


logger = logging.getLogger("streamserver")


def print_status(message: str):
    """Status callback for the CLI."""
    print(f"[status] {message}", flush=True)


def setup_logging(level_name: str):
    """Configure logging the same way for every CLI run."""
    level = getattr(logging, level_name.upper(), logging.INFO)

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    logging.getLogger("streamserver").setLevel(level)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="streamserver",
        description="Serve the live stdout of a shell command over HTTP (one GET per run)",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m streamserver "./stream"                   # Defaults: 0.0.0.0:8080
  python -m streamserver "arecord -f cd -t raw"       # Live audio
  python -m streamserver "yes" --port 3000            # Custom port
  STREAM_PORT=3000 python -m streamserver "yes"       # Port from environment
        """,
    )

    parser.add_argument(
        "command",
        help="Shell command whose stdout becomes the response body",
    )

    parser.add_argument(
        "--host", "-H",
        default=None,
        help="Address to bind to (default: 0.0.0.0, or $STREAM_HOST)",
    )

    parser.add_argument(
        "--port", "-p",
        type=int,
        default=None,
        help="Port to listen on (default: 8080, or $STREAM_PORT)",
    )

    parser.add_argument(
        "--chunk-size", "-c",
        type=int,
        default=None,
        help="Maximum bytes per relay write (default: 1764)",
    )

    parser.add_argument(
        "--log-level", "-l",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Logging level (default: INFO, or $STREAM_LOG_LEVEL)",
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"streamserver {__version__}",
    )

    return parser


def main(argv=None) -> int:
    """
    Parse arguments, build the config, serve one GET.

    Returns:
        Process exit status.
    """
    args = build_parser().parse_args(argv)

    try:
        # CLI flags win over environment, environment over defaults
        config = ServerConfig.from_env().with_overrides(
            host=args.host,
            port=args.port,
            chunk_size=args.chunk_size,
            log_level=args.log_level,
        )
        config.validate()
    except ValueError as e:
        print(f"Error: invalid configuration: {e}", file=sys.stderr)
        return 1

    setup_logging(config.log_level)

    try:
        result = serve(args.command, print_status, config)
    except ServerError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        logger.info("Received keyboard interrupt")
        return 130

    if result is not None:
        logger.info(f"Served {result.bytes_sent} bytes ({result.outcome.value})")
    return 0


if __name__ == "__main__":
    sys.exit(main())
