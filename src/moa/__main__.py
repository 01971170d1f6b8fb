"""
=============================================================================
MOA CLI ENTRY POINT
=============================================================================

Runs the greeting app through the dispatcher and prints each response.
There is no socket layer: requests are built in-process, the way a hosting
layer would hand them over.

=============================================================================
USAGE
=============================================================================

    # One authorized request → 200 Hello, Ada
    python -m moa

    # Missing credentials → 401 Unauthorized
    python -m moa --auth ""

    # Name kept in a session instead of global scope
    python -m moa --session s1 --name Grace

    # 50 requests from 8 threads, JSON access log
    python -m moa --requests 50 --concurrent 8 --log-format json

=============================================================================
"""

from concurrent.futures import ThreadPoolExecutor
import argparse
import logging
import sys

from . import __version__
from .config import EngineConfig
from .demo import AUTH_HEADER, build_greeting_app
from .events import LoggingListener
from .http.request import RequestDescriptor
from .state.store import Scope


logger = logging.getLogger("moa")


def _setup_logging(config: EngineConfig) -> None:
    level = getattr(logging, config.log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logging.getLogger("moa").setLevel(level)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="moa",
        description="Route requests through the greeting pipeline",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m moa                               # GET /greet as Ada
  python -m moa --auth ""                     # no credentials, 401
  python -m moa --session s1 --name Grace     # name stored per session
  python -m moa --requests 50 --concurrent 8  # concurrent load
        """
    )

    # ─────────────────────────────────────────────────────────────────────
    # REQUEST ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--auth", "-a",
        default="valid",
        help="Value of the auth header; empty string sends none (default: valid)"
    )

    parser.add_argument(
        "--name", "-n",
        default="Ada",
        help="Name to store before greeting (default: Ada)"
    )

    parser.add_argument(
        "--session", "-s",
        default=None,
        help="Session id; the name is stored in this session instead of globally"
    )

    # ─────────────────────────────────────────────────────────────────────
    # LOAD ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--requests", "-r",
        type=int,
        default=1,
        help="Number of requests to send (default: 1)"
    )

    parser.add_argument(
        "--concurrent", "-c",
        type=int,
        default=1,
        help="Number of threads sending requests (default: 1)"
    )

    parser.add_argument(
        "--timeout", "-t",
        type=float,
        default=None,
        help="Per-request timeout in seconds (default: none)"
    )

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--log-level", "-l",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: MOA_LOG_LEVEL or INFO)"
    )

    parser.add_argument(
        "--log-format",
        default=None,
        choices=["text", "json"],
        help="Access log format (default: MOA_LOG_FORMAT or text)"
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"%(prog)s {__version__}"
    )

    return parser


def main(argv=None) -> int:
    """Parse arguments, build the app, route the requests."""
    args = build_parser().parse_args(argv)

    if args.requests < 1 or args.concurrent < 1:
        print("Error: --requests and --concurrent must be >= 1", file=sys.stderr)
        return 2

    # CLI arguments override environment variables
    config = EngineConfig.from_env()
    if args.log_level:
        config.log_level = args.log_level
    if args.log_format:
        config.log_format = args.log_format
    if args.timeout is not None:
        config.request_timeout = args.timeout

    try:
        config.validate()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    _setup_logging(config)

    app = build_greeting_app(config)
    app.add_listener(LoggingListener(config.log_format))

    if args.session:
        app.store.set(Scope.SESSION, "name", args.name, session_id=args.session)
    else:
        app.store.set(Scope.GLOBAL, "name", args.name)

    headers = {AUTH_HEADER: args.auth} if args.auth else {}

    def send(_):
        request = RequestDescriptor.build(
            "GET", "/greet",
            headers=headers,
            session_id=args.session,
            client_address=("127.0.0.1", 0),
        )
        return app.route(request)

    with ThreadPoolExecutor(max_workers=args.concurrent) as pool:
        responses = list(pool.map(send, range(args.requests)))

    for response in responses:
        print(f"{int(response.status)} {response.text_body}")

    logger.debug(f"Routed {len(responses)} request(s)")
    return 0 if all(200 <= r.status < 300 for r in responses) else 1


if __name__ == "__main__":
    sys.exit(main())
