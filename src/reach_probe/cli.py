"""Command-line interface for reach-probe."""

from __future__ import annotations

import argparse
import getpass
from dataclasses import dataclass
from typing import Optional

from .config import AppConfig, load_config
from .probe import Classification, ProbeOutcome, ProbeRequest, run_probe
from .utils.logging import configure_logging, get_logger

logger = get_logger(__name__)


@dataclass
class CLIContext:
    """Context captured from CLI arguments."""

    config: AppConfig


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="reach-probe",
        description="Check that a remote host is reachable and accepts SSH credentials.",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to a JSON config file overriding defaults.",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        help="Logging level (DEBUG, INFO, WARNING, ...).",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    test_parser = subparsers.add_parser(
        "test", help="Probe a single host and print the outcome"
    )
    test_parser.add_argument("--host", required=True, help="Target host or IP address")
    test_parser.add_argument("--port", default=None, help="SSH port (default: 22)")
    test_parser.add_argument("--user", required=True, help="SSH username")
    test_parser.add_argument(
        "--password", default=None,
        help="SSH password; omit to authenticate through SSH_AUTH_SOCK",
    )
    test_parser.add_argument(
        "--ask-password", action="store_true",
        help="Prompt for the SSH password instead of passing it on the command line",
    )
    test_parser.add_argument(
        "--timeout", type=float, default=None,
        help="Overall probe timeout in seconds",
    )

    serve_parser = subparsers.add_parser(
        "serve", help="Run the HTTP endpoint (POST /api/connection/test)"
    )
    serve_parser.add_argument("--bind", default=None, help="Address to listen on")
    serve_parser.add_argument("--port", type=int, default=None, help="Port to listen on")

    return parser


def _build_context(args: argparse.Namespace) -> CLIContext:
    config = load_config(args.config)
    if args.log_level:
        config.logging.level = args.log_level
    configure_logging(config.logging.level)
    return CLIContext(config=config)


def print_outcome(outcome: ProbeOutcome) -> None:
    status_emoji = {
        Classification.SUCCEEDED: "✅",
        Classification.TIMED_OUT: "⏱️",
        Classification.VALIDATION_FAILED: "⚠️",
    }.get(outcome.classification, "❌")
    print(f"{status_emoji} {outcome.classification.value}: {outcome.message}")
    if outcome.hint:
        print(f"   💡 {outcome.hint}")
    if outcome.stdout:
        print(f"   stdout: {outcome.stdout}")
    print(f"   elapsed: {outcome.elapsed:.2f}s")


def handle_test_command(args: argparse.Namespace, context: CLIContext) -> int:
    probe_config = context.config.probe
    if args.timeout is not None:
        probe_config.overall_timeout = args.timeout
        probe_config.connect_timeout = min(probe_config.connect_timeout, args.timeout)

    password = args.password
    if args.ask_password:
        password = getpass.getpass(f"Password for {args.user}@{args.host}: ")

    request = ProbeRequest.from_payload(
        {
            "ipAddress": args.host,
            "username": args.user,
            "password": password,
            "port": args.port,
        },
        probe_config,
    )
    outcome = run_probe(request, config=probe_config)
    print_outcome(outcome)
    return 0 if outcome.succeeded else 1


def handle_serve_command(args: argparse.Namespace, context: CLIContext) -> int:
    from werkzeug.serving import make_server

    from .api import create_app

    server_config = context.config.server
    host = args.bind or server_config.host
    port = args.port or server_config.port

    app = create_app(context.config)
    server = make_server(host, port, app, threaded=True)
    logger.info("Listening on http://%s:%d", host, port)
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        logger.info("Shutting down")
    finally:
        server.server_close()
    return 0


def dispatch_command(args: argparse.Namespace) -> int:
    context = _build_context(args)

    if args.command == "test":
        return handle_test_command(args, context)

    if args.command == "serve":
        return handle_serve_command(args, context)

    raise ValueError(f"Unsupported command: {args.command}")


def run_cli(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    return dispatch_command(args)
