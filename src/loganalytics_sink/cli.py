#!/usr/bin/env python3
"""
CLI tool for checking a Log Analytics sink configuration.

Usage:
    python -m loganalytics_sink.cli --config sink.yaml token
    python -m loganalytics_sink.cli send "Deployment finished" --level Warning
    python -m loganalytics_sink.cli send "Order {OrderId} placed" -p OrderId=42

Without ``--config`` the LOGANALYTICS_* environment variables are used.
"""

from __future__ import annotations

import argparse
import logging
import sys

from colorama import Fore, Style, init as colorama_init

from .config import SinkConfig
from .diagnostics import disable_self_log, enable_self_log
from .errors import AuthError, ConfigError
from .events import LogEvent, LogLevel
from .sink import LogAnalyticsSink
from .token_cache import TokenCache
from .transport import HttpxTransport


def colorize(text: str, color: str) -> str:
    return f"{color}{text}{Style.RESET_ALL}"


def load_config(args) -> SinkConfig:
    if args.config:
        return SinkConfig.from_yaml(args.config)
    return SinkConfig.from_env()


def parse_properties(pairs: list[str]) -> dict[str, str]:
    """Parse ``NAME=VALUE`` pairs."""
    properties = {}
    for pair in pairs:
        name, sep, value = pair.partition("=")
        if not sep or not name:
            raise ValueError(f"Expected NAME=VALUE, got {pair!r}")
        properties[name] = value
    return properties


def cmd_token(args) -> int:
    """Check that the credential can obtain an access token."""
    config = load_config(args)
    transport = HttpxTransport(timeout=config.settings.request_timeout_seconds)
    tokens = TokenCache(config.credential, transport)

    try:
        tokens.prime(config.settings.token_timeout_seconds)
    except AuthError as e:
        print(colorize(f"Token request failed: {e}", Fore.RED), file=sys.stderr)
        return 1
    finally:
        tokens.close()
        transport.close()

    print(colorize("Access token acquired", Fore.GREEN))
    return 0


def cmd_send(args) -> int:
    """Send messages and wait for delivery."""
    config = load_config(args)
    level = LogLevel(args.level)
    properties = parse_properties(args.property)

    try:
        sink = LogAnalyticsSink.from_config(config, autostart=False)
    except AuthError as e:
        print(colorize(f"Token request failed: {e}", Fore.RED), file=sys.stderr)
        return 1

    with sink:
        for message in args.messages:
            sink.emit(LogEvent.create(message, level=level, properties=properties))
        delivered = sink.flush()

    stats = sink.dispatcher.stats
    if not delivered:
        print(
            colorize(f"Delivery failed ({stats['events_failed']} events)", Fore.RED),
            file=sys.stderr,
        )
        return 1

    print(colorize("Delivered", Fore.GREEN), f"{stats['events_delivered']} events")
    return 0


def main(argv: list[str] | None = None) -> int:
    colorama_init()

    parser = argparse.ArgumentParser(
        description="Log Analytics sink tool",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--config", "-c",
        help="YAML config file (default: LOGANALYTICS_* environment variables)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Show sink diagnostics",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    subparsers.add_parser("token", help="Request an access token")

    send_parser = subparsers.add_parser("send", help="Send one or more messages")
    send_parser.add_argument("messages", nargs="+", help="Message templates to send")
    send_parser.add_argument(
        "--level", "-l",
        default=LogLevel.INFORMATION.value,
        choices=[level.value for level in LogLevel],
        help="Event level",
    )
    send_parser.add_argument(
        "--property", "-p",
        action="append",
        default=[],
        metavar="NAME=VALUE",
        help="Event property (repeatable)",
    )

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    self_log = enable_self_log(level=logging.DEBUG if args.verbose else logging.WARNING)

    try:
        if args.command == "token":
            return cmd_token(args)
        elif args.command == "send":
            return cmd_send(args)
    except (ConfigError, ValueError, OSError) as e:
        print(colorize(f"Error: {e}", Fore.RED), file=sys.stderr)
        return 1
    finally:
        disable_self_log(self_log)

    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
