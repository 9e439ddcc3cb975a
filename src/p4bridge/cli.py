"""p4bridge command-line entry point.

Runs one p4 command and prints the result as JSON.

Usage:
    p4bridge info
    p4bridge --timeout 5000 files //depot/...
    p4bridge change -o | p4bridge --input - change -i
    p4bridge --raw --sync describe -s 1234
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import shlex
import sys
from typing import Any

from .client import P4, P4Options
from .config import get_config
from .errors import P4BridgeError

__all__ = ["main", "build_parser", "configure_logging"]

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def configure_logging(verbose: bool = False) -> None:
    """Configure log handlers from the environment configuration."""
    config = get_config()

    log_handlers: list[logging.Handler] = []

    if config.log_debug and config.log_file:
        # LOG_DEBUG mode: write to a temp file
        file_handler = logging.FileHandler(config.log_file, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        log_handlers.append(file_handler)
        log_level = logging.DEBUG
    else:
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        log_handlers.append(stderr_handler)
        log_level = logging.DEBUG if verbose else logging.INFO

    # Third-party loggers stay at WARNING
    logging.basicConfig(
        level=logging.WARNING,
        handlers=log_handlers,
    )
    logging.getLogger("p4bridge").setLevel(log_level)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="p4bridge",
        description="Run a p4 command in tagged mode and print the result as JSON",
    )
    parser.add_argument("--raw", action="store_true", help="Run without -G and print raw text")
    parser.add_argument("--sync", action="store_true", help="Use the blocking runner")
    parser.add_argument(
        "--timeout", type=float, default=None,
        help="Deadline in milliseconds (default: P4API_TIMEOUT, 0 disables)",
    )
    parser.add_argument(
        "--input", dest="input_file", default=None,
        help="JSON object (or raw text with --raw) to send on stdin; '-' reads stdin",
    )
    parser.add_argument("--bin-path", default=None, help="Prefix for the p4 executable")
    parser.add_argument("--cwd", default=None, help="Working directory")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log at DEBUG level")
    parser.add_argument("command", nargs=argparse.REMAINDER, help="p4 command and arguments")
    return parser


def _read_input(path: str | None, raw: bool) -> Any:
    if path is None:
        return None
    if path == "-":
        text = sys.stdin.read()
    else:
        with open(path, encoding="utf-8") as f:
            text = f.read()
    if raw:
        return text
    data = json.loads(text)
    # Accept the output of a previous run: {"stat": [{...}], ...}
    if isinstance(data, dict) and isinstance(data.get("stat"), list) and data["stat"]:
        data = data["stat"][0]
    if not isinstance(data, dict):
        raise ValueError("input must be a JSON object")
    return data


def run(args: argparse.Namespace) -> dict[str, Any]:
    """Execute the parsed command and return the result dict."""
    config = get_config()
    options = P4Options(
        bin_path=args.bin_path if args.bin_path is not None else config.bin_path,
        timeout_ms=args.timeout,
    )
    client = P4(cwd=args.cwd, options=options)
    command = shlex.join(args.command)
    data_in = _read_input(args.input_file, args.raw)

    if args.raw:
        if args.sync:
            return client.raw_cmd_sync(command, data_in).to_dict()
        return asyncio.run(client.raw_cmd(command, data_in)).to_dict()

    if args.sync:
        return client.cmd_sync(command, data_in).to_dict()
    return asyncio.run(client.cmd(command, data_in)).to_dict()


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.command:
        parser.error("a p4 command is required")

    configure_logging(args.verbose)

    try:
        result = run(args)
    except (P4BridgeError, ValueError, OSError) as e:
        logger.error(f"{type(e).__name__}: {e}")
        print(json.dumps({"exception": type(e).__name__, "message": str(e)}), file=sys.stderr)
        return 1

    print(json.dumps(result, ensure_ascii=False, indent=2, default=str))
    return 0


if __name__ == "__main__":
    sys.exit(main())
