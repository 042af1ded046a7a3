"""Antigravity Chat: command-line entry point.

Invariants:
    - Subcommands registered explicitly (login, chat); no plugin discovery
    - Logging configured once from Settings before any subcommand runs
    - main() returns a process exit code; it never calls sys.exit itself

Design Decisions:
    - argparse over a CLI framework: two subcommands, a handful of flags
    - Logs go to stderr so they never interleave with the streamed answer on stdout
"""

import argparse
import asyncio
import logging

from rich.console import Console

from antigravity_chat.cli.chat_repl import run_chat
from antigravity_chat.cli.login_command import run_login
from antigravity_chat.config import get_settings
from antigravity_chat.infrastructure.observability import setup_logging

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="antigravity-chat",
        description="Chat with Antigravity models from the terminal.",
    )
    parser.add_argument("--log-level", help="Override LOG_LEVEL (DEBUG, INFO, ...)")
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("login", help="Sign in with Google and save credentials")
    chat = sub.add_parser("chat", help="Start an interactive chat session")
    chat.add_argument("--model", help="Model id or 1-based index from the model list")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    setup_logging(args.log_level or settings.log_level, settings.log_format)
    console = Console()
    logger.info("Starting %s", args.command)
    try:
        if args.command == "login":
            return asyncio.run(run_login(settings, console))
        return asyncio.run(run_chat(settings, console, args.model))
    except KeyboardInterrupt:
        console.print()
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
