"""Entry point for the `mulch` command."""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Callable

from mulch import __version__
from mulch.cli import domain_cmd, maintenance_cmd, query_cmd, record_cmd
from mulch.cli.context import CommandContext
from mulch.config.settings import log_config_from_env
from mulch.core.errors import MulchError
from mulch.core.logging_config import setup_logging

logger = logging.getLogger(__name__)

Handler = Callable[[argparse.Namespace, CommandContext], int]

_COMMANDS: dict[str, Handler] = {
    "init": domain_cmd.cmd_init,
    "add": domain_cmd.cmd_add,
    "remove": domain_cmd.cmd_remove,
    "status": domain_cmd.cmd_status,
    "record": record_cmd.cmd_record,
    "edit": record_cmd.cmd_edit,
    "outcome": record_cmd.cmd_outcome,
    "delete": record_cmd.cmd_delete,
    "query": query_cmd.cmd_query,
    "search": query_cmd.cmd_search,
    "prime": query_cmd.cmd_prime,
    "ready": query_cmd.cmd_ready,
    "validate": maintenance_cmd.cmd_validate,
    "doctor": maintenance_cmd.cmd_doctor,
    "prune": maintenance_cmd.cmd_prune,
    "compact": maintenance_cmd.cmd_compact,
}


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mulch",
        description="Structured expertise store for coding agents.",
    )
    parser.add_argument("--version", action="version", version=f"mulch {__version__}")
    parser.add_argument("--json", action="store_true", default=False, help="Machine-readable JSON output.")
    parser.add_argument("-v", "--verbose", action="store_true", default=False, help="Log progress to stderr.")
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    domain_cmd.add_parsers(sub)
    record_cmd.add_parsers(sub)
    query_cmd.add_parsers(sub)
    maintenance_cmd.add_parsers(sub)
    return parser


def run(argv: list[str] | None = None) -> int:
    """Parse ``argv`` and run one command; returns the process exit code."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    log_config = log_config_from_env()
    if args.verbose:
        log_config.level = "INFO"
    setup_logging(log_config)

    ctx = CommandContext(root=Path.cwd(), json=args.json)
    try:
        return _COMMANDS[args.command](args, ctx)
    except MulchError as exc:
        logger.debug("%s failed", args.command, exc_info=True)
        ctx.emit_error(args.command, str(exc))
        return 1


def main() -> None:
    sys.exit(run())


if __name__ == "__main__":
    main()
