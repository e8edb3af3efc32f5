"""Operator CLI for inspecting and repairing local wardflow state.

Wallet sessions are created by the host application; this tool works on
the local store those sessions write to.
"""
from __future__ import annotations

import argparse
import logging
import sys
from typing import Optional

from . import __version__
from .config import Config, get_config
from .errors import ValidationError
from .storage import RECONCILIATION_KEY, PartialWardStore, SQLiteKeyValueStore, load_json
from .tokens import TOKENS, format_token_amount, to_tongo_units
from .ui.console import ConsoleManager
from .utils.logger import configure_logger

logger = logging.getLogger(__name__)

_REDACTED_FIELDS = {"ward_private_key"}


def setup_logging(config: Config, console: ConsoleManager, verbose: bool = False) -> None:
    """Setup logging from configuration.

    Records are rendered by the console manager; the root logger only gets
    the optional file handler.

    Args:
        config: Loaded configuration
        console: Console manager that renders log records
        verbose: If True, force DEBUG level
    """
    level = "DEBUG" if verbose else config.log_level
    configure_logger(
        level=level,
        format_string=config.log_format,
        add_file_handler=bool(config.log_file),
        file_path=config.log_file,
        add_console_handler=False,
    )
    package_logger = logging.getLogger("wardflow")
    console.setup_logging(package_logger)
    package_logger.setLevel(level)


def create_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser.

    Returns:
        Configured ArgumentParser instance
    """
    parser = argparse.ArgumentParser(
        prog="wardflow",
        description="Inspect and repair local ward provisioning and 2FA state",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""Examples:
  # Show an interrupted ward creation
  wardflow partial-ward show

  # Forget it (on-chain artifacts are untouched)
  wardflow partial-ward clear

  # Show a pending 2FA reconciliation marker
  wardflow reconciliation show

  # Check that an amount converts to whole shielded units
  wardflow convert 12.5 --token ETH
        """,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")
    parser.add_argument("--json-output", action="store_true", help="Emit machine-readable JSON")
    parser.add_argument("--state-db", help="Path to the local state database")

    subparsers = parser.add_subparsers(dest="command", help="Available commands", required=True)

    partial = subparsers.add_parser("partial-ward", help="Interrupted ward creation record")
    partial.add_argument("action", choices=["show", "clear"])

    recon = subparsers.add_parser("reconciliation", help="Pending 2FA reconciliation marker")
    recon.add_argument("action", choices=["show", "clear"])

    convert = subparsers.add_parser("convert", help="Convert a display amount to shielded units")
    convert.add_argument("amount", help="Decimal amount, e.g. 0.05")
    convert.add_argument("--token", default="STRK", choices=sorted(TOKENS))

    subparsers.add_parser("config", help="Show effective configuration")
    return parser


def partial_ward_command(args: argparse.Namespace, store: SQLiteKeyValueStore, console: ConsoleManager) -> int:
    partial_store = PartialWardStore(store)
    if args.action == "clear":
        cleared = partial_store.clear()
        console.print_message("Cleared partial ward record" if cleared else "No partial ward record")
        return 0

    record = partial_store.load()
    data = None
    if record is not None:
        data = {k: ("***REDACTED***" if k in _REDACTED_FIELDS and v else v) for k, v in record.model_dump().items()}
    console.print_record("Partial ward", data)
    return 0


def reconciliation_command(args: argparse.Namespace, store: SQLiteKeyValueStore, console: ConsoleManager) -> int:
    if args.action == "clear":
        cleared = store.delete(RECONCILIATION_KEY)
        console.print_message("Cleared reconciliation marker" if cleared else "No reconciliation marker")
        return 0
    console.print_record("2FA reconciliation", load_json(store, RECONCILIATION_KEY))
    return 0


def convert_command(args: argparse.Namespace, console: ConsoleManager) -> int:
    token = TOKENS[args.token]
    try:
        units = to_tongo_units(args.amount, token)
    except ValidationError as e:
        console.print_error(str(e))
        return 1
    console.print_record(
        f"{args.amount} {token.symbol}",
        {"units": units, "base_units": units * token.rate, "display": format_token_amount(units * token.rate, token.decimals)},
    )
    return 0


def main(argv: Optional[list] = None) -> int:
    """Main CLI entry point.

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    try:
        config = get_config()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    console = ConsoleManager(verbose=args.verbose, json_output=args.json_output or config.json_output)
    setup_logging(config, console, args.verbose)

    try:
        if args.command == "convert":
            return convert_command(args, console)
        if args.command == "config":
            console.print_record("Configuration", config.to_dict())
            return 0

        store = SQLiteKeyValueStore(args.state_db or config.state_db_path)
        if args.command == "partial-ward":
            return partial_ward_command(args, store, console)
        if args.command == "reconciliation":
            return reconciliation_command(args, store, console)

        parser.print_help()
        return 1
    except KeyboardInterrupt:
        logger.error("Operation cancelled by user")
        return 1
    except Exception as e:
        console.print_error(str(e))
        logger.debug("Command failed", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
