"""Command line entry point."""

from __future__ import annotations

import argparse
import getpass
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .config import load_config
from .credentials import store_password
from .errors import ConfigurationError
from .logging_setup import configure_logging
from .models import RunMode
from .runner import run_batch

LOGGER = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_HALTED = 1
EXIT_CONFIG = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="qhslab-claims",
        description="Update QHSLab claims from a spreadsheet and write the outcome back into it",
    )
    parser.add_argument("--config", type=Path, help="Path to a JSON config file (default: ./qhslab_claims.json if present)")
    parser.add_argument("--excel", dest="excel_path", help="Input spreadsheet (.xlsx, .xlsm or .csv)")
    parser.add_argument("--dir", dest="excel_dir", help="Directory searched for the newest input spreadsheet")
    parser.add_argument("--sheet", dest="sheet_name", help="Worksheet name (default: 'Input', else the first sheet)")
    parser.add_argument("--dry-run", action="store_true", help="Validate and plan only; no browser is launched")
    parser.add_argument("--headless", action="store_true", help="Run Chrome headless")
    parser.add_argument("--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR"], help="Console log level")
    parser.add_argument(
        "--store-password",
        action="store_true",
        help="Prompt for the account password, save it in the OS keyring and exit",
    )
    return parser


def _cli_overrides(args: argparse.Namespace) -> dict:
    overrides = {
        "excel_path": args.excel_path,
        "excel_dir": args.excel_dir,
        "sheet_name": args.sheet_name,
        "log_level": args.log_level,
    }
    if args.dry_run:
        overrides["mode"] = RunMode.DRY_RUN
    if args.headless:
        overrides["headless"] = True
    return overrides


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = load_config(args.config, cli_overrides=_cli_overrides(args))
    except ConfigurationError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return EXIT_CONFIG

    log_path = configure_logging(Path(config.log_dir), config.log_level)
    LOGGER.info("Logging to %s", log_path)

    if args.store_password:
        if not config.email:
            LOGGER.error("Set QHSLAB_EMAIL (or 'email' in the config file) before storing a password")
            return EXIT_CONFIG
        password = getpass.getpass(f"Password for {config.email}: ")
        if not store_password(config.email, password):
            LOGGER.error("Password was not stored")
            return EXIT_CONFIG
        LOGGER.info("Password stored in the OS keyring for %s", config.email)
        return EXIT_OK

    if config.dry_run:
        LOGGER.info("DRY RUN mode - no browser automation will be performed")

    try:
        summary = run_batch(config)
    except ConfigurationError as exc:
        LOGGER.error("Configuration error: %s", exc)
        return EXIT_CONFIG

    return EXIT_HALTED if summary.halted else EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
