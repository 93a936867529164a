"""Command-line entry point for the ``polymarket`` client."""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import Callable, TextIO

from app.config import get_update_config
from app.version import get_app_version
from services.update import (
    IntegrityError,
    RollbackFailed,
    UpdateError,
    UpdateService,
    build_update_service,
)
from services.update.versioning import describe_change
from shared.logging_config import LogVerbosity, ensure_app_logging, set_file_log_verbosity

_LOGGER = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_INTEGRITY = 2
EXIT_ROLLBACK_FAILED = 3

ServiceFactory = Callable[[argparse.Namespace, Callable[[str], None]], UpdateService]


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="polymarket",
        description="Polymarket command-line trading client.",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {get_app_version()}",
    )
    subcommands = parser.add_subparsers(dest="command", required=True)

    upgrade = subcommands.add_parser(
        "upgrade",
        help="Update polymarket to the latest published release.",
        description="Download, verify and install the latest published release.",
    )
    upgrade.add_argument(
        "--check",
        action="store_true",
        help="Only report whether a newer release is available.",
    )
    upgrade.add_argument(
        "--install-path",
        type=Path,
        default=None,
        help="Executable to replace (defaults to the running binary).",
    )
    upgrade.add_argument(
        "--no-sudo",
        action="store_true",
        help="Never retry a denied file move through sudo.",
    )
    upgrade.add_argument(
        "--verbose",
        action="store_true",
        help="Echo diagnostic logging to the terminal.",
    )
    upgrade.add_argument(
        "--log-level",
        choices=[level.value for level in LogVerbosity],
        default=None,
        help="Minimum severity written to the log file (default: info; verbose with --verbose).",
    )
    return parser.parse_args(argv)


def default_service_factory(
    args: argparse.Namespace, progress: Callable[[str], None]
) -> UpdateService:
    config = get_update_config()
    if args.no_sudo:
        config = replace(config, allow_privileged_retry=False)
    return build_update_service(config, live_path=args.install_path, progress=progress)


def run_upgrade(
    args: argparse.Namespace,
    *,
    service_factory: ServiceFactory = default_service_factory,
    stdout: TextIO | None = None,
    stderr: TextIO | None = None,
) -> int:
    out = stdout or sys.stdout
    err = stderr or sys.stderr

    def say(message: str) -> None:
        print(message, file=out, flush=True)

    try:
        service = service_factory(args, say)
        say(f"Current version: v{service.current_version}")
        target = service.resolve_target()
        say("Checking for updates...")
        check = service.check()
        if not check.update_available:
            say("Already up to date.")
            return EXIT_OK

        change = describe_change(check.current_version, check.latest.version)
        suffix = " (downgrade)" if change == "downgrade" else ""
        say(f"New version available: {check.latest.tag}{suffix}")
        if args.check:
            say("Run 'polymarket upgrade' to install it.")
            return EXIT_OK

        outcome = service.install_release(check.latest, target)
    except RollbackFailed as exc:
        _LOGGER.critical("Self-update left the installation broken: %s", exc)
        print(f"Fatal: {exc}", file=err)
        return EXIT_ROLLBACK_FAILED
    except IntegrityError as exc:
        _LOGGER.error("Release verification failed: %s", exc)
        print(f"Error: {exc}", file=err)
        return EXIT_INTEGRITY
    except UpdateError as exc:
        _LOGGER.error("Self-update failed: %s", exc)
        print(f"Error: {exc}", file=err)
        return EXIT_FAILURE
    except KeyboardInterrupt:
        _LOGGER.warning("Self-update interrupted by user")
        print(
            "Interrupted. If the executable is missing, rename the .bak file next to it back into place.",
            file=err,
        )
        return EXIT_FAILURE

    if outcome.leftover_backup is not None:
        say(f"Note: could not remove backup {outcome.leftover_backup}; delete it manually.")
    say(f"Updated to {outcome.release.tag}")
    return EXIT_OK


def configure_logging(args: argparse.Namespace) -> None:
    verbose = getattr(args, "verbose", False)
    ensure_app_logging(console=verbose)
    level = getattr(args, "log_level", None) or (LogVerbosity.VERBOSE.value if verbose else None)
    if level is not None:
        set_file_log_verbosity(level)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    configure_logging(args)
    if args.command == "upgrade":
        return run_upgrade(args)
    return EXIT_FAILURE  # pragma: no cover - argparse enforces a known command


if __name__ == "__main__":
    raise SystemExit(main())
