#!/usr/bin/env python3
"""
HOMESERVER Update Management System
Copyright (C) 2024 HOMESERVER LLC

This program is free software: you can redistribute it and/or modify
it under the terms of the GNU General Public License as published by
the Free Software Foundation, either version 3 of the License, or
(at your option) any later version.

This program is distributed in the hope that it will be useful,
but WITHOUT ANY WARRANTY; without even the implied warranty of
MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
GNU General Public License for more details.

You should have received a copy of the GNU General Public License
along with this program.  If not, see <https://www.gnu.org/licenses/>.
"""

import os
import sys
import time
import argparse
import logging
import traceback
from dataclasses import dataclass
from datetime import date, datetime
from typing import Callable, List, Optional

import requests

from .utils.index import (
    LOG_FORMAT,
    LOG_DATE_FORMAT,
    logger,
    log_message,
    attach_log_file,
    detach_log_file
)
from .utils.config import UpgradeConfig, load_config
from .utils.errors import (
    UpgradeError,
    InstallError,
    RollbackTargetMissing,
    RollbackArtifactMissing,
    UserDeclined
)
from .utils.npm import NpmClient
from .utils.prompts import ConfirmationProvider, ConsolePrompter
from .utils.state_manager import BackupStore, UPGRADE_LOG
from .utils.systemd import SystemdService
from .components import (
    PreflightChecker,
    Toolchain,
    BackupManager,
    VersionSwitcher,
    HealthChecker,
    HealthState,
    RollbackManager,
    RetentionManager
)

COMMANDS = ("upgrade", "rollback", "list")
VALUE_OPTIONS = ("--backup-root", "--port", "--timeout", "--service")


class UpgradeArgumentParser(argparse.ArgumentParser):
    """Usage errors exit 1, like every other failure of the tool."""

    def error(self, message):
        self.print_usage(sys.stderr)
        self.exit(1, f"{self.prog}: error: {message}\n")


def setup_logging(verbose: bool = False):
    """
    Log to stdout; per-operation transcripts are attached later.
    """
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
    console_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT))
    logger.setLevel(logging.DEBUG)
    for h in list(logger.handlers):
        logger.removeHandler(h)
    logger.addHandler(console_handler)


def log_session_banner(operation: str):
    log_message("=" * 80)
    log_message(f"n8n {operation.upper()} SESSION STARTED")
    log_message(f"Command: {' '.join(sys.argv)}")
    log_message(f"Working Directory: {os.getcwd()}")
    log_message("=" * 80)


@dataclass
class UpdateContext:
    """Configuration plus every collaborator an operation needs."""
    config: UpgradeConfig
    store: BackupStore
    service: SystemdService
    npm: NpmClient
    prompter: ConfirmationProvider
    backup: BackupManager
    switcher: VersionSwitcher
    health: HealthChecker
    retention: RetentionManager
    rollback: RollbackManager


def build_context(config: UpgradeConfig, service: SystemdService, npm: NpmClient,
                  prompter: ConfirmationProvider,
                  session: Optional[requests.Session] = None,
                  sleep: Callable[[float], None] = time.sleep) -> UpdateContext:
    """Wire the components together around shared collaborators."""
    store = BackupStore(config.backup_root)
    switcher = VersionSwitcher(config, service, npm)
    return UpdateContext(
        config=config,
        store=store,
        service=service,
        npm=npm,
        prompter=prompter,
        backup=BackupManager(config, service, npm),
        switcher=switcher,
        health=HealthChecker(config, service, session=session, sleep=sleep),
        retention=RetentionManager(config, store, prompter),
        rollback=RollbackManager(config, store, service, switcher, prompter),
    )


def context_from_toolchain(config: UpgradeConfig, toolchain: Toolchain,
                           prompter: ConfirmationProvider) -> UpdateContext:
    service = SystemdService(config.service_name)
    npm = NpmClient(toolchain.npm_bin, toolchain.node_bin,
                    package_name=config.package_name,
                    executable=config.executable,
                    timeout=config.command_timeout)
    return build_context(config, service, npm, prompter)


def run_upgrade(ctx: UpdateContext, version: str = "latest",
                timestamp: Optional[str] = None, today: Optional[date] = None) -> HealthState:
    """
    Back up the current installation, then install `version`.

    Returns:
        HealthState: RESPONDING or NOT_RESPONDING

    Raises:
        UpgradeError: On any fatal step; the record created so far is kept
    """
    timestamp = timestamp or ctx.store.new_timestamp()
    record_dir = ctx.store.create_record(timestamp)
    handler = attach_log_file(record_dir / UPGRADE_LOG)
    try:
        log_message(f"===== n8n upgrade to '{version}' started at {datetime.now():%c} =====")
        log_message(f"Backup directory: {record_dir}")
        log_message(f"Global npm path: {ctx.npm.global_root()}")

        ctx.retention.offer(today=today)
        ctx.backup.create_backup(record_dir)

        try:
            ctx.switcher.switch(version)
        except InstallError:
            log_message("The previous installation has already been removed.", "ERROR")
            log_message(f"Restore it with: n8n-upgrade rollback {timestamp}", "ERROR")
            raise

        ctx.switcher.start_service()
        state = ctx.health.verify()
        log_message(f"===== n8n upgrade to '{version}' completed successfully at {datetime.now():%c} =====")
        return state
    finally:
        detach_log_file(handler)


def run_rollback(ctx: UpdateContext, timestamp: str) -> HealthState:
    """
    Restore the package (and, on request, data and unit) from a record.

    The transcript goes to <backup_root>/rollback-<now>.log so the record
    being restored stays untouched.
    """
    handler = None
    if ctx.store.backup_root.is_dir():
        handler = attach_log_file(ctx.store.backup_root / f"rollback-{ctx.store.new_timestamp()}.log")
    try:
        log_message(f"===== n8n rollback started at {datetime.now():%c} =====")
        ctx.rollback.restore(timestamp)
        ctx.switcher.start_service()
        state = ctx.health.verify()
        log_message(f"===== n8n rollback completed successfully at {datetime.now():%c} =====")
        return state
    finally:
        if handler is not None:
            detach_log_file(handler)


def list_backups(store: BackupStore) -> int:
    """Print every record with its captured n8n version."""
    records = store.load_all()
    if not records:
        log_message(f"No backups found in {store.backup_root}")
        return 0
    log_message(f"Backups in {store.backup_root}:")
    for record in records:
        marker = "✓" if record.restorable else "✗ (no package archive)"
        log_message(f"  {record.timestamp}  n8n {record.summary()}  {marker}")
    return 0


def _log_available(available: List[str]):
    log_message("Available backups:", "ERROR")
    if not available:
        log_message("  (none)", "ERROR")
    for name in available:
        log_message(f"  {name}", "ERROR")


def build_parser() -> argparse.ArgumentParser:
    parser = UpgradeArgumentParser(
        prog="n8n-upgrade",
        description="Upgrade n8n to the specified version (default: latest) after taking a full "
                    "backup, or roll back to a previous backup.",
        epilog="Examples:\n"
               "  n8n-upgrade upgrade                   # Upgrade to latest\n"
               "  n8n-upgrade upgrade 1.70.0            # Upgrade to specific version\n"
               "  n8n-upgrade rollback 20240115-120000  # Rollback to backup from that timestamp\n"
               "  n8n-upgrade list                      # Show available backups",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--backup-root", default=None,
                        help="Backup directory (default: ./n8n_backup)")
    parser.add_argument("--port", type=int, default=None,
                        help="Health check port (default: $N8N_PORT or 5678)")
    parser.add_argument("--timeout", type=int, default=None,
                        help="Health check attempts, one per second (default: 30)")
    parser.add_argument("--service", default=None,
                        help="systemd unit name (default: n8n.service)")
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="Show debug output")

    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")

    upgrade = subparsers.add_parser("upgrade", help="Back up, then install VERSION")
    upgrade.add_argument("version", nargs="?", default="latest",
                         help="n8n version to install (default: latest)")

    rollback = subparsers.add_parser("rollback", help="Restore a previous backup")
    rollback.add_argument("timestamp", help="Backup name, e.g. 20240115-120000")

    subparsers.add_parser("list", help="List available backups")
    return parser


def normalize_argv(argv: List[str]) -> List[str]:
    """
    Accept the original script's forms as well as subcommands.

    `--rollback TIMESTAMP` becomes `rollback TIMESTAMP`, a bare VERSION becomes
    `upgrade VERSION`, and no command at all means `upgrade`.
    """
    argv = list(argv)
    if "--rollback" in argv:
        i = argv.index("--rollback")
        if i + 1 >= len(argv) or argv[i + 1].startswith("-"):
            build_parser().error("--rollback requires a timestamp argument.")
        timestamp = argv[i + 1]
        del argv[i:i + 2]
        return argv + ["rollback", timestamp]

    i = 0
    while i < len(argv):
        token = argv[i]
        if token in ("-h", "--help"):
            return argv
        if token in VALUE_OPTIONS:
            i += 2
            continue
        if token.startswith("-"):
            i += 1
            continue
        if token not in COMMANDS:
            argv.insert(i, "upgrade")
        return argv
    return argv + ["upgrade"]


def main(argv: Optional[List[str]] = None) -> int:
    """
    Entry point for the n8n upgrade/rollback tool.

    Returns:
        int: 0 on success (including a health endpoint that never answered
             and a declined confirmation), 1 on any fatal error
    """
    argv = sys.argv[1:] if argv is None else argv
    args = build_parser().parse_args(normalize_argv(argv))
    setup_logging(args.verbose)

    try:
        config = load_config(overrides={
            "backup_root": args.backup_root,
            "health_port": args.port,
            "health_timeout": args.timeout,
            "service_name": args.service,
        })

        if args.command == "list":
            return list_backups(BackupStore(config.backup_root))

        log_session_banner(args.command)
        toolchain = PreflightChecker().check()
        ctx = context_from_toolchain(config, toolchain, ConsolePrompter())

        if args.command == "rollback":
            run_rollback(ctx, args.timestamp)
        else:
            run_upgrade(ctx, args.version)
        return 0

    except UserDeclined as e:
        log_message(str(e))
        return 0
    except (RollbackTargetMissing, RollbackArtifactMissing) as e:
        log_message(f"ERROR: {e}", "ERROR")
        _log_available(e.available)
        return e.exit_code
    except UpgradeError as e:
        log_message(f"ERROR: {e}", "ERROR")
        return e.exit_code
    except KeyboardInterrupt:
        log_message("Interrupted by user", "WARNING")
        return 130
    except Exception as e:
        log_message(f"Unhandled error: {e}", "ERROR")
        traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
