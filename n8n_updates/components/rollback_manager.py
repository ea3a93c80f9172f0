"""
HOMESERVER n8n Update Components
Copyright (C) 2024 HOMESERVER LLC

Rollback Manager Component

Restores a backup record produced by an earlier upgrade:
- check the package archive is readable, show the version info and ask
  before touching anything
- stop the service, remove the current package and its residue
- extract the package archive over the filesystem root, relink its executables
- optionally extract user data (separate confirmation)
- optionally restore unit file and drop-ins (separate confirmation)
- verify the executable, start the service

The record itself is only read, never written.
"""

import shutil
import tarfile
from dataclasses import dataclass
from pathlib import Path
from typing import List

from n8n_updates.utils.index import log_message
from n8n_updates.utils.config import UpgradeConfig
from n8n_updates.utils.errors import (
    BackupIntegrityError,
    RollbackArtifactMissing,
    UserDeclined
)
from n8n_updates.utils.archive import extract_archive, list_members
from n8n_updates.utils.prompts import ConfirmationProvider
from n8n_updates.utils.state_manager import BackupRecord, BackupStore, PACKAGE_ARCHIVE
from n8n_updates.utils.systemd import SystemdService
from .version_switcher import VersionSwitcher


@dataclass
class RollbackOutcome:
    """What a rollback actually restored."""
    timestamp: str
    version: str
    data_restored: bool = False
    systemd_restored: bool = False


class RollbackManager:
    """Reverses a version switch from a backup record."""

    def __init__(self, config: UpgradeConfig, store: BackupStore, service: SystemdService,
                 switcher: VersionSwitcher, prompter: ConfirmationProvider):
        self.config = config
        self.store = store
        self.service = service
        self.switcher = switcher
        self.prompter = prompter

    def load_target(self, timestamp: str) -> BackupRecord:
        """
        Resolve and validate the record to restore.

        Raises:
            RollbackTargetMissing: No record has this name
            RollbackArtifactMissing: The record has no package archive
        """
        record = self.store.load_record(timestamp)
        if not record.restorable:
            restorable = [r.timestamp for r in self.store.load_all() if r.restorable]
            raise RollbackArtifactMissing(timestamp, PACKAGE_ARCHIVE, restorable)
        return record

    def restore(self, timestamp: str) -> RollbackOutcome:
        """
        Run the restore sequence up to a verified executable.

        The caller starts the service and runs the health check.

        Raises:
            UserDeclined: The operator did not confirm the rollback
            BackupIntegrityError: An archive in the record could not be extracted
            InstallError: No executable on PATH after extraction
        """
        record = self.load_target(timestamp)
        log_message(f"[ROLLBACK] Restoring from: {record.path}")

        if record.version_info:
            log_message("[ROLLBACK] Backup version info:")
            for line in record.version_info.splitlines():
                log_message(f"[ROLLBACK]   {line}")

        self.validate_archive(record.package_archive)

        if not self.prompter.confirm("Proceed with rollback?"):
            log_message("[ROLLBACK] Rollback cancelled.")
            raise UserDeclined("Rollback cancelled by operator")

        self.switcher.stop_service()
        self.switcher.remove_current()

        log_message(f"[ROLLBACK] Restoring {self.config.package_name} from backup...")
        self._extract(record.package_archive)
        self.switcher.relink_executables()

        outcome = RollbackOutcome(timestamp=timestamp, version="unknown")

        if record.data_archive is not None:
            if self.prompter.confirm(
                f"Restore n8n user data ({self.config.data_dir})? This will overwrite current data!"
            ):
                log_message("[ROLLBACK] Restoring n8n user data...")
                self._extract(record.data_archive)
                outcome.data_restored = True
            else:
                log_message("[ROLLBACK] Leaving current user data in place.")

        if record.systemd_dir.is_dir():
            if self.prompter.confirm("Restore systemd service configuration?"):
                self.restore_systemd(record)
                outcome.systemd_restored = True
            else:
                log_message("[ROLLBACK] Leaving current systemd configuration in place.")

        outcome.version = self.switcher.verify_executable("rollback")
        log_message(f"[ROLLBACK] ✓ Rolled back to {self.config.package_name} version: {outcome.version}")
        return outcome

    def validate_archive(self, archive: Path) -> List[str]:
        """
        Read the archive index before anything is removed.

        Raises:
            BackupIntegrityError: If the archive is unreadable or empty
        """
        try:
            members = list_members(archive)
        except (OSError, tarfile.TarError, EOFError) as e:
            raise BackupIntegrityError(f"Backup archive {archive} is unreadable: {e}")
        if not members:
            raise BackupIntegrityError(f"Backup archive {archive} is empty")
        log_message(f"[ROLLBACK] ✓ {archive.name}: {len(members)} entries", "DEBUG")
        return members

    def _extract(self, archive) -> None:
        try:
            extract_archive(archive, self.config.filesystem_root)
        except (OSError, tarfile.TarError, EOFError) as e:
            raise BackupIntegrityError(f"Failed to extract {archive.name}: {e}")

    def restore_systemd(self, record: BackupRecord) -> None:
        """Copy the captured unit file and drop-ins back into place."""
        log_message("[ROLLBACK] Restoring systemd configuration...")
        try:
            unit_path = self.service.fragment_path()
            if unit_path:
                saved_unit = record.systemd_dir / unit_path.name
                if saved_unit.is_file():
                    shutil.copy2(saved_unit, unit_path)
                    log_message(f"[ROLLBACK] ✓ Unit file restored: {unit_path}")

            saved_dropins = record.systemd_dir / self.config.dropin_dir.name
            if saved_dropins.is_dir():
                shutil.copytree(saved_dropins, self.config.dropin_dir, symlinks=True, dirs_exist_ok=True)
                log_message(f"[ROLLBACK] ✓ Drop-ins restored: {self.config.dropin_dir}")
        except OSError as e:
            raise BackupIntegrityError(f"Failed to restore systemd configuration: {e}")
