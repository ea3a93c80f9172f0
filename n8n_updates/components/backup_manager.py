"""
HOMESERVER n8n Update Components
Copyright (C) 2024 HOMESERVER LLC

Backup Manager Component

Populates a fresh backup record before anything destructive happens:
- systemd unit: merged definition, unit file, drop-in directory (critical)
- global n8n package tree (optional)
- n8n user data directory (optional)
- node/npm/n8n version metadata (optional)

A failure in the systemd capture aborts the upgrade. Optional steps that fail
only leave a gap in the record.
"""

import shutil
import tarfile
from pathlib import Path

from n8n_updates.utils.index import log_message
from n8n_updates.utils.config import UpgradeConfig
from n8n_updates.utils.errors import (
    BackupIntegrityError,
    PackageManagerError,
    ServiceControlError,
    SoftBackupGap
)
from n8n_updates.utils.archive import create_archive
from n8n_updates.utils.npm import NpmClient
from n8n_updates.utils.systemd import SystemdService
from n8n_updates.utils.state_manager import (
    BackupRecord,
    PACKAGE_ARCHIVE,
    DATA_ARCHIVE,
    SYSTEMD_DIR,
    VERSION_INFO
)

NOT_INSTALLED = "not installed"


class BackupManager:
    """Captures the current installation into a backup record directory."""

    def __init__(self, config: UpgradeConfig, service: SystemdService, npm: NpmClient):
        self.config = config
        self.service = service
        self.npm = npm

    def create_backup(self, record_dir: Path) -> BackupRecord:
        """
        Fill record_dir with everything a later rollback needs.

        Args:
            record_dir: Freshly created, empty record directory

        Returns:
            BackupRecord: The record as written, including any gaps

        Raises:
            BackupIntegrityError: If the systemd unit could not be captured
        """
        log_message("[BACKUP] Creating backups...")
        record = BackupRecord(timestamp=record_dir.name, path=record_dir)

        self._backup_systemd(record)

        for step in (self._backup_package, self._backup_user_data, self._write_version_info):
            try:
                step(record)
            except SoftBackupGap as e:
                record.gaps.append(str(e))
                log_message(f"[BACKUP] ⚠ {e}", "WARNING")

        if record.gaps:
            log_message(f"[BACKUP] Backup completed with {len(record.gaps)} gap(s)", "WARNING")
        else:
            log_message("[BACKUP] ✓ Backup completed")
        return record

    def _backup_systemd(self, record: BackupRecord) -> None:
        """Capture the unit definition. Any failure here is fatal."""
        log_message("[BACKUP] Backing up systemd service definition...")
        systemd_dir = record.path / SYSTEMD_DIR
        service_name = self.config.service_name

        try:
            systemd_dir.mkdir(parents=True, exist_ok=True)

            # The merged unit is what systemd is actually running
            merged_file = systemd_dir / f"{service_name}.merged.conf"
            merged_file.write_text(self.service.cat())
            record.systemd_files.append(merged_file)

            unit_path = self.service.fragment_path()
            if unit_path and unit_path.is_file():
                target = systemd_dir / unit_path.name
                shutil.copy2(unit_path, target)
                record.systemd_files.append(target)
                log_message(f"[BACKUP] ✓ Unit file: {unit_path}")

            dropin_dir = self.config.dropin_dir
            if dropin_dir.is_dir():
                target_dir = systemd_dir / dropin_dir.name
                shutil.copytree(dropin_dir, target_dir, symlinks=True)
                record.systemd_files.extend(sorted(p for p in target_dir.rglob("*") if p.is_file()))
                log_message(f"[BACKUP] ✓ Drop-ins: {dropin_dir}")
        except ServiceControlError as e:
            raise BackupIntegrityError(f"Cannot capture systemd unit {service_name}: {e}")
        except OSError as e:
            raise BackupIntegrityError(f"Cannot write systemd backup for {service_name}: {e}")

        log_message(f"[BACKUP] ✓ Captured {len(record.systemd_files)} systemd file(s)")

    def _archive(self, source: Path, archive_path: Path, label: str) -> Path:
        try:
            create_archive(source, archive_path)
        except (OSError, tarfile.TarError) as e:
            archive_path.unlink(missing_ok=True)
            raise SoftBackupGap(f"Failed to archive {label} ({source}): {e}")
        return archive_path

    def _backup_package(self, record: BackupRecord) -> None:
        try:
            package_dir = self.npm.package_dir()
        except PackageManagerError as e:
            raise SoftBackupGap(f"Cannot locate global npm root: {e}")

        if not package_dir.is_dir():
            raise SoftBackupGap(f"No global {self.config.package_name} installation at {package_dir}; skipping package backup")

        log_message(f"[BACKUP] Backing up global {self.config.package_name} installation...")
        record.package_archive = self._archive(package_dir, record.path / PACKAGE_ARCHIVE, "package tree")
        log_message(f"[BACKUP] ✓ {PACKAGE_ARCHIVE}")

    def _backup_user_data(self, record: BackupRecord) -> None:
        data_dir = self.config.data_dir
        if not data_dir.is_dir():
            raise SoftBackupGap(f"No user data directory at {data_dir}; skipping data backup")

        log_message("[BACKUP] Backing up n8n user data...")
        record.data_archive = self._archive(data_dir, record.path / DATA_ARCHIVE, "user data")
        log_message(f"[BACKUP] ✓ {DATA_ARCHIVE}")

    def _query(self, func, default: str) -> str:
        try:
            return func() or default
        except PackageManagerError as e:
            log_message(f"[BACKUP] Version query failed: {e}", "DEBUG")
            return default

    def _write_version_info(self, record: BackupRecord) -> None:
        lines = [
            f"Node version: {self._query(self.npm.node_version, 'unknown')}",
            f"npm version: {self._query(self.npm.npm_version, 'unknown')}",
            f"{self.config.package_name} version (pre-upgrade): "
            f"{self._query(self.npm.package_version, NOT_INSTALLED)}",
        ]
        content = "\n".join(lines) + "\n"
        try:
            (record.path / VERSION_INFO).write_text(content)
        except OSError as e:
            raise SoftBackupGap(f"Failed to write {VERSION_INFO}: {e}")
        record.version_info = content
        for line in lines:
            log_message(f"[BACKUP]   {line}")
