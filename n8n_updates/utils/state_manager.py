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

"""
Backup Store for the n8n update module

Timestamped, self-contained backup records. Every upgrade writes a new
record directory; nothing rewrites an existing one. Records are only removed
by retention cleanup or by hand.

Layout (stable across versions, read by every later rollback):

    <backup_root>/<YYYYMMDD-HHMMSS>/
        n8n-node-modules.tar.gz   global package tree (optional)
        n8n-data.tar.gz           user data directory (optional)
        systemd/                  merged unit, unit file, drop-in directory
        version-info.txt          node/npm/n8n versions at backup time
        upgrade.log               transcript of the upgrade run

Usage:
    from n8n_updates.utils.state_manager import BackupStore

    store = BackupStore(Path("n8n_backup"))
    record_dir = store.create_record(store.new_timestamp())
    record = store.load_record("20240115-120000")
"""

import re
import shutil
from dataclasses import dataclass, field
from datetime import datetime, date, timedelta
from pathlib import Path
from typing import List, Optional

from .index import log_message
from .errors import BackupIntegrityError, RollbackTargetMissing

TIMESTAMP_FORMAT = "%Y%m%d-%H%M%S"
DATE_FORMAT = "%Y%m%d"
DATE_PATTERN = re.compile(r"^[0-9]{8}$")

PACKAGE_ARCHIVE = "n8n-node-modules.tar.gz"
DATA_ARCHIVE = "n8n-data.tar.gz"
SYSTEMD_DIR = "systemd"
VERSION_INFO = "version-info.txt"
UPGRADE_LOG = "upgrade.log"


@dataclass
class BackupRecord:
    """One point-in-time snapshot, identified by its directory name."""
    timestamp: str
    path: Path
    package_archive: Optional[Path] = None
    data_archive: Optional[Path] = None
    systemd_files: List[Path] = field(default_factory=list)
    version_info: Optional[str] = None
    log_path: Optional[Path] = None
    gaps: List[str] = field(default_factory=list)

    @property
    def systemd_dir(self) -> Path:
        return self.path / SYSTEMD_DIR

    @property
    def restorable(self) -> bool:
        """A rollback needs at least the package archive."""
        return self.package_archive is not None

    @classmethod
    def from_directory(cls, path: Path) -> 'BackupRecord':
        """Read a record from disk without modifying it."""
        path = Path(path)
        package_archive = path / PACKAGE_ARCHIVE
        data_archive = path / DATA_ARCHIVE
        systemd_dir = path / SYSTEMD_DIR
        version_file = path / VERSION_INFO
        log_file = path / UPGRADE_LOG

        version_info = None
        if version_file.is_file():
            try:
                version_info = version_file.read_text()
            except OSError as e:
                log_message(f"Cannot read {version_file}: {e}", "WARNING")

        systemd_files = sorted(p for p in systemd_dir.rglob("*") if p.is_file()) if systemd_dir.is_dir() else []

        return cls(
            timestamp=path.name,
            path=path,
            package_archive=package_archive if package_archive.is_file() else None,
            data_archive=data_archive if data_archive.is_file() else None,
            systemd_files=systemd_files,
            version_info=version_info,
            log_path=log_file if log_file.is_file() else None,
        )

    def summary(self) -> str:
        """First line of the captured n8n version, for listings."""
        if not self.version_info:
            return "no version info"
        for line in self.version_info.splitlines():
            if line.startswith("n8n version"):
                return line.split(":", 1)[1].strip()
        return self.version_info.splitlines()[0] if self.version_info.strip() else "no version info"


class BackupStore:
    """
    Directory of BackupRecords under a single root.

    The root is created lazily by create_record() so read-only operations
    (listing, --help) never touch the filesystem.
    """

    def __init__(self, backup_root: Path):
        self.backup_root = Path(backup_root)

    @staticmethod
    def new_timestamp(now: Optional[datetime] = None) -> str:
        """Second-resolution, lexicographically sortable record name."""
        return (now or datetime.now()).strftime(TIMESTAMP_FORMAT)

    def record_path(self, timestamp: str) -> Path:
        return self.backup_root / timestamp

    def list_records(self) -> List[str]:
        """Names of all record directories, oldest first."""
        if not self.backup_root.is_dir():
            return []
        return sorted(p.name for p in self.backup_root.iterdir() if p.is_dir())

    def count(self) -> int:
        return len(self.list_records())

    def create_record(self, timestamp: str) -> Path:
        """
        Create the directory for a new record.

        Raises:
            BackupIntegrityError: If the directory cannot be created or a
                record with this timestamp already exists
        """
        record_dir = self.record_path(timestamp)
        try:
            self.backup_root.mkdir(parents=True, exist_ok=True)
            record_dir.mkdir()
        except FileExistsError:
            raise BackupIntegrityError(f"Backup record {timestamp} already exists; refusing to overwrite it")
        except OSError as e:
            raise BackupIntegrityError(f"Cannot create backup directory {record_dir}: {e}")
        return record_dir

    def load_record(self, timestamp: str) -> BackupRecord:
        """
        Load an existing record by name.

        Raises:
            RollbackTargetMissing: If no record directory has this name
        """
        available = self.list_records()
        if timestamp not in available:
            raise RollbackTargetMissing(timestamp, available)
        return BackupRecord.from_directory(self.record_path(timestamp))

    def load_all(self) -> List[BackupRecord]:
        return [BackupRecord.from_directory(self.record_path(name)) for name in self.list_records()]

    @staticmethod
    def cutoff_for(days: int, today: Optional[date] = None) -> str:
        """YYYYMMDD string for `days` days before today."""
        return ((today or date.today()) - timedelta(days=days)).strftime(DATE_FORMAT)

    def delete_before(self, cutoff_date: str) -> List[str]:
        """
        Delete records whose date part sorts strictly before cutoff_date.

        Comparison is plain string comparison on the fixed-width YYYYMMDD
        prefix. Names without an eight-digit date prefix are never touched.

        Returns:
            List[str]: Names of the deleted records
        """
        deleted = []
        for name in self.list_records():
            record_date = name.split("-", 1)[0]
            if DATE_PATTERN.match(record_date) and record_date < cutoff_date:
                log_message(f"  Removing old backup: {name}")
                shutil.rmtree(self.record_path(name))
                deleted.append(name)
        return deleted
