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
Error taxonomy for the n8n upgrade/rollback tool.

Every fatal condition is an UpgradeError and stops the whole operation.
SoftBackupGap never escapes the backup manager, and UserDeclined is a clean
abort rather than a failure.
"""

from typing import List, Optional


class UpgradeError(Exception):
    """Base class for fatal upgrade and rollback failures."""
    exit_code = 1


class PreconditionError(UpgradeError):
    """Not running as root, a required tool is missing, or the configuration is invalid."""
    pass


class BackupIntegrityError(UpgradeError):
    """A critical capture step failed; nothing destructive has happened yet."""
    pass


class InstallError(UpgradeError):
    """The package manager did not leave a reachable executable behind."""
    pass


class ServiceControlError(UpgradeError):
    """A systemctl command failed."""
    pass


class ServiceStartError(ServiceControlError):
    """The service did not report active after being started."""
    pass


class PackageManagerError(UpgradeError):
    """An npm invocation exited non-zero."""

    NOT_FOUND_MARKERS = ("ENOENT", "E404", "not installed", "missing")

    def __init__(self, message: str, returncode: Optional[int] = None, stderr: str = ""):
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr or ""

    @property
    def not_found(self) -> bool:
        """True when npm failed because the package is not there to act on."""
        return any(marker in self.stderr for marker in self.NOT_FOUND_MARKERS)


class RollbackTargetMissing(UpgradeError):
    """No backup record carries the requested timestamp."""

    def __init__(self, timestamp: str, available: List[str]):
        super().__init__(f"Backup directory not found: {timestamp}")
        self.timestamp = timestamp
        self.available = list(available)


class RollbackArtifactMissing(UpgradeError):
    """The backup record exists but has no package archive to restore."""

    def __init__(self, timestamp: str, artifact: str, available: List[str]):
        super().__init__(f"{artifact} not found in backup {timestamp}")
        self.timestamp = timestamp
        self.artifact = artifact
        self.available = list(available)


class SoftBackupGap(Exception):
    """An optional backup artifact could not be captured."""
    pass


class UserDeclined(Exception):
    """The operator answered no at a confirmation gate."""
    pass
