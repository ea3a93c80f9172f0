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
Utilities for the n8n update module.

Wrappers for the external collaborators (systemctl, npm, tar), the on-disk
backup store, configuration and the error taxonomy.
"""

from .index import log_message, get_module_version, attach_log_file, detach_log_file
from .config import UpgradeConfig, load_config, load_module_config
from .errors import (
    UpgradeError,
    PreconditionError,
    BackupIntegrityError,
    InstallError,
    ServiceControlError,
    ServiceStartError,
    PackageManagerError,
    RollbackTargetMissing,
    RollbackArtifactMissing,
    SoftBackupGap,
    UserDeclined
)
from .state_manager import BackupStore, BackupRecord
from .systemd import SystemdService
from .npm import NpmClient
from .prompts import ConfirmationProvider, ConsolePrompter

__all__ = [
    'log_message',
    'get_module_version',
    'attach_log_file',
    'detach_log_file',
    'UpgradeConfig',
    'load_config',
    'load_module_config',
    'UpgradeError',
    'PreconditionError',
    'BackupIntegrityError',
    'InstallError',
    'ServiceControlError',
    'ServiceStartError',
    'PackageManagerError',
    'RollbackTargetMissing',
    'RollbackArtifactMissing',
    'SoftBackupGap',
    'UserDeclined',
    'BackupStore',
    'BackupRecord',
    'SystemdService',
    'NpmClient',
    'ConfirmationProvider',
    'ConsolePrompter'
]
