"""
HOMESERVER n8n Update Components
Copyright (C) 2024 HOMESERVER LLC

Component-based n8n upgrade and rollback system.
"""

from .preflight import PreflightChecker, Toolchain
from .backup_manager import BackupManager
from .version_switcher import VersionSwitcher
from .health_checker import HealthChecker, HealthState
from .rollback_manager import RollbackManager, RollbackOutcome
from .retention import RetentionManager

__all__ = [
    'PreflightChecker',
    'Toolchain',
    'BackupManager',
    'VersionSwitcher',
    'HealthChecker',
    'HealthState',
    'RollbackManager',
    'RollbackOutcome',
    'RetentionManager'
]
