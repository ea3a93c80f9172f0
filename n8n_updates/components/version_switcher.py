"""
HOMESERVER n8n Update Components
Copyright (C) 2024 HOMESERVER LLC

Version Switcher Component

Swaps the globally installed n8n package:
- stop the service
- npm uninstall (absent package is not an error)
- remove leftover package directories
- npm install n8n@<version>
- verify the executable is on PATH
- daemon-reload and start the service
"""

import shutil
from pathlib import Path
from typing import List

from n8n_updates.utils.index import log_message
from n8n_updates.utils.config import UpgradeConfig
from n8n_updates.utils.errors import (
    InstallError,
    PackageManagerError,
    ServiceControlError,
    ServiceStartError
)
from n8n_updates.utils.npm import NpmClient
from n8n_updates.utils.systemd import SystemdService

LATEST = "latest"


class VersionSwitcher:
    """Removes the current package and installs the requested one."""

    def __init__(self, config: UpgradeConfig, service: SystemdService, npm: NpmClient):
        self.config = config
        self.service = service
        self.npm = npm

    def switch(self, version: str = LATEST) -> str:
        """
        Replace the installed package with `version`.

        Returns:
            str: Version reported by the new executable

        Raises:
            ServiceControlError: If the service cannot be stopped
            InstallError: If install fails or leaves no executable on PATH
        """
        self.stop_service()
        self.remove_current()

        log_message(f"[SWITCH] Installing {self.config.package_name}@{version} from npm...")
        try:
            self.npm.install_global(version)
        except PackageManagerError as e:
            raise InstallError(f"npm install of {self.config.package_name}@{version} failed: {e}")

        return self.verify_executable("installation")

    def stop_service(self) -> None:
        log_message(f"[SWITCH] Stopping {self.config.service_name}...")
        self.service.stop()
        log_message(f"[SWITCH] ✓ Stop issued for {self.config.service_name}")

    def remove_current(self) -> None:
        """Uninstall the package and clear any residue npm leaves behind."""
        log_message(f"[SWITCH] Removing existing {self.config.package_name} installation...")
        try:
            self.npm.uninstall_global()
        except PackageManagerError as e:
            raise InstallError(f"npm uninstall of {self.config.package_name} failed: {e}")
        self.remove_residual_artifacts()

    def residual_paths(self) -> List[Path]:
        """Package directory plus npm's staging leftovers (.n8n-XXXX)."""
        root = self.npm.global_root()
        paths = [root / self.config.package_name]
        if root.is_dir():
            paths.extend(sorted(root.glob(f".{self.config.package_name}-*")))
        return paths

    def remove_residual_artifacts(self) -> int:
        """
        Best-effort removal of leftover package directories.

        Returns:
            int: Number of paths removed
        """
        removed = 0
        for path in self.residual_paths():
            if not path.exists() and not path.is_symlink():
                continue
            try:
                if path.is_dir() and not path.is_symlink():
                    shutil.rmtree(path)
                else:
                    path.unlink()
                removed += 1
                log_message(f"[SWITCH] ✓ Removed {path}")
            except OSError as e:
                log_message(f"[SWITCH] ⚠ Failed to remove {path}: {e}", "WARNING")
        return removed

    def relink_executables(self) -> None:
        """
        Recreate the global bin links for a package restored from an archive.

        npm uninstall removes <prefix>/bin/<name>, and the package archive
        only holds the package tree.

        Raises:
            InstallError: If the links cannot be recreated
        """
        try:
            links = self.npm.link_bins()
        except PackageManagerError as e:
            raise InstallError(f"Cannot relink {self.config.package_name} executables: {e}")
        for link in links:
            log_message(f"[SWITCH] ✓ Linked {link}")

    def verify_executable(self, stage: str) -> str:
        """
        Confirm the entry point is reachable and report its version.

        Raises:
            InstallError: If the executable is not on PATH
        """
        executable = self.npm.executable_path()
        if not executable:
            raise InstallError(f"{self.config.executable} binary not found after {stage}.")
        version = self.npm.package_version() or "unknown"
        log_message(f"[SWITCH] ✓ {self.config.package_name} version now installed: {version}")
        return version

    def start_service(self) -> None:
        log_message(f"[SWITCH] Starting {self.config.service_name}...")
        self.service.daemon_reload()
        try:
            self.service.start()
        except ServiceControlError as e:
            raise ServiceStartError(
                f"{self.config.service_name} failed to start: {e}. "
                f"Inspect logs with: journalctl -u {self.config.service_name}"
            )
