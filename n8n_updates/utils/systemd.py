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

import subprocess
from pathlib import Path
from typing import List, Optional

from .index import log_message, format_command
from .errors import ServiceControlError


class SystemdService:
    """Thin wrapper around systemctl for a single unit."""

    def __init__(self, name: str, systemctl_bin: str = "systemctl", timeout: int = 90):
        self.name = name
        self.systemctl_bin = systemctl_bin
        self.timeout = timeout

    def _run(self, args: List[str]) -> subprocess.CompletedProcess:
        cmd = [self.systemctl_bin] + args
        log_message(f"Running: {format_command(cmd)}", "DEBUG")
        try:
            return subprocess.run(cmd, capture_output=True, text=True, timeout=self.timeout)
        except subprocess.TimeoutExpired:
            raise ServiceControlError(f"Timeout running: {format_command(cmd)}")
        except OSError as e:
            raise ServiceControlError(f"Cannot run {self.systemctl_bin}: {e}")

    def _check(self, args: List[str]) -> str:
        result = self._run(args)
        if result.returncode != 0:
            raise ServiceControlError(
                f"systemctl {' '.join(args)} failed: {result.stderr.strip() or result.returncode}"
            )
        return result.stdout

    def stop(self) -> None:
        """Issue a stop; returns once systemctl has accepted it."""
        self._check(["stop", self.name])

    def start(self) -> None:
        self._check(["start", self.name])

    def daemon_reload(self) -> None:
        self._check(["daemon-reload"])

    def is_active(self) -> bool:
        """Check if the unit is active."""
        try:
            result = self._run(["is-active", "--quiet", self.name])
        except ServiceControlError as e:
            log_message(f"Could not query {self.name} status: {e}", "WARNING")
            return False
        return result.returncode == 0

    def fragment_path(self) -> Optional[Path]:
        """Path of the unit file systemd loaded, or None if it has none."""
        value = self._check(["show", "-p", "FragmentPath", "--value", self.name]).strip()
        return Path(value) if value else None

    def cat(self) -> str:
        """Fully merged unit definition (source file plus drop-ins)."""
        return self._check(["cat", self.name])
