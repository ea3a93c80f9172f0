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
import json
import shutil
import subprocess
from pathlib import Path
from typing import Dict, List, Optional

from .index import log_message, format_command
from .errors import PackageManagerError


def read_bin_map(package_dir: Path, package_name: str) -> Dict[str, str]:
    """
    Executable name to relative script path, from package.json "bin".

    A string "bin" is shorthand for one executable named after the package.

    Raises:
        PackageManagerError: If package.json is missing or unreadable
    """
    manifest = package_dir / "package.json"
    try:
        with open(manifest, 'r') as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        raise PackageManagerError(f"Cannot read {manifest}: {e}")

    bins = data.get("bin") or {}
    if isinstance(bins, str):
        return {package_name.split("/")[-1]: bins}
    return dict(bins)


def link_package_bins(package_dir: Path, bin_dir: Path, package_name: str) -> List[Path]:
    """
    Recreate the <prefix>/bin links npm makes for a global package.

    Links are relative (../lib/node_modules/<pkg>/...) and replace whatever
    is at the link path, as `npm install -g` does.

    Returns:
        List[Path]: The links written

    Raises:
        PackageManagerError: If package.json cannot be read or a link cannot be written
    """
    links = []
    for name, script in sorted(read_bin_map(package_dir, package_name).items()):
        target = package_dir / script
        link = bin_dir / name
        try:
            bin_dir.mkdir(parents=True, exist_ok=True)
            if link.is_symlink() or link.exists():
                link.unlink()
            link.symlink_to(os.path.relpath(target, bin_dir))
            if target.is_file():
                target.chmod(target.stat().st_mode | 0o111)
        except OSError as e:
            raise PackageManagerError(f"Cannot link {link} -> {target}: {e}")
        log_message(f"Linked {link} -> {target}", "DEBUG")
        links.append(link)
    return links


class NpmClient:
    """Global install/uninstall/query operations for one npm package."""

    def __init__(self, npm_bin: str, node_bin: str, package_name: str = "n8n",
                 executable: str = "n8n", timeout: int = 600):
        self.npm_bin = npm_bin
        self.node_bin = node_bin
        self.package_name = package_name
        self.executable = executable
        self.timeout = timeout
        self._global_root: Optional[Path] = None

    def _run(self, cmd: List[str], timeout: Optional[int] = None) -> subprocess.CompletedProcess:
        log_message(f"Running: {format_command(cmd)}", "DEBUG")
        env = os.environ.copy()
        # Keep npm quiet; errors still reach stderr
        env["NPM_CONFIG_LOGLEVEL"] = "error"
        try:
            result = subprocess.run(cmd, capture_output=True, text=True,
                                    timeout=timeout or self.timeout, env=env)
        except subprocess.TimeoutExpired:
            raise PackageManagerError(f"Timed out: {format_command(cmd)}")
        except OSError as e:
            raise PackageManagerError(f"Cannot run {cmd[0]}: {e}")
        if result.returncode != 0:
            raise PackageManagerError(
                f"{format_command(cmd)} exited with {result.returncode}: {result.stderr.strip()}",
                returncode=result.returncode,
                stderr=result.stderr,
            )
        return result

    def global_root(self) -> Path:
        """Directory holding globally installed packages (npm root -g)."""
        if self._global_root is None:
            output = self._run([self.npm_bin, "root", "-g"], timeout=60).stdout.strip()
            if not output:
                raise PackageManagerError("npm root -g returned an empty path")
            self._global_root = Path(output)
        return self._global_root

    def package_dir(self) -> Path:
        return self.global_root() / self.package_name

    def global_bin_dir(self) -> Path:
        """<prefix>/bin; npm root -g is <prefix>/lib/node_modules on POSIX."""
        return self.global_root().parent.parent / "bin"

    def link_bins(self) -> List[Path]:
        """Link the package's executables into the global bin directory."""
        return link_package_bins(self.package_dir(), self.global_bin_dir(), self.package_name)

    def install_global(self, version: str = "latest") -> str:
        """
        Install <package>@<version> globally.

        The version string is passed to npm unchanged.

        Returns:
            str: npm's stdout
        """
        spec = f"{self.package_name}@{version}"
        log_message(f"Installing {spec} from npm...")
        result = self._run([self.npm_bin, "install", "-g", spec])
        lines = result.stdout.strip().split('\n') if result.stdout.strip() else []
        for line in lines[-5:]:
            log_message(f"  {line}")
        return result.stdout

    def uninstall_global(self) -> bool:
        """
        Remove the global package.

        Returns:
            bool: True if npm removed it, False if npm reported it absent

        Raises:
            PackageManagerError: For any failure other than "not installed"
        """
        try:
            self._run([self.npm_bin, "uninstall", "-g", self.package_name])
            return True
        except PackageManagerError as e:
            if e.not_found:
                log_message(f"{self.package_name} was not installed: {e.stderr.strip()}", "WARNING")
                return False
            raise

    def executable_path(self) -> Optional[str]:
        """Location of the package's entry point on PATH, if any."""
        return shutil.which(self.executable)

    def node_version(self) -> str:
        return self._run([self.node_bin, "--version"], timeout=30).stdout.strip()

    def npm_version(self) -> str:
        return self._run([self.npm_bin, "--version"], timeout=30).stdout.strip()

    def package_version(self) -> Optional[str]:
        """Version reported by the installed executable, or None if not installed."""
        executable = self.executable_path()
        if not executable:
            return None
        try:
            output = self._run([executable, "--version"], timeout=60).stdout.strip()
        except PackageManagerError as e:
            log_message(f"{self.executable} --version failed: {e}", "DEBUG")
            return None
        return output or None
