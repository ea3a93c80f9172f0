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
Gzip tar helpers.

Member names are stored the way `tar czf archive.tar.gz /abs/path` stores them:
the absolute path with the leading slash removed. Extracting over the
filesystem root therefore puts everything back where it came from, and
archives written by earlier shell-based upgrades extract identically.
"""

import tarfile
from pathlib import Path
from typing import List

from .index import log_message


def member_name(source: Path) -> str:
    """Archive member name for an absolute source path."""
    return str(Path(source).absolute()).lstrip('/')


def create_archive(source: Path, archive_path: Path) -> Path:
    """
    Archive a file or directory tree into a .tar.gz.

    Args:
        source: Path to archive (stored under its absolute path)
        archive_path: Destination .tar.gz file

    Returns:
        Path: archive_path
    """
    source = Path(source).absolute()
    with tarfile.open(archive_path, "w:gz") as tar:
        tar.add(str(source), arcname=member_name(source))
    log_message(f"Archived {source} → {archive_path.name}", "DEBUG")
    return archive_path


def list_members(archive_path: Path) -> List[str]:
    with tarfile.open(archive_path, "r:gz") as tar:
        return tar.getnames()


def extract_archive(archive_path: Path, root: Path = Path("/")) -> None:
    """
    Extract an archive over root, restoring original absolute paths.

    The "tar" filter keeps modes, ownership (when running as root) and
    symlinks, and refuses members that would land outside root.
    """
    with tarfile.open(archive_path, "r:gz") as tar:
        tar.extractall(path=str(root), filter="tar")
    log_message(f"Extracted {archive_path.name} over {root}", "DEBUG")
