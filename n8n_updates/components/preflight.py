"""
HOMESERVER n8n Update Components
Copyright (C) 2024 HOMESERVER LLC

Preflight Checker Component

Fails fast, before anything is written, when the run cannot succeed:
- effective uid is not root
- node or npm cannot be found on PATH
"""

import os
import shutil
from dataclasses import dataclass
from typing import Callable, Optional

from n8n_updates.utils.index import log_message
from n8n_updates.utils.errors import PreconditionError


@dataclass
class Toolchain:
    """Resolved locations of the runtime and package manager."""
    npm_bin: str
    node_bin: str


class PreflightChecker:
    """Validates privilege level and required tools."""

    def __init__(self, geteuid: Callable[[], int] = os.geteuid,
                 which: Callable[[str], Optional[str]] = shutil.which):
        self.geteuid = geteuid
        self.which = which

    def check(self) -> Toolchain:
        """
        Run all precondition checks.

        Returns:
            Toolchain: Absolute paths to npm and node

        Raises:
            PreconditionError: On the first failed check
        """
        if self.geteuid() != 0:
            raise PreconditionError("Please run as root (or via sudo).")

        npm_bin = self.which("npm")
        node_bin = self.which("node")
        if not npm_bin or not node_bin:
            missing = [name for name, path in (("node", node_bin), ("npm", npm_bin)) if not path]
            raise PreconditionError(f"{' and '.join(missing)} not found in PATH.")

        log_message(f"[PREFLIGHT] ✓ node: {node_bin}, npm: {npm_bin}", "DEBUG")
        return Toolchain(npm_bin=npm_bin, node_bin=node_bin)
