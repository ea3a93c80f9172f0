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
along with this program. If not, see <https://www.gnu.org/licenses/>.
"""

"""
n8n Update Module

Backs up, upgrades and rolls back the global n8n npm installation that runs
under systemd. Implements a main(argv) entrypoint like the other update
modules.
"""

import os

from .utils.index import log_message, get_module_version
from .index import main, run_upgrade, run_rollback, list_backups, build_context

__version__ = get_module_version(os.path.dirname(os.path.abspath(__file__)))

__all__ = [
    'log_message',
    'main',
    'run_upgrade',
    'run_rollback',
    'list_backups',
    'build_context'
]
