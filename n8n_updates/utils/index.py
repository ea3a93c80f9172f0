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

import json
import logging
from pathlib import Path

LOGGER_NAME = "n8n_updates"
LOG_FORMAT = '[%(asctime)s] [%(levelname)s] %(message)s'
LOG_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

logger = logging.getLogger(LOGGER_NAME)


def log_message(message, level="INFO"):
    """
    Log a message with a timestamp and level.
    Args:
        message (str): The message to log.
        level (str): Log level (e.g., 'INFO', 'ERROR').
    """
    if level == "ERROR":
        logger.error(message)
    elif level == "WARNING":
        logger.warning(message)
    elif level == "DEBUG":
        logger.debug(message)
    else:
        logger.info(message)


def attach_log_file(log_path: Path) -> logging.FileHandler:
    """
    Duplicate all log output into a transcript file.

    The handler is appended to the package logger so every component's
    messages land in the file. Callers detach it with detach_log_file().
    """
    log_path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(log_path, mode='a', encoding='utf-8')
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT))
    # Transcripts record everything; console handlers filter their own level
    logger.setLevel(logging.DEBUG)
    logger.addHandler(handler)
    return handler


def detach_log_file(handler: logging.FileHandler) -> None:
    """Flush, close and remove a transcript handler."""
    logger.removeHandler(handler)
    handler.close()


def get_module_version(module_path: str) -> str:
    """
    Get the schema version from a module's index.json file.

    Args:
        module_path (str): Path to the module directory

    Returns:
        str: The schema version from index.json, or "unknown" if not found
    """
    try:
        index_path = Path(module_path) / "index.json"
        with open(index_path, 'r') as f:
            config = json.load(f)
            return config.get("metadata", {}).get("schema_version", "unknown")
    except Exception as e:
        log_message(f"Failed to read module version from {module_path}: {e}", "DEBUG")
        return "unknown"


def format_command(cmd) -> str:
    """Render an argv list for log output."""
    return " ".join(str(part) for part in cmd)
