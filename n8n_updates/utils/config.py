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
Configuration for the n8n update module.

Defaults live in index.json next to the package; environment variables and
command-line options override them. The resulting UpgradeConfig is built once
at startup and handed to every component.
"""

import os
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from .index import log_message
from .errors import PreconditionError

CONFIG_PATH = Path(__file__).resolve().parent.parent / "index.json"

DEFAULT_MODULE_CONFIG = {
    "metadata": {
        "schema_version": "1.0.0",
        "module_name": "n8n"
    },
    "config": {
        "service": {
            "name": "n8n.service",
            "dropin_root": "/etc/systemd/system"
        },
        "package": {
            "name": "n8n",
            "executable": "n8n"
        },
        "directories": {
            "backup_root": "n8n_backup",
            "data_dir": "~/.n8n",
            "filesystem_root": "/"
        },
        "health": {
            "host": "localhost",
            "port": 5678,
            "path": "/healthz",
            "timeout": 30,
            "probe_interval": 1.0,
            "probe_timeout": 2.0,
            "settle_delay": 2.0
        },
        "installation": {
            "command_timeout": 600
        },
        "retention": {
            "choices": {"1": 7, "2": 30}
        }
    }
}


def load_module_config(config_path: Path = CONFIG_PATH) -> Dict[str, Any]:
    """
    Load configuration from the module's index.json file.
    Returns:
        dict: Configuration data or default values if loading fails
    """
    try:
        with open(config_path, 'r') as f:
            return json.load(f)
    except Exception as e:
        log_message(f"Failed to load module config: {e}", "WARNING")
        return DEFAULT_MODULE_CONFIG


@dataclass
class UpgradeConfig:
    """Process-wide settings shared by every component."""
    service_name: str = "n8n.service"
    package_name: str = "n8n"
    executable: str = "n8n"
    health_host: str = "localhost"
    health_port: int = 5678
    health_path: str = "/healthz"
    health_timeout: int = 30
    probe_interval: float = 1.0
    probe_timeout: float = 2.0
    settle_delay: float = 2.0
    backup_root: Path = field(default_factory=lambda: Path.cwd() / "n8n_backup")
    data_dir: Path = field(default_factory=lambda: Path("~/.n8n").expanduser())
    dropin_root: Path = Path("/etc/systemd/system")
    filesystem_root: Path = Path("/")
    command_timeout: int = 600
    retention_choices: Dict[str, int] = field(default_factory=lambda: {"1": 7, "2": 30})

    @property
    def health_url(self) -> str:
        return f"http://{self.health_host}:{self.health_port}{self.health_path}"

    @property
    def dropin_dir(self) -> Path:
        """Drop-in override directory for the managed unit."""
        return self.dropin_root / f"{self.service_name}.d"


def _as_int(name: str, value: Any) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise PreconditionError(f"Invalid value for {name}: {value!r} (expected an integer)")
    if number <= 0:
        raise PreconditionError(f"Invalid value for {name}: {value!r} (must be positive)")
    return number


def _as_float(name: str, value: Any) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise PreconditionError(f"Invalid value for {name}: {value!r} (expected a number)")
    if number < 0:
        raise PreconditionError(f"Invalid value for {name}: {value!r} (must not be negative)")
    return number


def load_config(overrides: Optional[Mapping[str, Any]] = None,
                environ: Optional[Mapping[str, str]] = None,
                module_config: Optional[Dict[str, Any]] = None,
                cwd: Optional[Path] = None) -> UpgradeConfig:
    """
    Build the UpgradeConfig for this run.

    Precedence, lowest first: index.json, environment, explicit overrides
    (command-line options). Overrides with a value of None are ignored.

    Args:
        overrides: Field name to value, usually from argparse
        environ: Environment mapping (defaults to os.environ)
        module_config: Parsed index.json (defaults to load_module_config())
        cwd: Base for a relative backup_root (defaults to the working directory)

    Returns:
        UpgradeConfig: Fully resolved configuration

    Raises:
        PreconditionError: If a numeric setting cannot be parsed
    """
    environ = os.environ if environ is None else environ
    module_config = load_module_config() if module_config is None else module_config
    cwd = Path.cwd() if cwd is None else Path(cwd)

    config = module_config.get("config", {})
    service = config.get("service", {})
    package = config.get("package", {})
    directories = config.get("directories", {})
    health = config.get("health", {})
    installation = config.get("installation", {})
    retention = config.get("retention", {})

    values: Dict[str, Any] = {
        "service_name": service.get("name", "n8n.service"),
        "dropin_root": service.get("dropin_root", "/etc/systemd/system"),
        "package_name": package.get("name", "n8n"),
        "executable": package.get("executable", package.get("name", "n8n")),
        "backup_root": directories.get("backup_root", "n8n_backup"),
        "data_dir": directories.get("data_dir", "~/.n8n"),
        "filesystem_root": directories.get("filesystem_root", "/"),
        "health_host": health.get("host", "localhost"),
        "health_port": health.get("port", 5678),
        "health_path": health.get("path", "/healthz"),
        "health_timeout": health.get("timeout", 30),
        "probe_interval": health.get("probe_interval", 1.0),
        "probe_timeout": health.get("probe_timeout", 2.0),
        "settle_delay": health.get("settle_delay", 2.0),
        "command_timeout": installation.get("command_timeout", 600),
        "retention_choices": retention.get("choices", {"1": 7, "2": 30}),
    }

    # Environment overrides
    if environ.get("N8N_PORT"):
        values["health_port"] = environ["N8N_PORT"]
    if environ.get("N8N_HEALTH_TIMEOUT"):
        values["health_timeout"] = environ["N8N_HEALTH_TIMEOUT"]
    if environ.get("N8N_BACKUP_ROOT"):
        values["backup_root"] = environ["N8N_BACKUP_ROOT"]
    if environ.get("N8N_USER_FOLDER"):
        # n8n keeps its data in <N8N_USER_FOLDER>/.n8n
        values["data_dir"] = str(Path(environ["N8N_USER_FOLDER"]) / ".n8n")

    for key, value in (overrides or {}).items():
        if value is not None:
            values[key] = value

    backup_root = Path(values["backup_root"]).expanduser()
    if not backup_root.is_absolute():
        backup_root = cwd / backup_root

    return UpgradeConfig(
        service_name=str(values["service_name"]),
        package_name=str(values["package_name"]),
        executable=str(values["executable"]),
        health_host=str(values["health_host"]),
        health_port=_as_int("health port", values["health_port"]),
        health_path=str(values["health_path"]),
        health_timeout=_as_int("health timeout", values["health_timeout"]),
        probe_interval=_as_float("probe interval", values["probe_interval"]),
        probe_timeout=_as_float("probe timeout", values["probe_timeout"]),
        settle_delay=_as_float("settle delay", values["settle_delay"]),
        backup_root=backup_root,
        data_dir=Path(values["data_dir"]).expanduser(),
        dropin_root=Path(values["dropin_root"]),
        filesystem_root=Path(values["filesystem_root"]),
        command_timeout=_as_int("command timeout", values["command_timeout"]),
        retention_choices={str(k): _as_int("retention days", v)
                           for k, v in dict(values["retention_choices"]).items()},
    )
