"""Pytest configuration and fixtures for n8n_updates tests."""

import json
import logging
import shutil
from pathlib import Path
from typing import List, Optional
from unittest.mock import MagicMock

import pytest

from n8n_updates.index import build_context
from n8n_updates.utils.config import UpgradeConfig
from n8n_updates.utils.npm import link_package_bins


class ScriptedPrompter:
    """Answers confirmations and menus from fixed lists; records every prompt."""

    def __init__(self, confirms: Optional[List[bool]] = None, asks: Optional[List[str]] = None):
        self.confirms = list(confirms or [])
        self.asks = list(asks or [])
        self.prompts: List[str] = []

    def confirm(self, prompt: str) -> bool:
        self.prompts.append(prompt)
        return self.confirms.pop(0) if self.confirms else False

    def ask(self, prompt: str) -> str:
        self.prompts.append(prompt)
        return self.asks.pop(0) if self.asks else ""


class FakeService:
    """In-memory stand-in for SystemdService backed by real unit files under tmp."""

    def __init__(self, name: str, unit_path: Path, becomes_active: bool = True):
        self.name = name
        self.unit_path = unit_path
        self.becomes_active = becomes_active
        self.active = True
        self.calls: List[str] = []
        self.cat_error: Optional[Exception] = None
        self.start_error: Optional[Exception] = None

    def stop(self):
        self.calls.append("stop")
        self.active = False

    def start(self):
        self.calls.append("start")
        if self.start_error:
            raise self.start_error
        self.active = self.becomes_active

    def daemon_reload(self):
        self.calls.append("daemon-reload")

    def is_active(self):
        self.calls.append("is-active")
        return self.active

    def fragment_path(self):
        return self.unit_path

    def cat(self):
        self.calls.append("cat")
        if self.cat_error:
            raise self.cat_error
        text = self.unit_path.read_text() if self.unit_path.exists() else ""
        return f"# {self.unit_path}\n{text}"


class FakeNpm:
    """
    npm stand-in laid out like a real global prefix under a temporary root.

    Packages live in <prefix>/lib/node_modules; the executable on PATH is the
    <prefix>/bin link, which install creates and uninstall removes.
    """

    def __init__(self, global_root: Path, package_name: str = "n8n"):
        self._root = global_root
        self.bin_dir = global_root.parent.parent / "bin"
        self.package_name = package_name
        self.calls: List[str] = []
        self.install_error: Optional[Exception] = None
        self.uninstall_error: Optional[Exception] = None
        self.skip_executable = False

    def global_root(self) -> Path:
        return self._root

    def package_dir(self) -> Path:
        return self._root / self.package_name

    def install_global(self, version: str = "latest") -> str:
        self.calls.append(f"install {version}")
        if self.install_error:
            raise self.install_error
        resolved = "1.99.0" if version == "latest" else version
        write_package(self.package_dir(), resolved, with_bin=not self.skip_executable)
        self.link_bins()
        return ""

    def uninstall_global(self) -> bool:
        self.calls.append("uninstall")
        if self.uninstall_error:
            raise self.uninstall_error
        link = self.bin_dir / self.package_name
        if link.is_symlink():
            link.unlink()
        if self.package_dir().exists():
            shutil.rmtree(self.package_dir())
            return True
        return False

    def global_bin_dir(self) -> Path:
        return self.bin_dir

    def link_bins(self) -> List[Path]:
        return link_package_bins(self.package_dir(), self.bin_dir, self.package_name)

    def executable_path(self) -> Optional[str]:
        link = self.bin_dir / self.package_name
        return str(link) if link.exists() else None

    def node_version(self) -> str:
        return "v20.11.0"

    def npm_version(self) -> str:
        return "10.2.4"

    def package_version(self) -> Optional[str]:
        manifest = self.package_dir() / "package.json"
        if not manifest.exists():
            return None
        return json.loads(manifest.read_text())["version"]


def write_package(package_dir: Path, version: str, with_bin: bool = True) -> None:
    package_dir.mkdir(parents=True, exist_ok=True)
    manifest = {"name": "n8n", "version": version}
    if with_bin:
        manifest["bin"] = {"n8n": "bin/n8n"}
    (package_dir / "package.json").write_text(json.dumps(manifest))
    if with_bin:
        (package_dir / "bin").mkdir(exist_ok=True)
        (package_dir / "bin" / "n8n").write_text("#!/usr/bin/env node\n")


def snapshot_tree(root: Path) -> dict:
    """Relative path -> bytes for every file under root."""
    return {
        str(p.relative_to(root)): p.read_bytes()
        for p in sorted(root.rglob("*")) if p.is_file()
    }


@pytest.fixture(autouse=True)
def reset_package_logger():
    """Drop handlers main() attaches so they never outlive a test's captured stdout."""
    yield
    logger = logging.getLogger("n8n_updates")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def fake_root(tmp_path):
    """A miniature filesystem: npm global root, data dir, unit file and drop-ins."""
    root = tmp_path / "fs"
    global_root = root / "usr" / "lib" / "node_modules"
    global_root.mkdir(parents=True)
    write_package(global_root / "n8n", "1.60.0")
    link_package_bins(global_root / "n8n", root / "usr" / "bin", "n8n")

    data_dir = root / "root" / ".n8n"
    data_dir.mkdir(parents=True)
    (data_dir / "config").write_text('{"encryptionKey": "original"}')
    (data_dir / "database.sqlite").write_bytes(b"sqlite-original")

    unit_dir = root / "lib" / "systemd" / "system"
    unit_dir.mkdir(parents=True)
    (unit_dir / "n8n.service").write_text("[Service]\nExecStart=/usr/bin/n8n\n")

    dropin_root = root / "etc" / "systemd" / "system"
    dropin = dropin_root / "n8n.service.d"
    dropin.mkdir(parents=True)
    (dropin / "override.conf").write_text("[Service]\nEnvironment=N8N_PORT=5678\n")
    return root


@pytest.fixture
def config(tmp_path, fake_root):
    return UpgradeConfig(
        backup_root=tmp_path / "n8n_backup",
        data_dir=fake_root / "root" / ".n8n",
        dropin_root=fake_root / "etc" / "systemd" / "system",
        filesystem_root=Path("/"),
        health_timeout=30,
        settle_delay=0,
        probe_interval=0,
    )


@pytest.fixture
def fake_service(fake_root):
    return FakeService("n8n.service", fake_root / "lib" / "systemd" / "system" / "n8n.service")


@pytest.fixture
def fake_npm(fake_root):
    return FakeNpm(fake_root / "usr" / "lib" / "node_modules")


@pytest.fixture
def http_session():
    session = MagicMock()
    session.get.return_value = MagicMock(status_code=200)
    return session


@pytest.fixture
def prompter():
    return ScriptedPrompter()


@pytest.fixture
def make_context(config, fake_service, fake_npm, http_session):
    def _make(prompter):
        return build_context(config, fake_service, fake_npm, prompter,
                             session=http_session, sleep=lambda seconds: None)
    return _make

