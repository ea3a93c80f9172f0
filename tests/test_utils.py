"""Tests for archive helpers, the systemctl and npm wrappers, and prompts."""

import json
import subprocess
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from n8n_updates.utils.archive import create_archive, extract_archive, list_members, member_name
from n8n_updates.utils.errors import PackageManagerError, ServiceControlError
from n8n_updates.utils.npm import NpmClient, link_package_bins
from n8n_updates.utils.prompts import ConsolePrompter
from n8n_updates.utils.systemd import SystemdService


def completed(returncode=0, stdout="", stderr=""):
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)


# Archives

def test_member_names_drop_leading_slash(tmp_path):
    source = tmp_path / "pkg"
    source.mkdir()
    (source / "file.txt").write_text("x")
    archive = create_archive(source, tmp_path / "pkg.tar.gz")

    names = list_members(archive)
    assert member_name(source) in names
    assert all(not name.startswith("/") for name in names)


def test_extract_restores_original_location(tmp_path):
    source = tmp_path / "data"
    source.mkdir()
    (source / "config").write_text("original")
    archive = create_archive(source, tmp_path / "data.tar.gz")

    (source / "config").write_text("changed")
    extract_archive(archive, Path("/"))

    assert (source / "config").read_text() == "original"


def test_extract_under_alternate_root(tmp_path):
    source = tmp_path / "data"
    source.mkdir()
    (source / "config").write_text("original")
    archive = create_archive(source, tmp_path / "data.tar.gz")

    staging = tmp_path / "staging"
    staging.mkdir()
    extract_archive(archive, staging)

    assert (staging / member_name(source) / "config").read_text() == "original"


# systemctl

@patch("n8n_updates.utils.systemd.subprocess.run")
def test_systemd_stop_failure_raises(mock_run):
    mock_run.return_value = completed(returncode=5, stderr="Unit n8n.service not loaded.")

    with pytest.raises(ServiceControlError, match="not loaded"):
        SystemdService("n8n.service").stop()
    assert mock_run.call_args[0][0] == ["systemctl", "stop", "n8n.service"]


@patch("n8n_updates.utils.systemd.subprocess.run")
def test_systemd_is_active_uses_exit_code(mock_run):
    mock_run.return_value = completed(returncode=3)
    assert SystemdService("n8n.service").is_active() is False

    mock_run.return_value = completed(returncode=0)
    assert SystemdService("n8n.service").is_active() is True


@patch("n8n_updates.utils.systemd.subprocess.run")
def test_systemd_fragment_path(mock_run):
    mock_run.return_value = completed(stdout="/etc/systemd/system/n8n.service\n")
    assert SystemdService("n8n.service").fragment_path() == Path("/etc/systemd/system/n8n.service")

    mock_run.return_value = completed(stdout="\n")
    assert SystemdService("n8n.service").fragment_path() is None


@patch("n8n_updates.utils.systemd.subprocess.run", side_effect=subprocess.TimeoutExpired("systemctl", 90))
def test_systemd_timeout_becomes_service_error(mock_run):
    with pytest.raises(ServiceControlError, match="Timeout"):
        SystemdService("n8n.service").start()


# npm

@patch("n8n_updates.utils.npm.subprocess.run")
def test_npm_global_root_is_cached(mock_run):
    mock_run.return_value = completed(stdout="/usr/lib/node_modules\n")
    npm = NpmClient("/usr/bin/npm", "/usr/bin/node")

    assert npm.package_dir() == Path("/usr/lib/node_modules/n8n")
    assert npm.global_root() == Path("/usr/lib/node_modules")
    assert mock_run.call_count == 1


@patch("n8n_updates.utils.npm.subprocess.run")
def test_npm_install_passes_version_through(mock_run):
    mock_run.return_value = completed(stdout="added 1 package\n")
    NpmClient("/usr/bin/npm", "/usr/bin/node").install_global("1.70.0")

    assert mock_run.call_args[0][0] == ["/usr/bin/npm", "install", "-g", "n8n@1.70.0"]
    assert mock_run.call_args[1]["env"]["NPM_CONFIG_LOGLEVEL"] == "error"


@patch("n8n_updates.utils.npm.subprocess.run")
def test_npm_uninstall_tolerates_absent_package(mock_run):
    mock_run.return_value = completed(returncode=1, stderr="npm ERR! code ENOENT")
    assert NpmClient("/usr/bin/npm", "/usr/bin/node").uninstall_global() is False


@patch("n8n_updates.utils.npm.subprocess.run")
def test_npm_uninstall_other_errors_propagate(mock_run):
    mock_run.return_value = completed(returncode=1, stderr="npm ERR! code EACCES")
    with pytest.raises(PackageManagerError) as exc:
        NpmClient("/usr/bin/npm", "/usr/bin/node").uninstall_global()
    assert exc.value.returncode == 1
    assert not exc.value.not_found


@patch("n8n_updates.utils.npm.subprocess.run")
def test_npm_global_bin_dir_is_beside_lib(mock_run):
    mock_run.return_value = completed(stdout="/usr/local/lib/node_modules\n")
    assert NpmClient("/usr/bin/npm", "/usr/bin/node").global_bin_dir() == Path("/usr/local/bin")


def make_prefix(tmp_path, bin_field):
    package_dir = tmp_path / "lib" / "node_modules" / "n8n"
    (package_dir / "bin").mkdir(parents=True)
    (package_dir / "bin" / "n8n").write_text("#!/usr/bin/env node\n")
    (package_dir / "package.json").write_text(json.dumps({"name": "n8n", "bin": bin_field}))
    return package_dir, tmp_path / "bin"


@pytest.mark.parametrize("bin_field", [{"n8n": "bin/n8n"}, "bin/n8n"])
def test_link_package_bins_creates_relative_links(tmp_path, bin_field):
    package_dir, bin_dir = make_prefix(tmp_path, bin_field)

    links = link_package_bins(package_dir, bin_dir, "n8n")

    link = bin_dir / "n8n"
    assert links == [link]
    assert str(link.readlink()) == "../lib/node_modules/n8n/bin/n8n"
    assert link.resolve() == (package_dir / "bin" / "n8n").resolve()


def test_link_package_bins_replaces_stale_link(tmp_path):
    package_dir, bin_dir = make_prefix(tmp_path, {"n8n": "bin/n8n"})
    bin_dir.mkdir()
    (bin_dir / "n8n").symlink_to(tmp_path / "gone")

    link_package_bins(package_dir, bin_dir, "n8n")

    assert (bin_dir / "n8n").exists()


def test_link_package_bins_without_manifest(tmp_path):
    with pytest.raises(PackageManagerError, match="package.json"):
        link_package_bins(tmp_path / "missing", tmp_path / "bin", "n8n")


@patch("n8n_updates.utils.npm.shutil.which", return_value=None)
def test_package_version_none_without_executable(mock_which):
    assert NpmClient("/usr/bin/npm", "/usr/bin/node").package_version() is None


@patch("n8n_updates.utils.npm.subprocess.run")
@patch("n8n_updates.utils.npm.shutil.which", return_value="/usr/bin/n8n")
def test_package_version_from_executable(mock_which, mock_run):
    mock_run.return_value = completed(stdout="1.70.0\n")
    assert NpmClient("/usr/bin/npm", "/usr/bin/node").package_version() == "1.70.0"


# Prompts

@pytest.mark.parametrize("answer,expected", [
    ("y", True), ("Y", True), ("yes", True), ("YES", True), (" yes ", True),
    ("", False), ("n", False), ("yep", False), ("no", False),
])
def test_console_confirm(answer, expected):
    prompter = ConsolePrompter(input_func=lambda prompt: answer)
    assert prompter.confirm("Proceed with rollback?") is expected


def test_console_eof_means_no():
    def raise_eof(prompt):
        raise EOFError

    prompter = ConsolePrompter(input_func=raise_eof)
    assert prompter.confirm("Proceed?") is False
    assert prompter.ask("Enter choice [1-3]: ") == ""


def test_console_confirm_shows_default():
    input_func = MagicMock(return_value="n")
    ConsolePrompter(input_func=input_func).confirm("Proceed with rollback?")
    input_func.assert_called_once_with("Proceed with rollback? [y/N]: ")
