"""
Tests for the click command-line shell.
"""

import pytest
from click.testing import CliRunner

from modpack_installer import cli


@pytest.fixture
def runner(monkeypatch):
    # keep the root logger untouched between tests
    monkeypatch.setattr(cli, "configure_logging", lambda *args, **kwargs: None)
    return CliRunner()


@pytest.fixture
def service_deps(monkeypatch, fetcher, launcher):
    """Route the CLI's service through the in-memory fetcher and launcher."""
    original = cli.InstallerService

    def make_service(paths):
        return original(paths, fetcher=fetcher, launcher=launcher)

    monkeypatch.setattr(cli, "InstallerService", make_service)


def test_status(runner, paths, pack):
    result = runner.invoke(cli.main, ["--install-dir", str(paths.install_dir), "status"])

    assert result.exit_code == 0, result.output
    assert "Available" in result.output


def test_install_and_update(runner, service_deps, paths, launcher, pack):
    result = runner.invoke(cli.main, ["--install-dir", str(paths.install_dir), "install"])

    assert result.exit_code == 0, result.output
    assert "Install complete!" in result.output
    assert (paths.mods_dir / "alpha-5001.jar").exists()
    assert len(launcher.profiles) == 1

    result = runner.invoke(cli.main, ["--install-dir", str(paths.install_dir), "update"])
    assert result.exit_code == 1
    assert "No update is needed." in result.output


def test_install_reports_alerts(runner, service_deps, paths, launcher, pack):
    launcher.fail_profile = True

    result = runner.invoke(cli.main, ["--install-dir", str(paths.install_dir), "install"])

    assert result.exit_code == 0, result.output
    assert "Could not add the launcher profile" in result.output


def test_install_failure_exits_nonzero(runner, service_deps, paths, fetcher, pack):
    fetcher.fail_after = 0

    result = runner.invoke(cli.main, ["--install-dir", str(paths.install_dir), "install"])

    assert result.exit_code == 1
    assert "Error:" in result.output


def test_install_dir_from_env(runner, monkeypatch, paths, pack):
    monkeypatch.setenv("MODPACK_INSTALL_DIR", str(paths.install_dir))

    result = runner.invoke(cli.main, ["status"])

    assert result.exit_code == 0, result.output
    assert "Available" in result.output
