"""Tests for shared.build_info module."""

import importlib
import subprocess
from importlib.metadata import PackageNotFoundError
from unittest.mock import patch

import shared.build_info as build_info_module


class TestGitShortSha:
    def test_returns_output_stripped(self):
        with patch("subprocess.check_output", return_value="abc1234\n"):
            assert build_info_module._git_short_sha() == "abc1234"

    def test_returns_dev_when_git_not_found(self):
        with patch("subprocess.check_output", side_effect=FileNotFoundError):
            assert build_info_module._git_short_sha() == "dev"

    def test_returns_dev_when_git_fails(self):
        with patch("subprocess.check_output", side_effect=subprocess.CalledProcessError(128, "git")):
            assert build_info_module._git_short_sha() == "dev"


class TestInstalledVersion:
    def test_returns_dev_when_not_installed(self):
        with patch("shared.build_info.version", side_effect=PackageNotFoundError):
            assert build_info_module._installed_version() == "dev"


class TestModuleLevelConstants:
    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("APP_VERSION", "1.2.3")
        monkeypatch.setenv("GIT_COMMIT", "deadbee")
        try:
            reloaded = importlib.reload(build_info_module)
            assert reloaded.APP_VERSION == "1.2.3"
            assert reloaded.GIT_COMMIT == "deadbee"
        finally:
            monkeypatch.delenv("APP_VERSION")
            monkeypatch.delenv("GIT_COMMIT")
            importlib.reload(build_info_module)
