"""Tests for GitHub token resolution."""

from __future__ import annotations

import subprocess
from typing import TYPE_CHECKING
from unittest.mock import MagicMock

from prthreads.auth import MISSING_TOKEN_WARNING, resolve_token, warn_if_missing_token

if TYPE_CHECKING:
    from pytest_mock import MockerFixture


def _gh_result(returncode: int = 0, stdout: str = "") -> MagicMock:
    return MagicMock(returncode=returncode, stdout=stdout)


class TestResolveToken:
    def test_config_token_wins(self, monkeypatch, mocker: MockerFixture):
        monkeypatch.setenv("PRTHREADS_GITHUB_TOKEN", "tok_prthreads")
        run = mocker.patch("prthreads.auth.subprocess.run")
        assert resolve_token("tok_config") == "tok_config"
        run.assert_not_called()

    def test_env_var_precedence(self, monkeypatch):
        monkeypatch.setenv("GITHUB_TOKEN", "tok_github")
        monkeypatch.setenv("GH_TOKEN", "tok_gh")
        monkeypatch.setenv("PRTHREADS_GITHUB_TOKEN", "tok_prthreads")
        assert resolve_token() == "tok_prthreads"
        monkeypatch.delenv("PRTHREADS_GITHUB_TOKEN")
        assert resolve_token() == "tok_gh"
        monkeypatch.delenv("GH_TOKEN")
        assert resolve_token() == "tok_github"

    def test_falls_back_to_gh_auth_token(self, mocker: MockerFixture):
        run = mocker.patch("prthreads.auth.subprocess.run", return_value=_gh_result(stdout="tok_from_gh\n"))
        assert resolve_token() == "tok_from_gh"
        assert run.call_args.args[0] == ["gh", "auth", "token"]

    def test_gh_failure_means_no_token(self, mocker: MockerFixture):
        mocker.patch("prthreads.auth.subprocess.run", return_value=_gh_result(returncode=1))
        assert resolve_token() is None

    def test_gh_not_installed(self, mocker: MockerFixture):
        mocker.patch("prthreads.auth.subprocess.run", side_effect=FileNotFoundError)
        assert resolve_token() is None

    def test_gh_timeout(self, mocker: MockerFixture):
        mocker.patch("prthreads.auth.subprocess.run", side_effect=subprocess.TimeoutExpired("gh", 5))
        assert resolve_token() is None

    def test_gh_can_be_skipped(self, mocker: MockerFixture):
        run = mocker.patch("prthreads.auth.subprocess.run")
        assert resolve_token(use_gh=False) is None
        run.assert_not_called()


class TestWarnIfMissingToken:
    def test_warns_once_when_missing(self, caplog):
        assert warn_if_missing_token(None) is True
        assert caplog.text.count(MISSING_TOKEN_WARNING) == 1

    def test_silent_with_token(self, caplog):
        assert warn_if_missing_token("tok") is False
        assert MISSING_TOKEN_WARNING not in caplog.text
