"""Tests for the CLI module."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import pytest
import respx
from helpers.payloads import GraphQLStub, comment_node, review_node, reviews_response, thread_node, threads_response
from httpx import Response

from prthreads import cli
from prthreads.config import CONFIG_FILENAME
from prthreads.rendering import END_BANNER, NO_COMMENTS_FOR_DISCUSSION, NO_COMMENTS_FOR_FILES, START_BANNER

if TYPE_CHECKING:
    from pytest_mock import MockerFixture

GRAPHQL = "https://api.github.com/graphql"
PR_URL = "https://github.com/o/r/pull/42"


@pytest.fixture(autouse=True)
def _token_and_logging(monkeypatch):
    """Provide a token and restore the root logger that the CLI reconfigures."""
    monkeypatch.setenv("GITHUB_TOKEN", "tok_test")
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


def _snapshot_stub() -> GraphQLStub:
    return GraphQLStub(
        reviews=[reviews_response([review_node("carol", "CHANGES_REQUESTED", body="Needs work")])],
        threads=[
            threads_response([
                thread_node("T1", [comment_node(1, "Rename this variable")], path="src/app.py"),
                thread_node("T2", [comment_node(2, "Already handled")], path="src/app.py", resolved=True),
                thread_node("T3", [comment_node(3, "Stale remark")], path="docs/index.md", outdated=True),
                thread_node("T4", [comment_node(4, "Typo here")], path="README.md"),
            ]),
        ],
    )


# ---------------------------------------------------------------------------
# pr
# ---------------------------------------------------------------------------


class TestPrCommand:
    def test_renders_unresolved_threads(self, capsys):
        with respx.mock:
            respx.post(GRAPHQL).mock(side_effect=_snapshot_stub())
            cli.pr(PR_URL)

        out = capsys.readouterr().out
        assert out.startswith(START_BANNER)
        assert out.rstrip().endswith(END_BANNER)
        assert "carol" in out
        assert "CHANGES_REQUESTED" in out
        assert "Rename this variable" in out
        assert "Typo here" in out
        assert "Already handled" not in out
        assert "Stale remark" not in out
        assert "new_call()" in out

    def test_raw_output_shows_each_diff_once(self, capsys):
        stub = GraphQLStub(
            threads=[
                threads_response([
                    thread_node(
                        "T1",
                        [
                            comment_node(1, created_at="2026-02-06T10:00:00Z"),
                            comment_node(2, created_at="2026-02-06T11:00:00Z"),
                            comment_node(3, created_at="2026-02-06T12:00:00Z"),
                        ],
                    ),
                ]),
            ],
        )
        with respx.mock:
            respx.post(GRAPHQL).mock(side_effect=stub)
            cli.pr(PR_URL, raw=True)

        out = capsys.readouterr().out
        assert out.count("```diff") == 1
        assert sum(f"#discussion_r{i}" in out for i in (1, 2, 3)) == 3

    def test_show_outdated(self, capsys):
        with respx.mock:
            respx.post(GRAPHQL).mock(side_effect=_snapshot_stub())
            cli.pr(PR_URL, show_outdated=True)

        out = capsys.readouterr().out
        assert "Stale remark" in out
        assert "Already handled" not in out

    def test_show_outdated_from_config(self, tmp_path, capsys):
        (tmp_path / CONFIG_FILENAME).write_text("show_outdated = true\n", encoding="utf-8")
        with respx.mock:
            respx.post(GRAPHQL).mock(side_effect=_snapshot_stub())
            cli.pr(PR_URL)

        assert "Stale remark" in capsys.readouterr().out

    def test_file_filter(self, capsys):
        with respx.mock:
            respx.post(GRAPHQL).mock(side_effect=_snapshot_stub())
            cli.pr(PR_URL, "README.md")

        out = capsys.readouterr().out
        assert "Typo here" in out
        assert "Rename this variable" not in out

    def test_file_filter_without_matches(self, capsys):
        with respx.mock:
            respx.post(GRAPHQL).mock(side_effect=_snapshot_stub())
            cli.pr(PR_URL, "nothing.py")

        out = capsys.readouterr().out
        assert NO_COMMENTS_FOR_FILES in out
        assert out.rstrip().endswith(END_BANNER)

    def test_single_discussion(self, capsys):
        with respx.mock:
            respx.post(GRAPHQL).mock(side_effect=_snapshot_stub())
            cli.pr(f"{PR_URL}#discussion_r4", "src/app.py")

        out = capsys.readouterr().out
        assert "Typo here" in out
        assert "Rename this variable" not in out

    def test_resolved_discussion_is_empty(self, capsys):
        with respx.mock:
            respx.post(GRAPHQL).mock(side_effect=_snapshot_stub())
            cli.pr(f"{PR_URL}#discussion_r2")

        assert NO_COMMENTS_FOR_DISCUSSION in capsys.readouterr().out

    def test_bare_number_uses_repo_flag(self, capsys):
        stub = _snapshot_stub()
        with respx.mock:
            respx.post(GRAPHQL).mock(side_effect=stub)
            cli.pr("42", repo="acme/widgets")

        assert {c["variables"]["owner"] for c in stub.calls} == {"acme"}
        assert START_BANNER in capsys.readouterr().out

    def test_graphql_errors_exit_non_zero(self, capsys):
        stub = GraphQLStub(threads=[{"data": None, "errors": [{"message": "boom"}, {"message": "bang"}]}])
        with respx.mock:
            respx.post(GRAPHQL).mock(side_effect=stub)
            with pytest.raises(SystemExit) as exc_info:
                cli.pr(PR_URL)

        assert exc_info.value.code == 1
        assert "boom; bang" in capsys.readouterr().err

    def test_missing_repository_exit_non_zero(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            cli.pr("42")

        assert exc_info.value.code == 1
        err = capsys.readouterr().err
        assert "error:" in err
        assert "Could not determine the repository" in err

    def test_invalid_config_exit_non_zero(self, tmp_path, capsys):
        (tmp_path / CONFIG_FILENAME).write_text("repo = [", encoding="utf-8")
        with pytest.raises(SystemExit) as exc_info:
            cli.pr(PR_URL)

        assert exc_info.value.code == 1
        assert "Invalid TOML" in capsys.readouterr().err

    def test_missing_token_warns(self, monkeypatch, mocker: MockerFixture, capsys):
        monkeypatch.delenv("GITHUB_TOKEN")
        mocker.patch("prthreads.auth.subprocess.run", side_effect=FileNotFoundError)
        with respx.mock:
            route = respx.post(GRAPHQL).mock(side_effect=_snapshot_stub())
            cli.pr(PR_URL)

        assert "GitHub token not set, using anonymous API access" in capsys.readouterr().err
        assert "Authorization" not in route.calls.last.request.headers


# ---------------------------------------------------------------------------
# resolve
# ---------------------------------------------------------------------------


class TestResolveCommand:
    def _stub(self) -> GraphQLStub:
        return GraphQLStub(
            threads=[threads_response([thread_node("T1", [comment_node(123)])])],
            mutation=[{"data": {"resolveReviewThread": {"thread": {"id": "T1", "isResolved": True}}}}],
        )

    def test_resolves(self, capsys):
        with respx.mock:
            respx.post(GRAPHQL).mock(side_effect=self._stub())
            cli.resolve(f"{PR_URL}#discussion_r123")

        assert "Resolved thread T1" in capsys.readouterr().out

    def test_replies_when_enabled(self):
        with respx.mock:
            replies = respx.post("https://api.github.com/repos/o/r/pulls/42/comments/123/replies").mock(
                return_value=Response(201, json={"id": 1}),
            )
            respx.post(GRAPHQL).mock(side_effect=self._stub())
            cli.resolve(f"{PR_URL}#discussion_r123", message="Fixed")

        assert replies.called

    def test_reply_disabled_by_config(self, tmp_path):
        (tmp_path / CONFIG_FILENAME).write_text("reply_before_resolve = false\n", encoding="utf-8")
        # no replies route: posting one would fail as unmocked
        with respx.mock:
            respx.post(GRAPHQL).mock(side_effect=self._stub())
            cli.resolve(f"{PR_URL}#discussion_r123", message="Fixed")

    def test_unknown_comment_exit_non_zero(self, capsys):
        with respx.mock:
            respx.post(GRAPHQL).mock(side_effect=self._stub())
            with pytest.raises(SystemExit) as exc_info:
                cli.resolve(f"{PR_URL}#discussion_r999")

        assert exc_info.value.code == 1
        assert "Comment 999 not found" in capsys.readouterr().err


# ---------------------------------------------------------------------------
# issue / main
# ---------------------------------------------------------------------------


class TestIssueCommand:
    def test_not_implemented(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            cli.issue("7")

        assert exc_info.value.code == 1
        assert "not yet implemented" in capsys.readouterr().err


class TestMain:
    def test_broken_pipe_exits_quietly(self, mocker: MockerFixture):
        mocker.patch.object(cli, "app", side_effect=BrokenPipeError)
        mocker.patch("prthreads.cli.sys.stdout")
        mocker.patch("prthreads.cli.os.open", return_value=99)
        dup2 = mocker.patch("prthreads.cli.os.dup2")

        with pytest.raises(SystemExit) as exc_info:
            cli.main()

        assert exc_info.value.code == 0
        dup2.assert_called_once()


class TestSetupLogging:
    def test_verbose_enables_debug(self):
        cli.setup_logging(verbose=True)
        assert logging.getLogger().level == logging.DEBUG

    def test_default_is_warning(self):
        cli.setup_logging()
        assert logging.getLogger().level == logging.WARNING
