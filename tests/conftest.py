"""Global test fixtures for prthreads."""

from __future__ import annotations

import pytest

from prthreads.config import Config
from prthreads.github_api import GitHubClient
from prthreads.models import PullRequestReference, Repository

_ISOLATED_ENV_VARS = (
    "PRTHREADS_GITHUB_TOKEN",
    "PRTHREADS_REPO",
    "PRTHREADS_SHOW_OUTDATED",
    "PRTHREADS_REPLY_BEFORE_RESOLVE",
    "PRTHREADS_CODE_THEME",
    "GH_TOKEN",
    "GITHUB_TOKEN",
    "GITHUB_GRAPHQL_URL",
    "GITHUB_API_URL",
)


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch, tmp_path):
    """Run every test in an empty directory with no GitHub or prthreads env vars.

    The developer's own checkout has a FETCH_HEAD and possibly a token, both
    of which would leak into reference and token resolution.
    """
    for var in _ISOLATED_ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def pr_ref() -> PullRequestReference:
    return PullRequestReference(repository=Repository(owner="o", name="r"), number=42)


@pytest.fixture
async def client():
    async with GitHubClient("tok_test") as gh:
        yield gh


@pytest.fixture
def config() -> Config:
    return Config()
