"""GitHub token resolution.

The token is resolved once per invocation and handed to
:class:`~prthreads.github_api.GitHubClient`. Sources, first match wins:

1. ``github_token`` from config (``.prthreads.toml`` or the CLI)
2. ``PRTHREADS_GITHUB_TOKEN`` env var
3. ``GH_TOKEN`` env var
4. ``GITHUB_TOKEN`` env var
5. ``gh auth token`` subprocess (reads local ``~/.config/gh/hosts.yml``, no network)

Without a token requests go out anonymously, which works for public
repositories at a much lower rate limit.
"""

from __future__ import annotations

import logging
import os
import subprocess  # noqa: S404

logger = logging.getLogger(__name__)

TOKEN_ENV_VARS = ("PRTHREADS_GITHUB_TOKEN", "GH_TOKEN", "GITHUB_TOKEN")
MISSING_TOKEN_WARNING = "GitHub token not set, using anonymous API access"

_GH_TIMEOUT = 5


def _token_from_gh() -> str | None:
    try:
        result = subprocess.run(
            ["gh", "auth", "token"],  # noqa: S607
            capture_output=True,
            text=True,
            check=False,
            timeout=_GH_TIMEOUT,
        )
    except (FileNotFoundError, subprocess.TimeoutExpired, OSError):
        return None
    if result.returncode == 0 and result.stdout.strip():
        return result.stdout.strip()
    return None


def resolve_token(config_token: str | None = None, *, use_gh: bool = True) -> str | None:
    """Return the first available GitHub token, or ``None``."""
    if config_token:
        logger.debug("GitHub token resolved from config")
        return config_token

    for var in TOKEN_ENV_VARS:
        token = os.environ.get(var)
        if token:
            logger.debug("GitHub token resolved from %s", var)
            return token

    if use_gh:
        token = _token_from_gh()
        if token:
            logger.debug("GitHub token resolved from gh auth token")
            return token

    return None


def warn_if_missing_token(token: str | None) -> bool:
    """Log the anonymous-access warning when *token* is empty.

    Returns ``True`` if the warning was emitted.
    """
    if token:
        return False
    logger.warning(MISSING_TOKEN_WARNING)
    return True
