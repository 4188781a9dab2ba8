"""Configuration for prthreads.

Settings are layered, lowest to highest precedence:

1. Field defaults on :class:`Config`
2. ``.prthreads.toml`` found by walking up from the working directory to the ``.git`` root
3. ``PRTHREADS_*`` environment variables (e.g. ``PRTHREADS_REPO``)
4. Command-line flags, applied with :meth:`Config.with_overrides`
"""

from __future__ import annotations

import logging
import os
import tomllib
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".prthreads.toml"
ENV_PREFIX = "PRTHREADS_"


class Config(BaseModel):
    """Top-level prthreads configuration."""

    model_config = ConfigDict(extra="ignore")

    repo: str | None = Field(
        default=None,
        description="Fallback repository ('owner/repo') when neither a URL nor FETCH_HEAD names one",
    )
    github_token: str | None = Field(
        default=None,
        repr=False,
        description="GitHub token; takes precedence over GH_TOKEN / GITHUB_TOKEN / gh auth token",
    )
    show_outdated: bool = Field(default=False, description="Include outdated threads in 'pr' output")
    reply_before_resolve: bool = Field(
        default=True,
        description="Post the 'resolve --message' text as a reply before resolving",
    )
    code_theme: str = Field(default="monokai", description="Pygments theme for diff blocks")

    def with_overrides(self, **overrides: Any) -> Config:
        """Return a copy with every non-``None`` override applied."""
        update = {key: value for key, value in overrides.items() if value is not None}
        if not update:
            return self
        return self.model_validate({**self.model_dump(), **update})


def _collect_unknown_keys(data: dict[str, Any]) -> list[str]:
    """Return the top-level keys in *data* that :class:`Config` does not define."""
    known = set(Config.model_fields)
    return [key for key in data if key not in known]


def _find_config_file(start: Path) -> Path | None:
    """Walk up from *start* looking for ``.prthreads.toml``, stopping at the ``.git`` root."""
    current = start.resolve()
    while True:
        candidate = current / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
        if current.parent == current:
            return None
        if (current / ".git").exists():
            return None
        current = current.parent


def _env_overrides() -> dict[str, str]:
    """Collect ``PRTHREADS_<FIELD>`` variables for known config fields."""
    overrides: dict[str, str] = {}
    for field in Config.model_fields:
        value = os.environ.get(f"{ENV_PREFIX}{field.upper()}")
        if value is not None and value != "":
            overrides[field] = value
    return overrides


def _read_toml(path: Path) -> dict[str, Any]:
    try:
        return tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        msg = f"Invalid TOML in {path}: {exc}"
        raise ValueError(msg) from exc


def load_config(cwd: str | Path | None = None) -> tuple[Config, Path | None]:
    """Load configuration from ``.prthreads.toml`` and ``PRTHREADS_*`` env vars.

    Returns:
        (config, config_path): the merged config and the file it was read
        from, or ``None`` when no config file was found.

    Raises:
        ValueError: On invalid TOML or values that fail validation.
    """
    start = Path(cwd) if cwd else Path.cwd()
    config_path = _find_config_file(start)

    data: dict[str, Any] = {}
    if config_path is None:
        logger.debug("No %s found, using defaults", CONFIG_FILENAME)
    else:
        logger.debug("Loading config from %s", config_path)
        data = _read_toml(config_path)
        for key in _collect_unknown_keys(data):
            logger.warning("Unknown config key '%s' in %s", key, config_path)

    env = _env_overrides()
    if env:
        logger.debug("Config overrides from environment: %s", sorted(env))

    source = config_path or "environment"
    try:
        config = Config.model_validate({**data, **env})
    except ValidationError as exc:
        msg = f"Invalid config in {source}: {exc}"
        raise ValueError(msg) from exc

    return config, config_path
