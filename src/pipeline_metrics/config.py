"""Configuration parsing and validation for the content pipeline metrics engine."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional, Tuple

from .errors import AuthenticationError, ConfigurationError

DEFAULT_WORKSPACES = "cloudinary,coderabbit,jozu"


@dataclass(frozen=True)
class Config:
    """Validated runtime settings used by the metrics engine."""

    workspace_ids: Tuple[str, ...]
    api_keys: Dict[str, str] = field(default_factory=dict)
    refresh_interval_seconds: int = 3600
    rate_limit_cooldown_seconds: int = 3600
    upcoming_window_days: int = 30
    page_size: int = 100
    max_workers: int = 10
    timeout_seconds: int = 30


def api_key_variable(workspace_id: str) -> str:
    """Return the environment variable holding a workspace's Linear API key."""
    normalized = workspace_id.strip().upper().replace("-", "_")
    return f"LINEAR_{normalized}_API_KEY"


def _positive_int(environ: Mapping[str, str], name: str, default: int) -> int:
    """Read a positive integer setting from the environment.

    Raises:
        ConfigurationError: If the value is not an integer greater than ``0``.
    """
    raw = environ.get(name, "").strip()
    if not raw:
        return default

    try:
        value = int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"Invalid value for '{name}': expected an integer.") from exc

    if value <= 0:
        raise ConfigurationError(f"Invalid value for '{name}': expected an integer greater than 0.")

    return value


def load_config(environ: Optional[Mapping[str, str]] = None) -> Config:
    """Build and validate application configuration from environment variables.

    Workspaces are listed in ``CONTENT_PIPELINE_WORKSPACES`` (comma separated);
    each workspace reads its key from ``LINEAR_<ID>_API_KEY``. Workspaces
    without a key stay in the configuration so they can still be displayed,
    but at least one workspace must be usable.

    Args:
        environ: Mapping to read from. Defaults to ``os.environ``.

    Returns:
        A validated ``Config`` instance.

    Raises:
        ConfigurationError: If a numeric setting is invalid or no workspace is listed.
        AuthenticationError: If no listed workspace has an API key.
    """
    env = os.environ if environ is None else environ

    raw_workspaces = env.get("CONTENT_PIPELINE_WORKSPACES", DEFAULT_WORKSPACES)
    workspace_ids: Tuple[str, ...] = tuple(
        dict.fromkeys(item.strip() for item in raw_workspaces.split(",") if item.strip())
    )
    if not workspace_ids:
        raise ConfigurationError("No workspaces configured in 'CONTENT_PIPELINE_WORKSPACES'.")
    if "all" in workspace_ids:
        raise ConfigurationError("'all' is reserved for the aggregate view and cannot be a workspace id.")

    api_keys: Dict[str, str] = {}
    for workspace_id in workspace_ids:
        key = env.get(api_key_variable(workspace_id), "").strip()
        if key:
            api_keys[workspace_id] = key

    if not api_keys:
        raise AuthenticationError(
            "Missing Linear API keys. Set at least one of "
            + ", ".join(api_key_variable(workspace_id) for workspace_id in workspace_ids)
            + " before running the metrics engine."
        )

    return Config(
        workspace_ids=workspace_ids,
        api_keys=api_keys,
        refresh_interval_seconds=_positive_int(env, "CONTENT_PIPELINE_REFRESH_INTERVAL_SECONDS", 3600),
        rate_limit_cooldown_seconds=_positive_int(env, "CONTENT_PIPELINE_RATE_LIMIT_COOLDOWN_SECONDS", 3600),
        upcoming_window_days=_positive_int(env, "CONTENT_PIPELINE_UPCOMING_WINDOW_DAYS", 30),
        page_size=_positive_int(env, "CONTENT_PIPELINE_PAGE_SIZE", 100),
        max_workers=_positive_int(env, "CONTENT_PIPELINE_MAX_WORKERS", 10),
        timeout_seconds=_positive_int(env, "CONTENT_PIPELINE_TIMEOUT_SECONDS", 30),
    )
