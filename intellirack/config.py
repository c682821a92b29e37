"""Local configuration for the IntelliRack SDK and CLI.

Settings resolve in this order: explicit argument, environment variable,
``~/.intellirack/config.json``, built-in default.
"""

from __future__ import annotations

import json
import logging
import os
import re
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)

DEFAULT_API_BASE = "http://localhost:5000/api"

# Checked in order; the second matches the variable the mobile app reads.
API_URL_ENV_VARS = ("INTELLIRACK_API_URL", "EXPO_PUBLIC_API_URL")
TOKEN_ENV_VAR = "INTELLIRACK_TOKEN"


# ---------------------------------------------------------------------------
# Config file helpers (~/.intellirack/config.json)
# ---------------------------------------------------------------------------


def _config_path() -> Path:
    return Path.home() / ".intellirack" / "config.json"


def load_config() -> dict[str, Any]:
    """Load the local config from ``~/.intellirack/config.json``."""
    path = _config_path()
    if path.exists():
        try:
            data = json.loads(path.read_text())
        except (json.JSONDecodeError, OSError):
            logger.debug("Ignoring unreadable config at %s", path, exc_info=True)
            return {}
        return data if isinstance(data, dict) else {}
    return {}


def save_config(config: dict[str, Any]) -> None:
    """Persist config to ``~/.intellirack/config.json``."""
    path = _config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(config, indent=2) + "\n")
    path.chmod(0o600)


def get_api_base(api_base: Optional[str] = None) -> str:
    """Return the REST base URL (ending in ``/api`` on a stock backend)."""
    if api_base:
        return api_base.rstrip("/")
    for var in API_URL_ENV_VARS:
        value = os.environ.get(var, "")
        if value:
            return value.rstrip("/")
    cfg = load_config()
    return (cfg.get("api_url") or DEFAULT_API_BASE).rstrip("/")


def server_url(api_base: str) -> str:
    """Derive the server root from the API base.

    ``/health`` and the socket endpoint live on the server root, not under
    ``/api``.
    """
    return re.sub(r"/api$", "", api_base.rstrip("/"))


def get_token(token: Optional[str] = None) -> str:
    if token:
        return token
    return os.environ.get(TOKEN_ENV_VAR, "")
