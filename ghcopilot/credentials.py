from __future__ import annotations

import json
import logging
import os
import sys
from pathlib import Path

logger = logging.getLogger(__name__)

TOKEN_FILES = ("hosts.json", "apps.json")


class CredentialsError(RuntimeError):
    """No GitHub OAuth token could be found."""


def _is_dir(path: str | Path | None) -> bool:
    return bool(path) and Path(path).is_dir()


def _windows_config_dir() -> Path | None:
    local_app_data = os.getenv("LOCALAPPDATA")
    if _is_dir(local_app_data):
        return Path(local_app_data)

    home = os.getenv("HOME")
    if home and _is_dir(Path(home) / "AppData" / "Local"):
        return Path(home) / "AppData" / "Local"

    return None


def copilot_config_dir() -> Path:
    """Return the directory holding the `github-copilot` token files.

    Order: $XDG_CONFIG_HOME, the Windows local app data dir, ~/.config.
    """

    xdg = os.getenv("XDG_CONFIG_HOME")
    if _is_dir(xdg):
        return Path(xdg)

    if sys.platform == "win32":
        path = _windows_config_dir()
        if path is not None:
            return path

    config_dir = Path(os.path.expanduser("~")) / ".config"
    if config_dir.is_dir():
        return config_dir

    raise CredentialsError("no valid config path found")


def extract_github_token(config: dict) -> str | None:
    """Pick the oauth_token of the first github.com host entry."""

    for host, data in config.items():
        if "github.com" not in host or not isinstance(data, dict):
            continue
        token = data.get("oauth_token")
        if isinstance(token, str) and token:
            return token
    return None


def get_github_token() -> str:
    # In Codespaces the environment token is good enough.
    token = os.getenv("GITHUB_TOKEN")
    if token and os.getenv("CODESPACES"):
        return token

    base = copilot_config_dir() / "github-copilot"
    for name in TOKEN_FILES:
        path = base / name
        try:
            config = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            continue
        if not isinstance(config, dict):
            continue

        token = extract_github_token(config)
        if token:
            logger.debug("using GitHub token from %s", path)
            return token

    raise CredentialsError("GitHub token not found in environment or config files")
