"""Configuration loading and merging for upgit.

Handles TOML loading, config discovery, deep merging, and environment overlay.
"""

from __future__ import annotations

import copy
import os
import sys
import warnings
from pathlib import Path
from typing import Any, Dict, Optional

# TOML loading: tomllib (3.11+) with tomli fallback
if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

from pydantic import ValidationError

from .config_schema import UpgitConfig
from .credentials import get_github_token, get_ssh_key_path
from .errors import ConfigError


# Config file names
CONFIG_FILENAME = "config.toml"

# Directory names
USER_CONFIG_DIR = ".upgit"
PROJECT_CONFIG_DIR = ".upgit"

# Environment variable -> (section path, key)
ENV_MAPPING: Dict[str, tuple[list[str], str]] = {
    "UPGIT_SOURCE_NAME": (["source"], "name"),
    "UPGIT_SOURCE_REPO_URL": (["source"], "repo_url"),
    "UPGIT_SOURCE_FILE_PATH": (["source"], "file_path"),
    "UPGIT_SOURCE_BASE_BRANCH": (["source"], "base_branch"),
    "UPGIT_TARGET_NAME": (["target"], "name"),
    "UPGIT_TARGET_REPO_URL": (["target"], "repo_url"),
    "UPGIT_TARGET_FILE_PATH": (["target"], "file_path"),
    "UPGIT_AUTHOR_NAME": (["author"], "name"),
    "UPGIT_AUTHOR_EMAIL": (["author"], "email"),
    "UPGIT_GITHUB_USER": (["github"], "user"),
    "UPGIT_GITHUB_TOKEN": (["github"], "token"),
    "UPGIT_GITHUB_API_URL": (["github"], "api_url"),
    "UPGIT_GIT_SSH_KEY": (["transport"], "ssh_key"),
    "UPGIT_ACCEPT_UNKNOWN_HOSTS": (["transport"], "accept_unknown_hosts"),
    "UPGIT_HTTPS_TOKEN": (["transport"], "https_token"),
    "UPGIT_TMP_ROOT": (["transport"], "tmp_root"),
}


def _get_user_config_dir() -> Path:
    """Get user-level config directory (~/.upgit/)."""
    return Path.home() / USER_CONFIG_DIR


def _get_project_config_dir(project_path: Optional[Path] = None) -> Optional[Path]:
    """Get project-level config directory (.upgit/).

    Searches upward from project_path to find a .upgit/ directory.
    """
    if project_path is None:
        project_path = Path.cwd()

    if not project_path.is_absolute():
        project_path = project_path.resolve()

    current = project_path
    while current != current.parent:
        config_dir = current / PROJECT_CONFIG_DIR
        # ~/.upgit is the user dir, not a project dir
        if config_dir.is_dir() and config_dir != _get_user_config_dir():
            return config_dir
        current = current.parent

    return None


def _load_toml(path: Path) -> Dict[str, Any]:
    """Load a TOML file.

    Raises:
        ConfigError: If file cannot be loaded or parsed
    """
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except FileNotFoundError:
        raise ConfigError(f"Config file not found: {path}")
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid TOML in {path}: {e}")


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Deep merge two dictionaries.

    Override values take precedence. Nested dicts are merged recursively.
    Lists are replaced, not merged.
    """
    result = base.copy()

    for key, value in override.items():
        if (
            key in result
            and isinstance(result[key], dict)
            and isinstance(value, dict)
        ):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value

    return result


def _env_to_config_key(env_var: str) -> tuple[list[str], str]:
    """Map environment variable to config path.

    Examples:
        UPGIT_SOURCE_NAME -> (["source"], "name")
        UPGIT_GIT_SSH_KEY -> (["transport"], "ssh_key")
    """
    return ENV_MAPPING.get(env_var, ([], env_var))


def _apply_env_overlay(config_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Apply environment variable overrides to config dict."""
    result = copy.deepcopy(config_dict)

    for env_var in ENV_MAPPING:
        value = os.getenv(env_var)
        if value is None:
            continue

        section_path, key_name = _env_to_config_key(env_var)
        current = result
        for section in section_path:
            current = current.setdefault(section, {})

        # Type conversion happens during Pydantic validation
        current[key_name] = value

    return result


def _apply_credential_fallbacks(config_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Fill the GitHub token and SSH key from credentials when not configured."""
    result = copy.deepcopy(config_dict)

    github = result.setdefault("github", {})
    if not github.get("token"):
        token = get_github_token()
        if token:
            github["token"] = token

    transport = result.setdefault("transport", {})
    if not transport.get("ssh_key"):
        key_path = get_ssh_key_path()
        if key_path:
            transport["ssh_key"] = str(key_path)

    return result


def load_config(
    config_path: Optional[Path] = None,
    project_path: Optional[Path] = None,
    skip_env: bool = False,
) -> UpgitConfig:
    """Load and merge upgit configuration.

    Discovery order (later sources override earlier):
    1. User config (~/.upgit/config.toml)
    2. Project config (.upgit/config.toml, searched upward)
    3. Explicit config file (config_path)
    4. Environment variables (unless skip_env=True)

    The GitHub token falls back to GITHUB_TOKEN / GH_TOKEN and then to
    ~/.upgit/credentials.toml.

    Raises:
        ConfigError: If config files are invalid
    """
    config_dict: Dict[str, Any] = {}

    # 1. User config
    user_config_path = _get_user_config_dir() / CONFIG_FILENAME
    if user_config_path.exists():
        try:
            config_dict = _deep_merge(config_dict, _load_toml(user_config_path))
        except ConfigError as e:
            # User config is optional, warn but continue
            warnings.warn(
                f"Skipping invalid user config at {user_config_path}: {e}",
                UserWarning,
            )

    # 2. Project config
    project_config_dir = _get_project_config_dir(project_path)
    if project_config_dir:
        project_config_path = project_config_dir / CONFIG_FILENAME
        if project_config_path.exists():
            try:
                config_dict = _deep_merge(config_dict, _load_toml(project_config_path))
            except ConfigError as e:
                raise ConfigError(f"Invalid project config: {e}")

    # 3. Explicit config file
    if config_path is not None:
        config_dict = _deep_merge(config_dict, _load_toml(Path(config_path)))

    # 4. Environment overlay
    if not skip_env:
        config_dict = _apply_env_overlay(config_dict)
        config_dict = _apply_credential_fallbacks(config_dict)

    try:
        return UpgitConfig.model_validate(config_dict)
    except ValidationError as e:
        raise ConfigError(f"Config validation failed:\n{e}")


def get_config_paths(
    config_path: Optional[Path] = None,
    project_path: Optional[Path] = None,
) -> Dict[str, Optional[Path]]:
    """Get paths to all config files, in priority order."""
    user_dir = _get_user_config_dir()
    project_dir = _get_project_config_dir(project_path)

    return {
        "user_config": user_dir / CONFIG_FILENAME,
        "project_config": project_dir / CONFIG_FILENAME if project_dir else None,
        "explicit_config": Path(config_path) if config_path else None,
    }


def ensure_config_dir(user: bool = True, project_path: Optional[Path] = None) -> Path:
    """Ensure config directory exists.

    Args:
        user: Create user config dir (~/.upgit/)
        project_path: Where to create the project config dir (.upgit/)

    Returns:
        Path to created/existing config directory
    """
    if user:
        config_dir = _get_user_config_dir()
    else:
        if project_path is None:
            project_path = Path.cwd()
        config_dir = project_path / PROJECT_CONFIG_DIR

    config_dir.mkdir(parents=True, exist_ok=True)
    return config_dir
