"""Configuration management with XDG paths and precedence resolution.

This module handles all persistent configuration for reqflow:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.reqflow/`` on macOS and Windows.  See :func:`get_config_dir`,
  :func:`get_cache_dir`, :func:`get_data_dir`.
* **Global config** -- a single :class:`~reqflow.models.ClientConfig`
  file (``config.json``, ``config.yaml`` or ``config.yml``) holding the
  defaults of every client the CLI builds.
* **Project config** -- ``./reqflow.json`` (or ``.yaml``/``.yml``) layered
  on top of the global config.
* **Precedence resolution** -- :func:`resolve_client_config` merges CLI
  flags, environment variables, project config, and global config into
  the final :class:`~reqflow.models.ClientConfig`.
"""

from __future__ import annotations

import json
import os
import platform
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import ValidationError

from reqflow.exceptions import ConfigError
from reqflow.models import ClientConfig, by_field_name

_APP_NAME = "reqflow"
_CONFIG_STEM = "config"
_PROJECT_CONFIG_STEM = "reqflow"
_CONFIG_SUFFIXES = (".json", ".yaml", ".yml")

_ENV_PREFIX = "REQFLOW_"
_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
_FALSE_VALUES = frozenset({"0", "false", "no", "off"})


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True on platforms that follow the XDG Base Directory layout (Linux/BSD)."""
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _fallback_base_dir() -> Path:
    """Fallback base directory for non-XDG platforms (macOS, Windows)."""
    return Path.home() / f".{_APP_NAME}"


def _xdg_base(env_var: str, default_segments: tuple[str, ...]) -> Path:
    """Resolve an XDG base directory from an env var with fallback segments under $HOME."""
    env_value = os.environ.get(env_var, "")
    if env_value:
        return Path(env_value)
    base = Path.home()
    for seg in default_segments:
        base = base / seg
    return base


def get_config_dir() -> Path:
    """Return the configuration directory, creating it if necessary.

    On Linux/BSD: ``$XDG_CONFIG_HOME/reqflow/`` (default ``~/.config/reqflow/``).
    On macOS/Windows: ``~/.reqflow/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CONFIG_HOME", (".config",)) / _APP_NAME
    else:
        path = _fallback_base_dir()
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_cache_dir() -> Path:
    """Return the cache directory, creating it if necessary.

    Holds the CLI's persistent response cache.  Cached data can be safely
    deleted at any time.

    On Linux/BSD: ``$XDG_CACHE_HOME/reqflow/`` (default ``~/.cache/reqflow/``).
    On macOS/Windows: ``~/.reqflow/cache/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CACHE_HOME", (".cache",)) / _APP_NAME
    else:
        path = _fallback_base_dir() / "cache"
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_dir() -> Path:
    """Return the data directory (crash logs), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/reqflow/`` (default ``~/.local/share/reqflow/``).
    On macOS/Windows: ``~/.reqflow/logs/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_DATA_HOME", (".local", "share")) / _APP_NAME
    else:
        path = _fallback_base_dir() / "logs"
    path.mkdir(parents=True, exist_ok=True)
    return path


# --- File loading ---


def _find_config_file(directory: Path, stem: str) -> Optional[Path]:
    """Return the first existing ``<stem>.json|.yaml|.yml`` in *directory*."""
    for suffix in _CONFIG_SUFFIXES:
        candidate = directory / f"{stem}{suffix}"
        if candidate.is_file():
            return candidate
    return None


def _read_config_file(path: Path) -> dict[str, Any]:
    """Parse a JSON or YAML config file into a dict.

    Raises:
        ConfigError: If the file cannot be parsed or is not a mapping.
    """
    try:
        text = path.read_text(encoding="utf-8")
        if path.suffix == ".json":
            data = json.loads(text)
        else:
            data = yaml.safe_load(text)
    except (OSError, json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ConfigError(f"Invalid config at {path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Invalid config at {path}: expected a mapping, got {type(data).__name__}")
    return data


def load_global_config() -> dict[str, Any]:
    """Load the raw global configuration from the config directory.

    Returns:
        The parsed mapping, or an empty dict if no config file exists.

    Raises:
        ConfigError: If the file exists but cannot be parsed.
    """
    path = _find_config_file(get_config_dir(), _CONFIG_STEM)
    if path is None:
        return {}
    return _read_config_file(path)


def load_project_config() -> Optional[dict[str, Any]]:
    """Load project-local configuration from ``./reqflow.json`` (or YAML).

    Project-local config sits between global config and environment
    variables in the precedence chain, so a repository can pin its API's
    base URL and default headers.

    Returns:
        The parsed mapping, or ``None`` if no project config exists.

    Raises:
        ConfigError: If the file exists but cannot be parsed.
    """
    path = _find_config_file(Path.cwd(), _PROJECT_CONFIG_STEM)
    if path is None:
        return None
    return _read_config_file(path)


# --- Environment ---


def _parse_bool(name: str, value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ConfigError(f"Environment variable {name}={value!r} is not a boolean")


def _parse_int(name: str, value: str) -> int:
    try:
        return int(value)
    except ValueError as exc:
        raise ConfigError(f"Environment variable {name}={value!r} is not an integer") from exc


def load_env_config() -> dict[str, Any]:
    """Read ``REQFLOW_*`` environment variables into config keys.

    Recognised: ``REQFLOW_BASE_URL``, ``REQFLOW_TIMEOUT`` (ms),
    ``REQFLOW_RETRIES``, ``REQFLOW_CACHE`` (bool), ``REQFLOW_CACHE_TIME`` (ms).
    """
    result: dict[str, Any] = {}
    env = os.environ
    if env.get(f"{_ENV_PREFIX}BASE_URL"):
        result["base_url"] = env[f"{_ENV_PREFIX}BASE_URL"]
    for key, field in (("TIMEOUT", "timeout"), ("RETRIES", "retries"), ("CACHE_TIME", "cache_time")):
        name = f"{_ENV_PREFIX}{key}"
        if env.get(name):
            result[field] = _parse_int(name, env[name])
    if env.get(f"{_ENV_PREFIX}CACHE"):
        name = f"{_ENV_PREFIX}CACHE"
        result["cache"] = _parse_bool(name, env[name])
    return result


# --- Precedence resolution ---


def resolve_client_config(**cli_overrides: Any) -> ClientConfig:
    """Resolve client defaults with the full precedence chain.

    Precedence (high to low):
        1. CLI flags (keyword arguments that are not ``None``)
        2. Environment variables (``REQFLOW_*``)
        3. Project config (``./reqflow.json``)
        4. User config (``~/.config/reqflow/config.json``)
        5. Defaults

    Each layer may use field names or their camelCase aliases
    (``baseURL``, ``cacheTime``).  ``headers`` mappings are merged across
    layers rather than replaced.

    Raises:
        ConfigError: If any layer is invalid.
    """
    layers: list[dict[str, Any]] = [load_global_config()]
    project = load_project_config()
    if project is not None:
        layers.append(project)
    layers.append(load_env_config())
    layers.append({k: v for k, v in cli_overrides.items() if v is not None})

    merged: dict[str, Any] = {}
    for layer in layers:
        for key, value in by_field_name(ClientConfig, layer).items():
            if isinstance(value, dict) and isinstance(merged.get(key), dict):
                merged[key] = {**merged[key], **value}
            else:
                merged[key] = value

    try:
        return ClientConfig.model_validate(merged)
    except ValidationError as exc:
        raise ConfigError(f"Invalid client configuration: {exc}") from exc
