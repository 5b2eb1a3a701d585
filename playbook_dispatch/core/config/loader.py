"""
Configuration loader — reads deploy.yml into a DeployConfig.

Precedence, lowest first:

    1. DeployConfig field defaults
    2. ``ansible.cfg`` [defaults] inventory / playbook_dir
    3. deploy.yml
    4. explicit overrides (CLI options)

Relative paths from ansible.cfg and deploy.yml are resolved against
the directory of the file that declared them.
"""

from __future__ import annotations

import configparser
import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from playbook_dispatch.core.models.config import DeployConfig

logger = logging.getLogger(__name__)

# Default config filenames
DEPLOY_CONFIG_FILE = "deploy.yml"
ANSIBLE_CFG_FILE = "ansible.cfg"

# Keys in deploy.yml / ansible.cfg that hold filesystem paths
_PATH_KEYS = ("playbook_dir", "inventory")


class ConfigError(Exception):
    """Raised when deploy configuration is invalid or missing."""


def find_deploy_file(start_dir: Path | None = None) -> Path | None:
    """Search for deploy.yml starting from the given directory, walking up.

    Args:
        start_dir: Directory to start searching from (default: cwd).

    Returns:
        Path to deploy.yml, or None if not found.
    """
    current = (start_dir or Path.cwd()).resolve()

    for _ in range(20):  # safety limit
        candidate = current / DEPLOY_CONFIG_FILE
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            break  # filesystem root
        current = parent

    return None


def read_ansible_cfg(config_dir: Path) -> dict[str, str]:
    """Read ``inventory`` and ``playbook_dir`` from ``ansible.cfg``.

    A missing or unreadable file yields an empty mapping; ansible.cfg
    only provides defaults.
    """
    path = config_dir / ANSIBLE_CFG_FILE
    if not path.is_file():
        return {}

    parser = configparser.ConfigParser(interpolation=None, inline_comment_prefixes=("#", ";"))
    try:
        parser.read(path, encoding="utf-8")
    except (OSError, configparser.Error) as e:
        logger.warning("Cannot read %s: %s", path, e)
        return {}

    values: dict[str, str] = {}
    for key in _PATH_KEYS:
        value = parser.get("defaults", key, fallback="").strip()
        if value:
            values[key] = value
            logger.debug("ansible.cfg %s = %s", key, value)
    return _resolve_paths(values, config_dir)


def normalize_keys(data: dict[str, Any]) -> dict[str, Any]:
    """Map camelCase aliases (`targetServers`) to field names (`target_servers`)."""
    aliases = {
        field.alias: name
        for name, field in DeployConfig.model_fields.items()
        if field.alias
    }
    return {aliases.get(str(k), str(k)): v for k, v in data.items()}


def _resolve_paths(values: dict[str, Any], base_dir: Path) -> dict[str, Any]:
    resolved = dict(values)
    for key in _PATH_KEYS:
        value = resolved.get(key)
        if not isinstance(value, str) or not value:
            continue
        if key == "inventory" and "," in value:
            continue  # inline host list, not a path
        path = Path(value).expanduser()
        if not path.is_absolute():
            path = base_dir / path
        resolved[key] = str(path)
    return resolved


def load_deploy_file(path: Path) -> dict[str, Any]:
    """Read a deploy.yml into a raw mapping.

    Raises:
        ConfigError: If the file is missing or is not a YAML mapping.
    """
    if not path.is_file():
        raise ConfigError(f"Config file not found: {path}")

    logger.debug("Loading deploy config from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    # The YAML may wrap everything under a "deploy" key or be flat
    if isinstance(data.get("deploy"), dict):
        data = data["deploy"]
    return _resolve_paths(normalize_keys(data), path.parent.resolve())


def load_deploy_config(
    path: Path | None = None,
    overrides: dict[str, Any] | None = None,
    ansible_cfg_dir: Path | None = None,
) -> DeployConfig:
    """Build a validated DeployConfig from files and overrides.

    Args:
        path: Explicit deploy.yml. If None, no deploy file is read.
        overrides: Values that win over every file (None values ignored).
        ansible_cfg_dir: Where to look for ansible.cfg (default: the
            deploy file's directory, else cwd).

    Raises:
        ConfigError: If a file is unreadable or the result is invalid.
    """
    if ansible_cfg_dir is None:
        ansible_cfg_dir = path.parent.resolve() if path else Path.cwd()

    data: dict[str, Any] = read_ansible_cfg(ansible_cfg_dir)
    if path is not None:
        data.update(load_deploy_file(path))
    if overrides:
        data.update({k: v for k, v in normalize_keys(overrides).items() if v is not None})

    try:
        config = DeployConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid deploy configuration: {e}") from e

    logger.info("Loaded deploy config: %s → %s", config.playbook, config.target_servers)
    return config
