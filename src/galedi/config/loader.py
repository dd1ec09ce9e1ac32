"""
Reading the agent configuration from a project directory.

``config.yaml`` is required; ``config.<env>.yaml`` is merged over it when
present. Placeholders are resolved after merging so an override may use the
same ``${VAR}`` names as the base file.
"""

from pathlib import Path
from typing import Any

import yaml

from galedi.config.resolver import resolve_config
from galedi.config.settings import AgentConfig, build_agent_config
from galedi.exceptions import ConfigurationError

BASE_CONFIG = "config.yaml"


def load_config_data(project_path: Path | None = None, env: str | None = None) -> dict[str, Any]:
    """
    Load, merge and resolve the raw configuration mapping.

    Raises:
        ConfigurationError: If ``config.yaml`` is missing or a file is unreadable or not a YAML mapping
    """
    project_path = Path(project_path or Path.cwd())

    base_path = project_path / BASE_CONFIG
    if not base_path.is_file():
        raise ConfigurationError(f"Configuration file not found: {base_path} (create {BASE_CONFIG} in the project directory)")

    data = _read_yaml(base_path)
    override_path = project_path / f"config.{env}.yaml" if env else None
    if override_path is not None and override_path.is_file():
        data = merged(data, _read_yaml(override_path))

    return resolve_config(data, env or "dev")


def load_config(project_path: Path | None = None, env: str | None = None) -> AgentConfig:
    """Load the immutable agent configuration; any problem raises ConfigurationError."""
    project_dir = Path(project_path or Path.cwd())
    return build_agent_config(load_config_data(project_dir, env=env), project_dir=project_dir, env=env or "dev")


def merged(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursive merge; mappings merge key by key, everything else (lists included) is replaced."""
    result = dict(base)
    for key, value in override.items():
        if isinstance(result.get(key), dict) and isinstance(value, dict):
            result[key] = merged(result[key], value)
        else:
            result[key] = value
    return result


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(f"Cannot read {path}: {e.strerror or e}") from None

    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        mark = getattr(e, "problem_mark", None)
        where = f" at line {mark.line + 1}, column {mark.column + 1}" if mark is not None else ""
        raise ConfigurationError(f"Error parsing {path.name}{where}: {e}") from None

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"{path.name} must contain a mapping, got {type(data).__name__}")
    return data
