"""
Configuration file parsing for recipebook defaults.

Settings are read from up to three YAML files, lowest precedence first:
machine-level, user-level, then the nearest ``.recipebook-config.yml`` above
the working directory. Command-line options override all of them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import platformdirs
import yaml

__all__ = [
    "Config",
    "ConfigError",
    "PROJECT_CONFIG_NAME",
    "find_project_config",
    "get_machine_config_path",
    "get_user_config_path",
    "load_config",
    "parse_config_file",
]

PROJECT_CONFIG_NAME = ".recipebook-config.yml"

_KNOWN_KEYS = {"log_level", "output", "shell", "variables"}


class ConfigError(Exception):
    """
    Raised when a configuration file is invalid.
    """

    pass


@dataclass
class Config:
    """Merged configuration values. ``None`` means not configured."""

    log_level: Optional[str] = None
    output: Optional[str] = None
    shell: Optional[list[str]] = None
    variables: dict[str, str] = field(default_factory=dict)
    sources: list[Path] = field(default_factory=list)

    def merge(self, other: "Config") -> "Config":
        """Return a new Config where values set in ``other`` win."""
        return Config(
            log_level=other.log_level or self.log_level,
            output=other.output or self.output,
            shell=other.shell or self.shell,
            variables={**self.variables, **other.variables},
            sources=self.sources + other.sources,
        )


def get_machine_config_path() -> Path:
    """
    Get the path to the machine-level (system-wide) configuration file.

    Uses platformdirs to determine the appropriate site config directory
    for the current platform, then appends 'recipebook/config.yml'.

    Returns:
        Path to the machine config file (may not exist)
    """
    config_dir = Path(platformdirs.site_config_dir("recipebook"))
    return config_dir / "config.yml"


def get_user_config_path() -> Path:
    """
    Get the path to the user-level configuration file.

    Returns:
        Path to the user config file (may not exist)
    """
    config_dir: Path = Path(platformdirs.user_config_dir("recipebook"))
    return config_dir / "config.yml"


def find_project_config(start_dir: Path) -> Optional[Path]:
    """
    Walk up the directory tree from start_dir to find .recipebook-config.yml.

    Args:
        start_dir: Directory to start searching from

    Returns:
        Path to the project config if found, None otherwise
    """
    try:
        current = start_dir.resolve()
    except (OSError, RuntimeError):
        # resolve() raises OSError on invalid paths or RuntimeError on symlink loops
        return None

    # Maximum depth prevents infinite loops in edge cases
    max_depth = 100
    for _ in range(max_depth):
        try:
            config_path = current / PROJECT_CONFIG_NAME
            if config_path.exists():
                return config_path
        except OSError:
            # Unreadable directory; keep walking up
            pass

        parent = current.parent
        if parent == current:
            break
        current = parent

    return None


def parse_config_file(path: Path) -> Optional[Config]:
    """
    Parse a recipebook configuration file.

    Args:
        path: Path to the configuration file

    Returns:
        Config with the values the file sets, or None if the file doesn't exist

    Raises:
        ConfigError: If the config file is invalid (malformed YAML, unknown
            keys, wrong value types)

    Config File Example:
        ```yaml
        log_level: debug
        output: all
        shell: [bash, -cu]
        variables:
          dev: "0"
        ```
    """
    if not path.exists():
        return None

    try:
        with open(path, "r", encoding="utf-8") as f:
            content = f.read()
    except OSError as e:
        raise ConfigError(f"Error reading config file '{path}': {e}") from e

    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ConfigError(f"Error parsing YAML in config file '{path}': {e}") from e

    # Empty file is valid
    if data is None:
        return Config(sources=[path])

    if not isinstance(data, dict):
        raise ConfigError(f"Error in config file '{path}': top level must be a mapping")

    unknown = sorted(set(data) - _KNOWN_KEYS)
    if unknown:
        raise ConfigError(
            f"Error in config file '{path}': unknown key(s): {', '.join(unknown)}"
        )

    log_level = data.get("log_level")
    if log_level is not None and not isinstance(log_level, str):
        raise ConfigError(f"Error in config file '{path}': Field 'log_level' must be a string")

    output = data.get("output")
    if output is not None and not isinstance(output, str):
        raise ConfigError(f"Error in config file '{path}': Field 'output' must be a string")

    shell = data.get("shell")
    if isinstance(shell, str):
        shell = shell.split()
    if shell is not None:
        if not isinstance(shell, list) or not shell or not all(isinstance(s, str) for s in shell):
            raise ConfigError(
                f"Error in config file '{path}': Field 'shell' must be a string or a non-empty list of strings"
            )

    variables = data.get("variables", {}) or {}
    if not isinstance(variables, dict):
        raise ConfigError(f"Error in config file '{path}': Field 'variables' must be a dictionary")
    for name, value in variables.items():
        if isinstance(value, (dict, list)) or value is None:
            raise ConfigError(
                f"Error in config file '{path}': Variable '{name}' must be a scalar value"
            )

    return Config(
        log_level=log_level,
        output=output,
        shell=shell,
        variables={str(name): _scalar_to_str(value) for name, value in variables.items()},
        sources=[path],
    )


def _scalar_to_str(value) -> str:
    # YAML booleans become the lowercase words users wrote
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def load_config(start_dir: Path) -> Config:
    """
    Load and merge the machine, user and project configuration files.

    Raises:
        ConfigError: If any of the files is invalid
    """
    config = Config()
    paths = [get_machine_config_path(), get_user_config_path(), find_project_config(start_dir)]
    for path in paths:
        if path is None:
            continue
        parsed = parse_config_file(path)
        if parsed is not None:
            config = config.merge(parsed)
    return config
