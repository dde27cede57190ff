"""Configuration file loading and merging."""

from pathlib import Path

import yaml

from assetflow.config.schema import DEFAULT_CONFIG, AssetflowConfig
from assetflow.errors import ConfigError

CONFIG_DIRNAME = ".assetflow"
CONFIG_FILENAME = "config.yaml"


def get_home_config_path() -> Path:
    """Get path to global config: ~/.assetflow/config.yaml."""
    return Path.home() / CONFIG_DIRNAME / CONFIG_FILENAME


def get_local_config_path(project_root: Path | None = None) -> Path:
    """Get path to project config: <project>/.assetflow/config.yaml."""
    root = project_root if project_root is not None else Path.cwd()
    return root / CONFIG_DIRNAME / CONFIG_FILENAME


def load_yaml_config(path: Path) -> dict[str, object] | None:
    """Load a YAML config file, return None if not found or empty.

    Unlike a missing file, a file that exists but cannot be parsed is a
    startup error.
    """
    if not path.exists():
        return None
    try:
        with path.open(encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Cannot parse {path}: {e}") from e
    if data is None:
        return None
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a mapping at the top level")
    result: dict[str, object] = data
    return result


def load_config(project_root: Path | None = None) -> AssetflowConfig:
    """Load merged configuration.

    Precedence (lowest to highest):
    1. Built-in defaults
    2. Global config (~/.assetflow/config.yaml)
    3. Project config (<project>/.assetflow/config.yaml)

    Returns merged AssetflowConfig.
    """
    config = DEFAULT_CONFIG

    home_data = load_yaml_config(get_home_config_path())
    if home_data:
        config = config.merge(AssetflowConfig.from_dict(home_data))

    local_data = load_yaml_config(get_local_config_path(project_root))
    if local_data:
        config = config.merge(AssetflowConfig.from_dict(local_data))

    return config


def save_config(config: AssetflowConfig, path: Path) -> None:
    """Save config to a YAML file.

    Creates parent directories if needed.
    Only saves non-None values.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        yaml.safe_dump(config.to_dict(), f, default_flow_style=False, sort_keys=False)
