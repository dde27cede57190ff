"""Configuration, path registry and preflight checks."""

from assetflow.config.loader import (
    get_home_config_path,
    get_local_config_path,
    load_config,
    save_config,
)
from assetflow.config.registry import PathRegistry, glob_base, match_glob
from assetflow.config.schema import (
    DEFAULT_CONFIG,
    AssetClass,
    AssetflowConfig,
    BuildMode,
    PathSpec,
    ServerConfig,
)

__all__ = [
    "DEFAULT_CONFIG",
    "AssetClass",
    "AssetflowConfig",
    "BuildMode",
    "PathRegistry",
    "PathSpec",
    "ServerConfig",
    "get_home_config_path",
    "get_local_config_path",
    "glob_base",
    "load_config",
    "match_glob",
    "save_config",
]
