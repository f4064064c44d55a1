"""Config package facade."""

from .loader import load_config, resolve_config_path
from .response_format import build_response_format
from .schema import CameraConfigBlock, ConfigError, LoadedConfig
from .validate import validate_config

__all__ = [
    "CameraConfigBlock",
    "ConfigError",
    "LoadedConfig",
    "build_response_format",
    "load_config",
    "resolve_config_path",
    "validate_config",
]
