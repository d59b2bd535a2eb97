"""VaultGate Infrastructure Layer.

This layer provides services used by the rules engine and the CLI:
- ConfigManager: Hierarchical configuration with hot-reload
- Logger: Structured logging system
"""

from .config_manager import ConfigError
from .config_manager import ConfigManager as Config
from .config_manager import ConfigSource, get_config_manager, set_global_config
from .logger import Logger, LogLevel, get_logger, set_global_logger

__all__ = [
    # Logger exports
    "Logger",
    "LogLevel",
    "get_logger",
    "set_global_logger",
    # ConfigManager exports
    "ConfigSource",
    "ConfigError",
    "Config",
    "get_config_manager",
    "set_global_config",
]
