#!/usr/bin/env python3
"""Hierarchical configuration manager with hot-reload for VaultGate.

This module provides configuration management with:
- 6-level precedence hierarchy
- Hot-reload without restart
- Settings validation
- Environment variable overrides (VAULTGATE_*)
- Polling file watcher for the config file and the rules file
- Thread-safe operations

Example:
    >>> config = ConfigManager()
    >>> config.load_file("vaultgate.yaml")
    >>> config.get("vaultgate.default_policy", default="deny")
    >>> config.add_watcher(on_config_change)
    >>> config.watch_file("vaultgate.yaml")
"""

import copy
import os
import threading
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import yaml

from vaultgate.core.constants import DEFAULT_CONFIG, ConfigKey, ErrorCode, Limits
from vaultgate.core.validators import ValidationError, validate_settings
from vaultgate.infrastructure.logger import get_logger

ENV_PREFIX = "VAULTGATE_"
ENV_NESTING = "__"


class ConfigSource(Enum):
    """Configuration source precedence levels."""

    COMPILED_DEFAULTS = 1  # Lowest precedence
    SYSTEM_CONFIG = 2
    USER_CONFIG = 3
    ENVIRONMENT = 4
    CLI_ARGS = 5
    RUNTIME = 6  # Highest precedence


class ConfigError(Exception):
    """Configuration error."""

    def __init__(self, message: str, error_code: ErrorCode = ErrorCode.INVALID_INPUT):
        self.message = message
        self.error_code = error_code
        super().__init__(message)


FileCallback = Callable[[str], None]


class ConfigManager:
    """Thread-safe hierarchical configuration manager.

    Manages configuration from multiple sources with precedence:
    1. Compiled defaults (lowest)
    2. System config (/etc/vaultgate/config.yaml)
    3. User config (--config FILE)
    4. Environment variables (VAULTGATE_*)
    5. CLI arguments
    6. Runtime updates (highest)

    Watched files either reload into their config source or, when registered
    with a callback, hand their path to that callback (used for the rules file).
    """

    DEFAULT_CONFIG = {ConfigKey.ROOT: DEFAULT_CONFIG}

    def __init__(self, config_file: Optional[str] = None, load_environment: bool = True):
        """Initialize configuration manager.

        Args:
            config_file: Optional config file to load
            load_environment: Whether to read VAULTGATE_* environment variables
        """
        self._config: Dict[ConfigSource, Dict[str, Any]] = {}
        self._lock = threading.RLock()
        self._watchers: List[Callable[[Dict[str, Any]], None]] = []
        self._watch_thread: Optional[threading.Thread] = None
        self._watch_callbacks: Dict[str, Optional[FileCallback]] = {}
        self._file_sources: Dict[str, ConfigSource] = {}
        self._file_mtimes: Dict[str, float] = {}
        self._stop_watching = threading.Event()

        self._config[ConfigSource.COMPILED_DEFAULTS] = copy.deepcopy(self.DEFAULT_CONFIG)

        if config_file:
            self.load_file(config_file)

        if load_environment:
            self._load_environment()

    def load_file(self, file_path: str, source: ConfigSource = ConfigSource.USER_CONFIG) -> None:
        """Load configuration from YAML file.

        Args:
            file_path: Path to YAML config file
            source: Configuration source level

        Raises:
            ConfigError: If file cannot be loaded or parsed
        """
        path = Path(file_path).expanduser().resolve()

        if not path.exists():
            raise ConfigError(f"Config file not found: {file_path}", ErrorCode.NOT_FOUND)

        try:
            with open(path, "r", encoding="utf-8") as f:
                config_data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"YAML parse error in {file_path}: {e}", ErrorCode.INVALID_INPUT)
        except OSError as e:
            raise ConfigError(f"Error loading config {file_path}: {e}", ErrorCode.INTERNAL_ERROR)

        if config_data is None:
            config_data = {}

        if not isinstance(config_data, dict):
            raise ConfigError(f"Invalid config format in {file_path}", ErrorCode.INVALID_INPUT)

        if ConfigKey.ROOT not in config_data:
            config_data = {ConfigKey.ROOT: config_data}

        with self._lock:
            self._config[source] = config_data
            self._file_sources[str(path)] = source
            self._file_mtimes[str(path)] = path.stat().st_mtime

    def load_dict(self, config_data: Dict[str, Any], source: ConfigSource = ConfigSource.RUNTIME) -> None:
        """Load configuration from dictionary.

        Args:
            config_data: Configuration dictionary (with or without the root key)
            source: Configuration source level
        """
        if ConfigKey.ROOT not in config_data:
            config_data = {ConfigKey.ROOT: config_data}
        with self._lock:
            self._config[source] = copy.deepcopy(config_data)

    def _load_environment(self) -> None:
        """Load configuration from environment variables.

        Format: VAULTGATE_KEY=value, nested sections joined by a double
        underscore, e.g. VAULTGATE_LOGGING__LEVEL=DEBUG.
        """
        env_config: Dict[str, Any] = {}

        for key, value in os.environ.items():
            if not key.startswith(ENV_PREFIX):
                continue

            parts = key[len(ENV_PREFIX):].lower().split(ENV_NESTING)
            if not all(parts):
                continue

            current = env_config
            for part in parts[:-1]:
                current = current.setdefault(part, {})
                if not isinstance(current, dict):
                    break
            else:
                current[parts[-1]] = self._parse_env_value(value)

        if env_config:
            with self._lock:
                self._config[ConfigSource.ENVIRONMENT] = {ConfigKey.ROOT: env_config}

    def _parse_env_value(self, value: str) -> Any:
        """Parse environment variable value into bool, int, float or str."""
        if value.lower() in ("true", "yes"):
            return True
        if value.lower() in ("false", "no"):
            return False

        try:
            return int(value)
        except ValueError:
            pass

        try:
            return float(value)
        except ValueError:
            pass

        return value

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value by key.

        Args:
            key: Dot-separated key path (e.g., "vaultgate.default_policy")
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        with self._lock:
            for source in sorted(self._config.keys(), key=lambda s: s.value, reverse=True):
                value = self._get_nested(self._config[source], key)
                if value is not None:
                    return value

            return default

    def _get_nested(self, config: Dict[str, Any], key: str) -> Optional[Any]:
        current: Any = config
        for part in key.split("."):
            if not isinstance(current, dict) or part not in current:
                return None
            current = current[part]
        return current

    def set(self, key: str, value: Any, source: ConfigSource = ConfigSource.RUNTIME) -> None:
        """Set configuration value.

        Args:
            key: Dot-separated key path
            value: Value to set
            source: Configuration source level
        """
        with self._lock:
            current = self._config.setdefault(source, {})

            parts = key.split(".")
            for part in parts[:-1]:
                current = current.setdefault(part, {})

            current[parts[-1]] = value

        self._notify_watchers()

    def get_all(self) -> Dict[str, Any]:
        """Get merged configuration from all sources."""
        with self._lock:
            merged: Dict[str, Any] = {}
            for source in sorted(self._config.keys(), key=lambda s: s.value):
                merged = self._deep_merge(merged, self._config[source])
            return merged

    def settings(self) -> Dict[str, Any]:
        """Get the merged ``vaultgate`` settings section."""
        return self.get_all().get(ConfigKey.ROOT, {})

    def validate(self) -> bool:
        """Validate the merged settings.

        Raises:
            ConfigError: If any setting is invalid
        """
        try:
            return validate_settings(self.settings())
        except ValidationError as e:
            raise ConfigError(f"Invalid configuration: {e}", e.error_code)

    def _deep_merge(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        result = copy.deepcopy(base)

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = copy.deepcopy(value)

        return result

    def reload(self) -> None:
        """Reload all file-based configurations.

        A file that fails to load keeps its previous values.
        """
        with self._lock:
            files_to_reload = dict(self._file_sources)

        for file_path, source in files_to_reload.items():
            try:
                self.load_file(file_path, source)
            except ConfigError as e:
                get_logger().warning("Config reload failed, keeping previous values", file=file_path, error=e.message)

        self._notify_watchers()

    def watch_file(
        self,
        file_path: str,
        interval: float = Limits.DEFAULT_WATCH_INTERVAL,
        callback: Optional[FileCallback] = None,
    ) -> None:
        """Watch a file for changes.

        Args:
            file_path: Path to file to watch
            interval: Check interval in seconds
            callback: Called with the file path on change; when omitted the
                file is reloaded as YAML configuration and watchers notified
        """
        path = Path(file_path).expanduser().resolve()
        file_str = str(path)

        with self._lock:
            self._watch_callbacks[file_str] = callback
            if file_str not in self._file_mtimes:
                self._file_mtimes[file_str] = path.stat().st_mtime if path.exists() else 0.0

            if self._watch_thread is None or not self._watch_thread.is_alive():
                self._stop_watching.clear()
                self._watch_thread = threading.Thread(
                    target=self._watch_loop,
                    args=(interval,),
                    daemon=True,
                )
                self._watch_thread.start()

    def check_watched_files(self) -> List[str]:
        """Run one pass over the watched files.

        Returns:
            Paths that changed since the previous pass
        """
        with self._lock:
            watched = dict(self._watch_callbacks)

        changed = []
        for file_path, callback in watched.items():
            path = Path(file_path)
            if not path.exists():
                continue

            mtime = path.stat().st_mtime
            if mtime <= self._file_mtimes.get(file_path, 0.0):
                continue

            with self._lock:
                self._file_mtimes[file_path] = mtime
            changed.append(file_path)

            try:
                if callback is not None:
                    callback(file_path)
                else:
                    source = self._file_sources.get(file_path, ConfigSource.USER_CONFIG)
                    self.load_file(file_path, source)
                    self._notify_watchers()
            except Exception as e:
                get_logger().exception("Failed to apply change to watched file", e, file=file_path)

        return changed

    def _watch_loop(self, interval: float) -> None:
        while not self._stop_watching.is_set():
            self.check_watched_files()
            self._stop_watching.wait(interval)

    def stop_watching(self) -> None:
        """Stop file watching."""
        self._stop_watching.set()
        if self._watch_thread and self._watch_thread is not threading.current_thread():
            self._watch_thread.join(timeout=2.0)

    def add_watcher(self, callback: Callable[[Dict[str, Any]], None]) -> None:
        """Add configuration change watcher.

        Args:
            callback: Function called with merged config on changes
        """
        with self._lock:
            self._watchers.append(callback)

    def remove_watcher(self, callback: Callable[[Dict[str, Any]], None]) -> None:
        """Remove configuration change watcher."""
        with self._lock:
            if callback in self._watchers:
                self._watchers.remove(callback)

    def _notify_watchers(self) -> None:
        merged = self.get_all()

        with self._lock:
            watchers = list(self._watchers)

        for watcher in watchers:
            try:
                watcher(merged)
            except Exception as e:
                get_logger().exception("Config watcher failed", e)

    def clear(self, source: Optional[ConfigSource] = None) -> None:
        """Clear configuration.

        Args:
            source: Specific source to clear, or None for all except defaults
        """
        with self._lock:
            if source:
                if source in self._config and source != ConfigSource.COMPILED_DEFAULTS:
                    del self._config[source]
            else:
                for s in [s for s in self._config if s != ConfigSource.COMPILED_DEFAULTS]:
                    del self._config[s]

    def __del__(self):
        """Cleanup on deletion."""
        self.stop_watching()


# Global config manager instance
_global_config: Optional[ConfigManager] = None


def get_config_manager(config_file: Optional[str] = None) -> ConfigManager:
    """Get or create global configuration manager.

    Args:
        config_file: Optional config file to load

    Returns:
        Global configuration manager
    """
    global _global_config
    if _global_config is None:
        _global_config = ConfigManager(config_file)
    return _global_config


def set_global_config(config: ConfigManager) -> None:
    """Set the global configuration manager.

    Args:
        config: Configuration manager to use globally
    """
    global _global_config
    _global_config = config
