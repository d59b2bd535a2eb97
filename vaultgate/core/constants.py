"""
VaultGate Core: Constants

This module provides system-wide constants, error codes, enumerations for the
rule grammar, and configuration keys shared by every other layer.
"""
from enum import Enum, IntEnum
from typing import FrozenSet

# Version information
VAULTGATE_VERSION = "1.0.0"


# Error codes
class ErrorCode(IntEnum):
    """Standardized error codes for VaultGate operations."""

    SUCCESS = 0  # Operation completed successfully
    INVALID_INPUT = 1  # Bad path, invalid configuration
    NOT_FOUND = 2  # File or resource doesn't exist
    INTERNAL_ERROR = 3  # Unexpected I/O or internal failure


class RuleMode(Enum):
    """Verdict a rule produces when it matches."""

    ALLOW = "allow"
    DENY = "deny"


class MatcherKind(Enum):
    """Predicate family a rule belongs to, in evaluation order."""

    FOLDER = "folder"  # Full vault-relative path
    NAME = "name"  # Basename only
    TAG = "tag"  # Front-matter and inline tags
    KEYWORD = "keyword"  # Full text content


class HttpMethod(Enum):
    """HTTP-style methods a rule can be scoped to."""

    GET = "GET"
    PUT = "PUT"
    POST = "POST"
    PATCH = "PATCH"
    DELETE = "DELETE"


READ_METHOD = HttpMethod.GET
WRITE_METHODS: FrozenSet[HttpMethod] = frozenset(
    {HttpMethod.PUT, HttpMethod.POST, HttpMethod.PATCH, HttpMethod.DELETE}
)


class LookupStatus(Enum):
    """Outcome of a metadata or content lookup."""

    FOUND = "found"
    NOT_FOUND = "not_found"
    UNAVAILABLE = "unavailable"  # Exists, but metadata/content could not be produced


# Rules file grammar
class RulesFileSyntax:
    """Tokens of the access rules file grammar."""

    DISABLED_PREFIX = "#!disabled "
    COMMENT = "#"
    REGEX_PREFIX = "~"
    QUOTE = '"'
    METHOD_SEPARATOR = ","
    TAG_PREFIX = "#"
    TAG_JOINER = "+"
    # Flags accepted after a trailing slash on a regex pattern
    REGEX_FLAG_CHARS = "gimsuy"
    FIELD_SEPARATOR = "  "


# Resource limits and defaults
class Limits:
    """System resource limits and default values."""

    MAX_PATH_LENGTH = 4096
    MAX_RULES_FILE_SIZE = 1024 * 1024  # 1MB
    MAX_CONTENT_SIZE = 64 * 1024 * 1024  # 64MB

    # Bulk filtering fan-out
    DEFAULT_BULK_CONCURRENCY = 16
    MAX_BULK_CONCURRENCY = 1024

    # Hot-reload polling
    DEFAULT_WATCH_INTERVAL = 1.0  # seconds


# Configuration keys
class ConfigKey:
    """Configuration key constants."""

    ROOT = "vaultgate"

    ENABLED = "enabled"
    DEFAULT_POLICY = "default_policy"
    READ_ONLY = "read_only"
    GLOBAL_ALLOW_TAG = "global_allow_tag"
    GLOBAL_DENY_TAG = "global_deny_tag"
    RULES_FILE = "rules_file"
    VAULT_PATH = "vault_path"
    BULK_CONCURRENCY = "bulk_concurrency"
    LOGGING = "logging"

    LOG_LEVEL = "level"
    LOG_FILE = "file"
    LOG_FORMAT = "format"


DEFAULT_RULES_FILENAME = "access-rules.conf"


# Default configuration values
DEFAULT_CONFIG = {
    ConfigKey.ENABLED: True,
    ConfigKey.DEFAULT_POLICY: RuleMode.DENY.value,
    ConfigKey.READ_ONLY: False,
    ConfigKey.GLOBAL_ALLOW_TAG: "#ai-allow",
    ConfigKey.GLOBAL_DENY_TAG: "#ai-deny",
    ConfigKey.RULES_FILE: DEFAULT_RULES_FILENAME,
    ConfigKey.VAULT_PATH: ".",
    ConfigKey.BULK_CONCURRENCY: Limits.DEFAULT_BULK_CONCURRENCY,
    ConfigKey.LOGGING: {
        ConfigKey.LOG_LEVEL: "INFO",
        ConfigKey.LOG_FILE: None,
        ConfigKey.LOG_FORMAT: "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    },
}


# Record fields that carry a vault path in search results
RECORD_PATH_FIELDS = ("filename", "path")
