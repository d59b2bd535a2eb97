"""
VaultGate Core: Input Validators.

This module provides validation for engine settings, vault paths, HTTP-style
methods and tag names supplied by users.
"""
import re
from typing import Any, Dict, Optional

from vaultgate.core.constants import ConfigKey, ErrorCode, HttpMethod, Limits, RuleMode, RulesFileSyntax


class ValidationError(Exception):
    """Base exception for validation errors."""

    def __init__(self, message: str, error_code: ErrorCode = ErrorCode.INVALID_INPUT):
        """Initialize ValidationError.

        Args:
            message: Error message
            error_code: Associated error code
        """
        super().__init__(message)
        self.error_code = error_code


_REPEATED_SLASHES = re.compile(r"/{2,}")


def validate_settings(settings: Dict[str, Any]) -> bool:
    """Validate the merged ``vaultgate`` settings section.

    Args:
        settings: Settings dictionary (contents of the ``vaultgate`` key)

    Returns:
        True if valid

    Raises:
        ValidationError: If any setting is invalid
    """
    if not isinstance(settings, dict):
        raise ValidationError("Settings must be a dictionary")

    for key in (ConfigKey.ENABLED, ConfigKey.READ_ONLY):
        if key in settings and not isinstance(settings[key], bool):
            raise ValidationError(f"Setting '{key}' must be boolean: {settings[key]}")

    if ConfigKey.DEFAULT_POLICY in settings:
        validate_default_policy(settings[ConfigKey.DEFAULT_POLICY])

    for key in (ConfigKey.GLOBAL_ALLOW_TAG, ConfigKey.GLOBAL_DENY_TAG):
        value = settings.get(key)
        if value:
            validate_tag_name(value)

    for key in (ConfigKey.RULES_FILE, ConfigKey.VAULT_PATH):
        if key in settings and not isinstance(settings[key], str):
            raise ValidationError(f"Setting '{key}' must be a string: {settings[key]}")

    if ConfigKey.BULK_CONCURRENCY in settings:
        validate_bulk_concurrency(settings[ConfigKey.BULK_CONCURRENCY])

    logging_section = settings.get(ConfigKey.LOGGING)
    if logging_section is not None and not isinstance(logging_section, dict):
        raise ValidationError("Logging configuration must be a dictionary")

    return True


def validate_default_policy(policy: Any) -> RuleMode:
    """Validate a default policy value.

    Args:
        policy: "allow", "deny" or a RuleMode

    Returns:
        The corresponding RuleMode

    Raises:
        ValidationError: If policy is not allow or deny
    """
    if isinstance(policy, RuleMode):
        return policy

    if not isinstance(policy, str):
        raise ValidationError(f"Default policy must be a string, got {type(policy)}")

    try:
        return RuleMode(policy.strip().lower())
    except ValueError:
        valid = [m.value for m in RuleMode]
        raise ValidationError(f"Invalid default policy: {policy}. Must be one of {valid}")


def validate_tag_name(tag: str) -> bool:
    """Validate a single global tag name.

    Global tags are single literal tokens: no whitespace and no compound
    ``+`` expressions.

    Raises:
        ValidationError: If tag is invalid
    """
    if not isinstance(tag, str):
        raise ValidationError(f"Tag must be string, got {type(tag)}")

    stripped = tag.strip()
    if not stripped or stripped == "#":
        raise ValidationError("Tag cannot be empty")

    if any(c.isspace() for c in stripped):
        raise ValidationError(f"Tag cannot contain whitespace: {tag}")

    if "+" in stripped:
        raise ValidationError(f"Global tag must be a single tag, not a compound expression: {tag}")

    return True


def normalize_tag(tag: str) -> str:
    """Lower-case a tag and ensure it carries the leading ``#`` marker.

    Example:
        >>> normalize_tag("Project/Alpha")
        '#project/alpha'
    """
    tag = tag.strip().lower()
    if not tag:
        return ""
    if not tag.startswith(RulesFileSyntax.TAG_PREFIX):
        tag = RulesFileSyntax.TAG_PREFIX + tag
    return tag


def validate_method(method: Optional[str]) -> Optional[HttpMethod]:
    """Validate and normalize an HTTP-style method token.

    Args:
        method: Method name in any case, or None

    Returns:
        HttpMethod, or None when no method was supplied

    Raises:
        ValidationError: If the method is unknown
    """
    if method is None:
        return None

    if isinstance(method, HttpMethod):
        return method

    try:
        return HttpMethod(str(method).strip().upper())
    except ValueError:
        valid = [m.value for m in HttpMethod]
        raise ValidationError(f"Unknown method: {method}. Must be one of {valid}")


def validate_bulk_concurrency(value: Any) -> int:
    """Validate the bulk filtering fan-out limit.

    Raises:
        ValidationError: If value is not a positive integer within limits
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"Bulk concurrency must be an integer: {value}")

    if value < 1 or value > Limits.MAX_BULK_CONCURRENCY:
        raise ValidationError(
            f"Bulk concurrency must be in range 1-{Limits.MAX_BULK_CONCURRENCY}, got {value}"
        )

    return value


def normalize_vault_path(path: str) -> str:
    """Normalize a vault-relative path.

    Converts backslashes, collapses repeated slashes, strips leading
    slashes and drops ``.`` segments. A trailing slash (directory entry) is
    preserved.

    Example:
        >>> normalize_vault_path("/PAI//./foo/")
        'PAI/foo/'
    """
    normalized = _REPEATED_SLASHES.sub("/", path.replace("\\", "/")).lstrip("/")
    *parents, last = normalized.split("/")
    segments = [segment for segment in parents if segment != "."]
    segments.append("" if last == "." else last)
    return "/".join(segments)


def validate_vault_path(path: str) -> bool:
    """Validate that a vault-relative path is safe to evaluate.

    Args:
        path: Normalized vault path

    Returns:
        True if valid

    Raises:
        ValidationError: If path is invalid
    """
    if not isinstance(path, str):
        raise ValidationError(f"Path must be string, got {type(path)}")

    if len(path) > Limits.MAX_PATH_LENGTH:
        raise ValidationError(f"Path exceeds maximum length ({Limits.MAX_PATH_LENGTH})")

    if "\0" in path:
        raise ValidationError("Path contains null bytes")

    if ".." in path.split("/"):
        raise ValidationError("Path traversal not allowed")

    return True
