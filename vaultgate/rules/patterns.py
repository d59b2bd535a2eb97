#!/usr/bin/env python3
r"""Pattern matching for vault paths with glob and regex support.

This module provides pattern compilation for VaultGate rules:
- Glob patterns where ``**`` spans path separators and wildcards also
  match dot-prefixed segments (``Private/**``, ``**/*.md``, ``{a,b}/*``)
- Regular expressions with JavaScript-style trailing flags (``i``, ``m``, ``s``)
- Path normalization for consistent matching
- Compiled pattern caching

A regular expression that fails to compile never matches; the failure is
logged once per pattern.

Example:
    >>> entry = compile_pattern("Private/**")
    >>> entry.matches("Private/notes/a.md")
    True
    >>> compile_pattern(r"secret\d+", is_regex=True, flags="i").matches("SECRET42")
    True
"""

import re
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from typing import List, Optional, Pattern

from vaultgate.infrastructure.logger import get_logger

# JavaScript regex flags that have a Python counterpart; others (g, u, y) are ignored
_FLAG_MAP = {
    "i": re.IGNORECASE,
    "m": re.MULTILINE,
    "s": re.DOTALL,
}


class PatternType(Enum):
    """Pattern matching type."""

    GLOB = "glob"  # Shell-style patterns (*.md, Private/**)
    REGEX = "regex"  # Regular expressions


@dataclass(frozen=True)
class PatternEntry:
    """A compiled pattern.

    ``compiled`` is None when a regular expression failed to compile.
    """

    pattern: str
    pattern_type: PatternType
    compiled: Optional[Pattern[str]]
    flags: Optional[str] = None

    @property
    def valid(self) -> bool:
        """Whether the pattern compiled."""
        return self.compiled is not None

    def matches(self, text: str) -> bool:
        """Test ``text`` against the pattern.

        Globs must match the whole text; regular expressions are searched
        anywhere in it.
        """
        if self.compiled is None:
            return False
        if self.pattern_type == PatternType.GLOB:
            return self.compiled.fullmatch(text) is not None
        return self.compiled.search(text) is not None


def regex_flags(flags: Optional[str]) -> int:
    """Convert a flag suffix such as ``"gi"`` to ``re`` flags."""
    value = 0
    for char in flags or "":
        value |= _FLAG_MAP.get(char, 0)
    return value


def normalize_path(path: str) -> str:
    """Normalize a path for matching.

    Args:
        path: Vault path to normalize

    Returns:
        Path with forward slashes and no leading slash
    """
    return path.replace("\\", "/").lstrip("/")


def expand_braces(pattern: str) -> List[str]:
    """Expand ``{a,b}`` alternatives into separate patterns.

    Braces without a top-level comma are kept literally.

    Example:
        >>> expand_braces("{Public,Shared}/*.md")
        ['Public/*.md', 'Shared/*.md']
    """
    depth = 0
    start = -1
    escaped = False
    for i, char in enumerate(pattern):
        if escaped:
            escaped = False
            continue
        if char == "\\":
            escaped = True
            continue
        if char == "{":
            if depth == 0:
                start = i
            depth += 1
        elif char == "}" and depth > 0:
            depth -= 1
            if depth == 0:
                alternatives = _split_top_level(pattern[start + 1 : i])
                if len(alternatives) < 2:
                    continue
                prefix, suffix = pattern[:start], pattern[i + 1 :]
                expanded = []
                for alternative in alternatives:
                    expanded.extend(expand_braces(prefix + alternative + suffix))
                return expanded
    return [pattern]


def _split_top_level(body: str) -> List[str]:
    parts = []
    depth = 0
    current = ""
    for char in body:
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
        if char == "," and depth == 0:
            parts.append(current)
            current = ""
        else:
            current += char
    parts.append(current)
    return parts


def _translate_segment(segment: str) -> str:
    """Translate one path segment of a glob into a regex fragment."""
    out = ""
    i = 0
    n = len(segment)
    while i < n:
        char = segment[i]
        if char == "*":
            # Any run of stars inside a segment behaves as a single star
            while i < n and segment[i] == "*":
                i += 1
            out += "[^/]*"
            continue
        if char == "?":
            out += "[^/]"
        elif char == "\\" and i + 1 < n:
            i += 1
            out += re.escape(segment[i])
        elif char == "[":
            end = segment.find("]", i + 2 if i + 1 < n and segment[i + 1] in "!^]" else i + 1)
            if end == -1:
                out += re.escape(char)
            else:
                body = segment[i + 1 : end]
                negate = body[:1] in ("!", "^")
                if negate:
                    body = body[1:]
                escaped = "".join(c if c == "-" else re.escape(c) for c in body)
                if negate:
                    out += f"[^/{escaped}]"
                else:
                    out += f"(?!/)[{escaped}]"
                i = end
        else:
            out += re.escape(char)
        i += 1
    return out


def glob_to_regex(pattern: str) -> str:
    """Translate a single (brace-free) glob into a regular expression.

    ``**`` as a whole segment matches zero or more path segments:
    ``**/x`` matches ``x`` and ``a/b/x``; ``a/**`` matches ``a``, ``a/`` and
    everything below ``a``.
    """
    segments = normalize_path(pattern).split("/")
    count = len(segments)
    regex = ""

    for i, segment in enumerate(segments):
        if segment == "**":
            if count == 1:
                regex += ".*"
            elif i == 0:
                regex += "(?:.*/)?"
            elif i == count - 1:
                regex += "(?:/.*)?"
            else:
                regex += "/(?:.*/)?"
            continue

        if i > 0 and segments[i - 1] != "**":
            regex += "/"
        regex += _translate_segment(segment)

    return regex


@lru_cache(maxsize=2048)
def _compile_glob(pattern: str) -> Optional[Pattern[str]]:
    alternatives = [glob_to_regex(p) for p in expand_braces(pattern)]
    try:
        return re.compile("(?:" + "|".join(alternatives) + ")", re.DOTALL)
    except re.error as e:
        get_logger().warning("Invalid glob pattern never matches", pattern=pattern, error=str(e))
        return None


@lru_cache(maxsize=2048)
def _compile_regex(pattern: str, flags: int) -> Optional[Pattern[str]]:
    try:
        return re.compile(pattern, flags)
    except re.error as e:
        get_logger().warning("Invalid regex pattern never matches", pattern=pattern, error=str(e))
        return None


def compile_pattern(pattern: str, is_regex: bool = False, flags: Optional[str] = None) -> PatternEntry:
    """Compile a rule pattern.

    Args:
        pattern: Glob or regular expression
        is_regex: Treat ``pattern`` as a regular expression
        flags: Regex flag letters (ignored for globs)

    Returns:
        PatternEntry ready for matching
    """
    if is_regex:
        return PatternEntry(pattern, PatternType.REGEX, _compile_regex(pattern, regex_flags(flags)), flags)
    return PatternEntry(pattern, PatternType.GLOB, _compile_glob(pattern))


def clear_pattern_cache() -> None:
    """Drop all cached compiled patterns."""
    _compile_glob.cache_clear()
    _compile_regex.cache_clear()
