#!/usr/bin/env python3
"""Access rules file parsing, serialization and editing.

File format (one rule per line):

    # Comments start with #
    #!disabled MODE KIND PATTERN [METHODS]   <- disabled rule, kept for editing
    MODE KIND PATTERN [METHODS]

MODE:     allow | deny
KIND:     folder | name | tag | keyword
PATTERN:  glob, or ~regex with optional /flags suffix (~password/i);
          double-quote patterns containing spaces ("00 Workpad/**"),
          escaping \\" and \\\\ inside the quotes;
          tag patterns may join tags with + (#draft+#internal)
METHODS:  optional comma-separated list of GET, PUT, POST, PATCH, DELETE

Malformed lines are skipped with a warning; the rest of the file still loads.

Example:
    >>> parsed = parse_rules_file("allow folder Public/**\\ndeny folder Private/**")
    >>> [r.pattern for r in parsed.rule_set.folder]
    ['Public/**', 'Private/**']
"""

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, Tuple, Union

from vaultgate.core.constants import ErrorCode, HttpMethod, Limits, MatcherKind, RuleMode, RulesFileSyntax
from vaultgate.infrastructure.logger import get_logger
from vaultgate.rules.models import Rule, RuleEntry, RuleSet
from vaultgate.rules.patterns import compile_pattern

DISABLED_PREFIX = RulesFileSyntax.DISABLED_PREFIX

_LEADING_FIELDS = re.compile(r"^(\S+)\s+(\S+)\s+(.*)$", re.DOTALL)
_REGEX_FLAGS = re.compile(r"/([" + RulesFileSyntax.REGEX_FLAG_CHARS + r"]+)$")
_METHOD_SPLIT = re.compile(r"[,\s]+")


class RulesFileError(Exception):
    """Raised when the rules file cannot be read or written."""

    def __init__(self, message: str, error_code: ErrorCode = ErrorCode.INTERNAL_ERROR):
        super().__init__(message)
        self.error_code = error_code


@dataclass(frozen=True)
class ParseWarning:
    """A rules file line that was skipped or will never match."""

    line_number: int  # 0-based
    message: str
    line: str

    def __str__(self) -> str:
        return f"line {self.line_number + 1}: {self.message}: {self.line!r}"


@dataclass(frozen=True)
class ParsedRules:
    """Result of parsing a rules file."""

    rule_set: RuleSet
    entries: Tuple[RuleEntry, ...] = ()
    warnings: Tuple[ParseWarning, ...] = field(default=(), compare=False)


class RuleSyntaxError(ValueError):
    """Raised when a rules file line is not a valid rule."""


def _split_pattern(remainder: str) -> Tuple[str, str]:
    """Split the pattern from the optional methods list.

    Returns:
        Tuple of (pattern, rest of line)

    Raises:
        RuleSyntaxError: On an unterminated quoted pattern
    """
    if remainder.startswith(RulesFileSyntax.QUOTE):
        i = 1
        chars = []
        while i < len(remainder):
            char = remainder[i]
            # Only \" and \\ are escapes; any other backslash is literal
            if char == "\\" and remainder[i + 1 : i + 2] in (RulesFileSyntax.QUOTE, "\\"):
                chars.append(remainder[i + 1])
                i += 2
                continue
            if char == RulesFileSyntax.QUOTE:
                return "".join(chars), remainder[i + 1 :].strip()
            chars.append(char)
            i += 1
        raise RuleSyntaxError("unterminated quoted pattern")

    parts = remainder.split(None, 1)
    if not parts:
        return "", ""
    return parts[0], parts[1].strip() if len(parts) > 1 else ""


def _parse_methods(text: str) -> Optional[Tuple[HttpMethod, ...]]:
    known = {m.value: m for m in HttpMethod}
    methods = tuple(
        known[token.upper()] for token in _METHOD_SPLIT.split(text) if token.upper() in known
    )
    return methods or None


def parse_rule_line(line: str, line_number: int) -> RuleEntry:
    """Parse one rule line (already stripped, not a plain comment).

    Args:
        line: Rule text, possibly with the disabled prefix
        line_number: 0-based position in the file

    Returns:
        Parsed entry

    Raises:
        RuleSyntaxError: If the line is not a valid rule
    """
    enabled = True
    content = line
    if line.startswith(DISABLED_PREFIX):
        enabled = False
        content = line[len(DISABLED_PREFIX) :].strip()

    fields = _LEADING_FIELDS.match(content)
    if not fields:
        raise RuleSyntaxError("expected at least 3 fields")

    mode_str, kind_str, remainder = fields.groups()
    pattern, rest = _split_pattern(remainder.strip())
    return make_rule(mode_str, kind_str, pattern, rest, enabled=enabled, line_number=line_number)


def make_rule(
    mode_str: str,
    kind_str: str,
    pattern: str,
    methods: str = "",
    enabled: bool = True,
    line_number: int = -1,
) -> RuleEntry:
    """Build a rule from its textual fields.

    Args:
        mode_str: ``allow`` or ``deny``
        kind_str: ``folder``, ``name``, ``tag`` or ``keyword``
        pattern: Unquoted pattern; a leading ``~`` marks a regex
        methods: Comma-separated method list, empty for all methods
        enabled: Whether the rule is active
        line_number: 0-based line in the rules file, -1 if not from a file

    Raises:
        RuleSyntaxError: If a field is invalid
    """
    if not pattern:
        raise RuleSyntaxError("empty pattern")

    try:
        mode = RuleMode(mode_str.lower())
    except ValueError:
        raise RuleSyntaxError(f'invalid mode "{mode_str}" (expected allow|deny)')

    try:
        kind = MatcherKind(kind_str.lower())
    except ValueError:
        raise RuleSyntaxError(f'invalid type "{kind_str}" (expected folder|name|tag|keyword)')

    is_regex = pattern.startswith(RulesFileSyntax.REGEX_PREFIX)
    flags = None
    if is_regex:
        pattern = pattern[len(RulesFileSyntax.REGEX_PREFIX) :]
        flag_match = _REGEX_FLAGS.search(pattern)
        if flag_match:
            flags = flag_match.group(1)
            pattern = pattern[: flag_match.start()]
        if not pattern:
            raise RuleSyntaxError("empty pattern")

    rule = Rule(
        mode=mode,
        pattern=pattern,
        is_regex=is_regex,
        regex_flags=flags,
        methods=_parse_methods(methods) if methods else None,
        enabled=enabled,
        source_line=line_number,
    )
    return RuleEntry(rule=rule, kind=kind, line_number=line_number)


def parse_rules_file(content: str) -> ParsedRules:
    """Parse the full rules file content.

    Args:
        content: Rules file text

    Returns:
        Enabled rules grouped by kind, every rule with its line number
        (disabled ones included), and warnings for skipped lines
    """
    entries: List[RuleEntry] = []
    warnings: List[ParseWarning] = []
    logger = get_logger()

    for index, raw in enumerate(content.split("\n")):
        line = raw.strip()

        if not line:
            continue
        if line.startswith(RulesFileSyntax.COMMENT) and not line.startswith(DISABLED_PREFIX):
            continue

        try:
            entry = parse_rule_line(line, index)
        except RuleSyntaxError as e:
            warning = ParseWarning(index, str(e), line)
            warnings.append(warning)
            logger.warning("Skipping rules file line", line=index + 1, reason=str(e))
            continue

        entries.append(entry)

        rule = entry.rule
        if rule.is_regex and not compile_pattern(rule.pattern, True, rule.regex_flags).valid:
            warnings.append(ParseWarning(index, "invalid regular expression, rule never matches", line))

    return ParsedRules(
        rule_set=RuleSet.from_entries(entries),
        entries=tuple(entries),
        warnings=tuple(warnings),
    )


def load_rule_set(content: str) -> Tuple[RuleSet, List[ParseWarning]]:
    """Parse rules file text into the active rule set and its warnings."""
    parsed = parse_rules_file(content)
    return parsed.rule_set, list(parsed.warnings)


def serialize_rule(kind: Union[MatcherKind, str], rule: Rule) -> str:
    """Serialize a rule into a rules file line.

    Args:
        kind: Matcher kind the rule belongs to
        rule: Rule to serialize

    Returns:
        A single line that parses back to an equivalent rule
    """
    kind_str = kind.value if isinstance(kind, MatcherKind) else str(kind).lower()
    prefix = "" if rule.enabled else DISABLED_PREFIX

    pattern = rule.pattern
    if rule.is_regex:
        flag_suffix = f"/{rule.regex_flags}" if rule.regex_flags else ""
        pattern = f"{RulesFileSyntax.REGEX_PREFIX}{pattern}{flag_suffix}"

    if any(c.isspace() for c in pattern) or pattern.startswith(RulesFileSyntax.QUOTE):
        escaped = pattern.replace("\\", "\\\\").replace(RulesFileSyntax.QUOTE, "\\" + RulesFileSyntax.QUOTE)
        pattern = f"{RulesFileSyntax.QUOTE}{escaped}{RulesFileSyntax.QUOTE}"

    sep = RulesFileSyntax.FIELD_SEPARATOR
    line = f"{prefix}{rule.mode.value}{sep}{kind_str}{sep}{pattern}"
    if rule.methods:
        line += sep + RulesFileSyntax.METHOD_SEPARATOR.join(m.value for m in rule.methods)
    return line


def load_rules_file(path: Union[str, Path]) -> Optional[ParsedRules]:
    """Load and parse a rules file.

    Args:
        path: Rules file location

    Returns:
        Parsed rules, or None if the file doesn't exist

    Raises:
        RulesFileError: If the file exists but cannot be read
    """
    rules_path = Path(path).expanduser()
    if not rules_path.exists():
        return None

    try:
        size = rules_path.stat().st_size
        if size > Limits.MAX_RULES_FILE_SIZE:
            raise RulesFileError(
                f"Rules file exceeds size limit ({size} > {Limits.MAX_RULES_FILE_SIZE}): {rules_path}",
                ErrorCode.INVALID_INPUT,
            )
        content = rules_path.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise RulesFileError(f"Failed to read rules file (encoding error): {rules_path}", ErrorCode.INVALID_INPUT) from e
    except OSError as e:
        raise RulesFileError(f"Failed to read rules file: {rules_path}: {e}") from e

    parsed = parse_rules_file(content)
    get_logger().info(
        "Loaded rules file",
        file=str(rules_path),
        active=len(parsed.rule_set),
        total=len(parsed.entries),
        warnings=len(parsed.warnings),
    )
    return parsed


def _mutate_file(path: Union[str, Path], mutator: Callable[[List[str]], List[str]]) -> None:
    """Read the rules file, apply a line-level mutation and write it back."""
    rules_path = Path(path).expanduser()
    try:
        content = rules_path.read_text(encoding="utf-8") if rules_path.exists() else ""
        lines = mutator(content.split("\n"))
        rules_path.write_text("\n".join(lines), encoding="utf-8")
    except OSError as e:
        raise RulesFileError(f"Failed to update rules file: {rules_path}: {e}") from e


def append_rule(path: Union[str, Path], kind: Union[MatcherKind, str], rule: Rule) -> None:
    """Append a rule to the end of the rules file."""
    line = serialize_rule(kind, rule)

    def mutator(lines: List[str]) -> List[str]:
        if lines and lines[-1].strip() == "":
            lines[-1] = line
        else:
            lines.append(line)
        lines.append("")
        return lines

    _mutate_file(path, mutator)


def remove_rule_by_line(path: Union[str, Path], line_number: int) -> None:
    """Remove the line at ``line_number`` (0-based); out-of-range is a no-op."""

    def mutator(lines: List[str]) -> List[str]:
        if 0 <= line_number < len(lines):
            del lines[line_number]
        return lines

    _mutate_file(path, mutator)


def toggle_rule_by_line(path: Union[str, Path], line_number: int, enabled: bool) -> None:
    """Enable or disable the rule at ``line_number`` via the disabled prefix."""

    def mutator(lines: List[str]) -> List[str]:
        if not 0 <= line_number < len(lines):
            return lines
        line = lines[line_number].strip()
        if enabled and line.startswith(DISABLED_PREFIX):
            lines[line_number] = line[len(DISABLED_PREFIX) :]
        elif not enabled and line and not line.startswith(RulesFileSyntax.COMMENT):
            lines[line_number] = DISABLED_PREFIX + line
        return lines

    _mutate_file(path, mutator)


def generate_default_rules_file() -> str:
    """Return the commented template written by ``vaultgate init``."""
    return """# ------------------------------------------------------------------
# VaultGate access rules
# ------------------------------------------------------------------
#
# Format:  MODE  KIND  PATTERN  [METHODS]
#
#   MODE      allow | deny
#   KIND      folder | name | tag | keyword
#   PATTERN   glob pattern (or ~regex with tilde prefix)
#             Quote patterns with spaces: "00 Workpad/**"
#             Regex flags: ~pattern/i for case-insensitive
#             Tag AND logic: #tag1+#tag2 (matches only if ALL present)
#   METHODS   optional: comma-separated (GET,PUT,POST,PATCH,DELETE)
#
# Order of evaluation: global tags, folder, name, tag, keyword.
# Within a kind, rules are evaluated top-to-bottom and the first match wins.
# If no rule matches, the default policy from the settings applies.
#
# Disable a rule without deleting it:
#   #!disabled allow folder SomeFolder/**
#
# Examples:
#   allow folder Projects/**
#   deny  folder Private/**
#   allow folder "00 Workpad/**"
#   allow name   *.md
#   deny  tag    #secret
#   deny  tag    #draft+#internal
#   deny  keyword password             GET,POST
#   deny  keyword ~password/i
#   allow folder ~^(Projects|Public)/
#
# ------------------------------------------------------------------

# Add your rules below:

"""
