#!/usr/bin/env python3
"""Data model for access rules and decisions.

Every type here is immutable: rule sets are built once by the rules file
parser and replaced wholesale on reload, and decisions are produced once per
evaluation.
"""

from dataclasses import dataclass, field
from typing import Iterable, Optional, Tuple

from vaultgate.core.constants import HttpMethod, MatcherKind, RuleMode
from vaultgate.core.validators import normalize_tag


@dataclass(frozen=True)
class Rule:
    """A single access rule.

    ``source_line`` is the 0-based line in the originating rules file and is
    only used by editing tools; it does not take part in equality.
    """

    mode: RuleMode
    pattern: str
    is_regex: bool = False
    regex_flags: Optional[str] = None
    methods: Optional[Tuple[HttpMethod, ...]] = None  # None = all methods
    enabled: bool = True
    source_line: int = field(default=-1, compare=False)

    def __post_init__(self):
        if self.methods is not None:
            methods = tuple(dict.fromkeys(self.methods))
            object.__setattr__(self, "methods", methods or None)
        if not self.regex_flags:
            object.__setattr__(self, "regex_flags", None)

    @property
    def allows(self) -> bool:
        """Whether a match on this rule grants access."""
        return self.mode == RuleMode.ALLOW

    def applies_to(self, method: Optional[HttpMethod]) -> bool:
        """Check whether the rule's method scope includes ``method``.

        A rule without a method scope applies to every method, and every rule
        applies when the caller supplied no method.
        """
        if not self.methods or method is None:
            return True
        return method in self.methods


@dataclass(frozen=True)
class RuleEntry:
    """A parsed rule together with its kind and line, for editing tools."""

    rule: Rule
    kind: MatcherKind
    line_number: int  # 0-based


@dataclass(frozen=True)
class RuleSet:
    """Enabled rules grouped by matcher kind, in file order."""

    folder: Tuple[Rule, ...] = ()
    name: Tuple[Rule, ...] = ()
    tag: Tuple[Rule, ...] = ()
    keyword: Tuple[Rule, ...] = ()

    @classmethod
    def from_entries(cls, entries: Iterable[RuleEntry]) -> "RuleSet":
        """Build a rule set from parsed entries, dropping disabled rules."""
        grouped = {kind: [] for kind in MatcherKind}
        for entry in entries:
            if entry.rule.enabled:
                grouped[entry.kind].append(entry.rule)
        return cls(
            folder=tuple(grouped[MatcherKind.FOLDER]),
            name=tuple(grouped[MatcherKind.NAME]),
            tag=tuple(grouped[MatcherKind.TAG]),
            keyword=tuple(grouped[MatcherKind.KEYWORD]),
        )

    def __len__(self) -> int:
        return len(self.folder) + len(self.name) + len(self.tag) + len(self.keyword)


@dataclass(frozen=True)
class GlobalTagConfig:
    """Tags checked before every other rule.

    Both tags are single literal tokens; an empty string disables that side.
    """

    allow_tag: str = ""
    deny_tag: str = ""

    def __post_init__(self):
        object.__setattr__(self, "allow_tag", normalize_tag(self.allow_tag or ""))
        object.__setattr__(self, "deny_tag", normalize_tag(self.deny_tag or ""))

    @property
    def configured(self) -> bool:
        """Whether at least one global tag is set."""
        return bool(self.allow_tag or self.deny_tag)


@dataclass(frozen=True)
class Decision:
    """Allow/deny verdict with a human-readable justification."""

    allowed: bool
    reason: str
    kind: Optional[MatcherKind] = None
    pattern: Optional[str] = None
    rule: Optional[Rule] = field(default=None, compare=False)

    @classmethod
    def from_rule(cls, kind: MatcherKind, rule: Rule, reason: str) -> "Decision":
        """Build the decision produced by a matching rule."""
        return cls(allowed=rule.allows, reason=reason, kind=kind, pattern=rule.pattern, rule=rule)

    def applies_to(self, method: Optional[HttpMethod]) -> bool:
        """Check the matched rule's method scope.

        Decisions that were not produced by a rule (fail-closed, global tags)
        apply to every method.
        """
        return self.rule is None or self.rule.applies_to(method)
