#!/usr/bin/env python3
"""Matchers for the four rule kinds.

Each matcher takes a candidate and an ordered rule list and returns the
decision of the first matching rule, or None when no rule has an opinion.

- FolderMatcher: glob/regex against the full vault path
- NameMatcher: glob/regex against the basename
- TagMatcher: tags from a TagLookup, with ``#a+#b`` all-of expressions
- KeywordMatcher: literal substring or regex search over a ContentLookup

The tag and keyword matchers work on lookups already fetched by the caller,
so a single evaluation never reads the same metadata twice. Both fail closed
when the lookup reports the data exists but is unavailable.

Example:
    >>> rules = [Rule(RuleMode.DENY, "Private/**")]
    >>> FolderMatcher().evaluate("Private/a.md", rules).allowed
    False
"""

from typing import Optional, Sequence

from vaultgate.core.constants import LookupStatus, MatcherKind, RulesFileSyntax
from vaultgate.providers.base import ContentLookup, TagLookup
from vaultgate.rules.models import Decision, GlobalTagConfig, Rule, normalize_tag
from vaultgate.rules.patterns import compile_pattern

TAG_METADATA_UNAVAILABLE = "Tag metadata unavailable"
CONTENT_UNREADABLE = "Content unreadable"


def _pattern_matches(rule: Rule, text: str) -> bool:
    return compile_pattern(rule.pattern, rule.is_regex, rule.regex_flags).matches(text)


def basename(path: str) -> str:
    """Return the substring after the final ``/`` (the whole path at the root)."""
    return path[path.rfind("/") + 1 :]


class FolderMatcher:
    """Match rules against the full vault path."""

    kind = MatcherKind.FOLDER
    label = "Folder filter"

    def subject(self, path: str) -> str:
        return path

    def evaluate(self, path: str, rules: Sequence[Rule]) -> Optional[Decision]:
        """
        Find the first rule matching ``path``.

        Args:
            path: Normalized vault path
            rules: Enabled rules of this kind, in file order

        Returns:
            Decision of the first match, or None
        """
        text = self.subject(path)
        for rule in rules:
            if rule.enabled and _pattern_matches(rule, text):
                reason = f'{self.label}: {rule.mode.value} by pattern "{rule.pattern}"'
                return Decision.from_rule(self.kind, rule, reason)
        return None


class NameMatcher(FolderMatcher):
    """Match rules against the basename only."""

    kind = MatcherKind.NAME
    label = "Document name filter"

    def subject(self, path: str) -> str:
        return basename(path)


def tag_expression_matches(rule: Rule, tags: frozenset) -> bool:
    """Check a tag rule against a normalized tag set.

    Literal patterns may join several tags with ``+``; all of them must be
    present. Regex patterns match if any single tag matches.
    """
    if rule.is_regex:
        entry = compile_pattern(rule.pattern, True, rule.regex_flags)
        return any(entry.matches(tag) for tag in tags)

    required = [normalize_tag(t) for t in rule.pattern.split(RulesFileSyntax.TAG_JOINER)]
    required = [t for t in required if t]
    return bool(required) and all(t in tags for t in required)


class TagMatcher:
    """Match custom tag rules against a candidate's tags."""

    kind = MatcherKind.TAG

    def evaluate(self, lookup: TagLookup, rules: Sequence[Rule]) -> Optional[Decision]:
        """
        Evaluate tag rules.

        Args:
            lookup: Tags of the candidate
            rules: Enabled tag rules, in file order

        Returns:
            Decision of the first match; a deny decision when metadata is
            unavailable and tag rules exist; otherwise None
        """
        if not rules or lookup.status == LookupStatus.NOT_FOUND:
            return None

        if lookup.status == LookupStatus.UNAVAILABLE:
            return Decision(allowed=False, reason=f"{TAG_METADATA_UNAVAILABLE} (tag rules configured)", kind=self.kind)

        for rule in rules:
            if rule.enabled and tag_expression_matches(rule, lookup.tags):
                reason = f'Tag filter: {rule.mode.value} by tag "{rule.pattern}"'
                return Decision.from_rule(self.kind, rule, reason)
        return None


class KeywordMatcher:
    """Match keyword rules against a candidate's content."""

    kind = MatcherKind.KEYWORD

    def evaluate(self, lookup: ContentLookup, rules: Sequence[Rule]) -> Optional[Decision]:
        """
        Evaluate keyword rules.

        Literal patterns are case-sensitive substrings; regex patterns are
        searched over the full text.

        Returns:
            Decision of the first match; a deny decision when the content
            could not be read; otherwise None
        """
        if not rules or lookup.status == LookupStatus.NOT_FOUND:
            return None

        if lookup.status == LookupStatus.UNAVAILABLE:
            return Decision(allowed=False, reason=CONTENT_UNREADABLE, kind=self.kind)

        content = lookup.text or ""
        for rule in rules:
            if not rule.enabled:
                continue
            if rule.is_regex:
                matched = _pattern_matches(rule, content)
            else:
                matched = rule.pattern in content
            if matched:
                reason = f'Keyword filter: {rule.mode.value} by pattern "{rule.pattern}"'
                return Decision.from_rule(self.kind, rule, reason)
        return None


def check_global_tags(lookup: TagLookup, config: GlobalTagConfig) -> Optional[Decision]:
    """Apply the global allow/deny tags.

    The deny tag wins when both are present. A path that does not exist yet
    produces no opinion; unavailable metadata denies whenever a global tag
    is configured.
    """
    if not config.configured or lookup.status == LookupStatus.NOT_FOUND:
        return None

    if lookup.status == LookupStatus.UNAVAILABLE:
        return Decision(
            allowed=False,
            reason=f"{TAG_METADATA_UNAVAILABLE} (global tags configured)",
            kind=MatcherKind.TAG,
        )

    if config.deny_tag and config.deny_tag in lookup.tags:
        return Decision(
            allowed=False,
            reason=f'Global deny tag "{config.deny_tag}" present',
            kind=MatcherKind.TAG,
            pattern=config.deny_tag,
        )

    if config.allow_tag and config.allow_tag in lookup.tags:
        return Decision(
            allowed=True,
            reason=f'Global allow tag "{config.allow_tag}" present',
            kind=MatcherKind.TAG,
            pattern=config.allow_tag,
        )

    return None
