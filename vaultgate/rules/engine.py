#!/usr/bin/env python3
"""Policy engine for vault access evaluation.

This module provides rule-based access control for VaultGate:
- Fixed-precedence chain: global tags, folder, name, tag, keyword, default
- First-match-wins within each rule kind
- Per-rule HTTP method scoping
- Fail-closed handling of unavailable metadata and unreadable content
- Bulk filtering of listings and search results with bounded concurrency
- Immutable policy snapshots swapped atomically on reload

Example:
    >>> engine = PolicyEngine(FilesystemVault("~/Notes"))
    >>> engine.reload_from_text("allow folder Public/**")
    >>> decision = await engine.evaluate("Public/a.md", "GET")
    >>> decision.allowed
    True
"""

import asyncio
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, TypeVar, Union

from vaultgate.core.constants import (
    RECORD_PATH_FIELDS,
    READ_METHOD,
    WRITE_METHODS,
    ConfigKey,
    HttpMethod,
    Limits,
    RuleMode,
)
from vaultgate.core.validators import (
    ValidationError,
    normalize_vault_path,
    validate_bulk_concurrency,
    validate_default_policy,
    validate_method,
    validate_vault_path,
)
from vaultgate.infrastructure.logger import Logger, get_logger
from vaultgate.providers.base import ContentLookup, ContentProvider, MetadataProvider, TagLookup
from vaultgate.rules.matchers import FolderMatcher, KeywordMatcher, NameMatcher, TagMatcher, check_global_tags
from vaultgate.rules.models import Decision, GlobalTagConfig, RuleEntry, RuleSet
from vaultgate.rules.rules_file import ParsedRules, ParseWarning, load_rules_file, parse_rules_file

RecordT = TypeVar("RecordT")


@dataclass(frozen=True)
class PolicySnapshot:
    """Everything one evaluation reads, captured as a single immutable value."""

    rules: RuleSet = field(default_factory=RuleSet)
    default_policy: RuleMode = RuleMode.DENY
    global_tags: GlobalTagConfig = field(default_factory=GlobalTagConfig)
    enabled: bool = True
    read_only: bool = False
    entries: Tuple[RuleEntry, ...] = ()

    @classmethod
    def from_settings(cls, settings: Mapping[str, Any], parsed: Optional[ParsedRules] = None) -> "PolicySnapshot":
        """
        Build a snapshot from the ``vaultgate`` settings section.

        Args:
            settings: Merged settings
            parsed: Parsed rules file, if any

        Raises:
            ValidationError: If a setting is invalid
        """
        return cls(
            rules=parsed.rule_set if parsed else RuleSet(),
            entries=parsed.entries if parsed else (),
            default_policy=validate_default_policy(settings.get(ConfigKey.DEFAULT_POLICY, RuleMode.DENY.value)),
            global_tags=GlobalTagConfig(
                allow_tag=settings.get(ConfigKey.GLOBAL_ALLOW_TAG) or "",
                deny_tag=settings.get(ConfigKey.GLOBAL_DENY_TAG) or "",
            ),
            enabled=bool(settings.get(ConfigKey.ENABLED, True)),
            read_only=bool(settings.get(ConfigKey.READ_ONLY, False)),
        )


class PolicyEngine:
    """Policy engine evaluating vault paths against the active snapshot.

    Features:
    - Global tag overrides evaluated before any rule
    - Structural rules (folder, name) before metadata and content rules
    - Method-scoped rules that fall through to the next rule kind
    - Tag metadata fetched at most once per evaluation, content only when
      keyword rules exist
    - Default policy when nothing decides
    """

    def __init__(
        self,
        metadata: Optional[MetadataProvider] = None,
        content: Optional[ContentProvider] = None,
        snapshot: Optional[PolicySnapshot] = None,
        bulk_concurrency: int = Limits.DEFAULT_BULK_CONCURRENCY,
        logger: Optional[Logger] = None,
    ):
        """Initialize policy engine.

        Args:
            metadata: Tag provider
            content: Content provider; defaults to ``metadata`` when it also
                provides content
            snapshot: Initial policy; defaults to no rules and deny
            bulk_concurrency: Maximum concurrent evaluations in bulk filters
            logger: Logger, defaults to the global logger
        """
        if content is None and isinstance(metadata, ContentProvider):
            content = metadata
        self._metadata = metadata
        self._content = content
        self._snapshot = snapshot or PolicySnapshot()
        self.bulk_concurrency = validate_bulk_concurrency(bulk_concurrency)
        self.logger = logger or get_logger()

        self._folder = FolderMatcher()
        self._name = NameMatcher()
        self._tag = TagMatcher()
        self._keyword = KeywordMatcher()

    @property
    def snapshot(self) -> PolicySnapshot:
        """The currently installed policy."""
        return self._snapshot

    def install(self, snapshot: PolicySnapshot) -> None:
        """Replace the active policy in a single reference swap."""
        self._snapshot = snapshot

    def reload_from_text(self, content: str) -> List[ParseWarning]:
        """
        Parse rules text and install it with the current settings.

        Returns:
            Warnings for skipped lines
        """
        parsed = parse_rules_file(content)
        self.install(replace(self._snapshot, rules=parsed.rule_set, entries=parsed.entries))
        return list(parsed.warnings)

    def reload_from_file(self, path: Union[str, Path]) -> List[ParseWarning]:
        """
        Load the rules file and install it.

        A missing file installs an empty rule set. A file that cannot be read
        leaves the previous policy in place.

        Returns:
            Warnings for skipped lines

        Raises:
            RulesFileError: If the file exists but cannot be read
        """
        try:
            parsed = load_rules_file(path)
        except Exception as e:
            self.logger.error("Rules reload failed, keeping previous rules", file=str(path), error=str(e))
            raise

        if parsed is None:
            self.logger.warning("Rules file not found, no rules active", file=str(path))
            parsed = ParsedRules(rule_set=RuleSet())

        self.install(replace(self._snapshot, rules=parsed.rule_set, entries=parsed.entries))
        return list(parsed.warnings)

    def update_settings(self, settings: Mapping[str, Any]) -> None:
        """
        Apply new settings while keeping the loaded rules.

        Raises:
            ValidationError: If a setting is invalid; the policy is unchanged
        """
        current = self._snapshot
        updated = PolicySnapshot.from_settings(settings)
        concurrency = settings.get(ConfigKey.BULK_CONCURRENCY)
        if concurrency is not None:
            self.bulk_concurrency = validate_bulk_concurrency(concurrency)
        self.install(replace(updated, rules=current.rules, entries=current.entries))

    async def _fetch_tags(self, path: str) -> TagLookup:
        if self._metadata is None:
            return TagLookup.unavailable()
        try:
            return await self._metadata.get_tags(path)
        except Exception as e:
            self.logger.exception("Metadata provider failed", e, path=path)
            return TagLookup.unavailable()

    async def _fetch_content(self, path: str) -> ContentLookup:
        if self._content is None:
            return ContentLookup.read_error("no content provider")
        try:
            return await self._content.read_content(path)
        except Exception as e:
            self.logger.exception("Content provider failed", e, path=path)
            return ContentLookup.read_error(str(e))

    async def evaluate(self, path: str, method: Optional[Union[str, HttpMethod]] = None) -> Decision:
        """
        Decide whether ``method`` on ``path`` is permitted.

        Args:
            path: Vault-relative path
            method: HTTP-style method; None evaluates every rule regardless
                of its method scope

        Returns:
            Decision with the verdict and its reason
        """
        snapshot = self._snapshot
        decision = await self._evaluate(snapshot, path, method)
        self.logger.debug(
            "Access decision",
            path=path,
            method=method,
            allowed=decision.allowed,
            reason=decision.reason,
        )
        return decision

    async def _evaluate(
        self, snapshot: PolicySnapshot, path: str, method: Optional[Union[str, HttpMethod]]
    ) -> Decision:
        if not snapshot.enabled:
            return Decision(allowed=True, reason="Access filtering disabled")

        try:
            http_method = validate_method(method)
        except ValidationError as e:
            return Decision(allowed=False, reason=f"Unsupported method: {e}")

        path = normalize_vault_path(path)
        try:
            validate_vault_path(path)
        except ValidationError as e:
            return Decision(allowed=False, reason=f"Invalid path: {e}")

        if snapshot.read_only and http_method in WRITE_METHODS:
            return Decision(allowed=False, reason="Read-only mode: write operations are disabled")

        tags: Optional[TagLookup] = None
        if snapshot.global_tags.configured:
            tags = await self._fetch_tags(path)
            decision = check_global_tags(tags, snapshot.global_tags)
            if decision:
                return decision

        rules = snapshot.rules

        if rules.folder:
            decision = self._folder.evaluate(path, rules.folder)
            if decision and decision.applies_to(http_method):
                return decision

        if rules.name:
            decision = self._name.evaluate(path, rules.name)
            if decision and decision.applies_to(http_method):
                return decision

        if rules.tag:
            if tags is None:
                tags = await self._fetch_tags(path)
            decision = self._tag.evaluate(tags, rules.tag)
            if decision and decision.applies_to(http_method):
                return decision

        if rules.keyword:
            content = await self._fetch_content(path)
            decision = self._keyword.evaluate(content, rules.keyword)
            if decision and decision.applies_to(http_method):
                return decision

        return Decision(
            allowed=snapshot.default_policy == RuleMode.ALLOW,
            reason=f"Default policy: {snapshot.default_policy.value}",
        )

    async def _evaluate_many(self, paths: Sequence[str], method: Union[str, HttpMethod]) -> List[Decision]:
        semaphore = asyncio.Semaphore(self.bulk_concurrency)

        async def evaluate_with_semaphore(path: str) -> Decision:
            async with semaphore:
                return await self.evaluate(path, method)

        return await asyncio.gather(*(evaluate_with_semaphore(p) for p in paths))

    async def filter_paths(
        self, paths: Iterable[str], method: Union[str, HttpMethod] = READ_METHOD
    ) -> List[str]:
        """
        Keep only the paths ``method`` is allowed on.

        Args:
            paths: Vault paths, e.g. a directory listing
            method: Method to evaluate, normally the read method

        Returns:
            Allowed paths in their original order
        """
        paths = list(paths)
        decisions = await self._evaluate_many(paths, method)
        allowed = [p for p, d in zip(paths, decisions) if d.allowed]
        self.logger.debug("Filtered paths", total=len(paths), allowed=len(allowed))
        return allowed

    async def filter_records(
        self, records: Iterable[RecordT], method: Union[str, HttpMethod] = READ_METHOD
    ) -> List[RecordT]:
        """
        Drop search results whose path is denied.

        The path is read from the ``filename`` field, else ``path``, by key
        for mappings and by attribute for other records. Records without
        either pass through unfiltered.

        Returns:
            Surviving records in their original order
        """
        records = list(records)
        indexed: Dict[int, str] = {}
        for i, record in enumerate(records):
            record_path = record_path_of(record)
            if record_path:
                indexed[i] = record_path

        decisions = await self._evaluate_many(list(indexed.values()), method)
        denied = {i for i, d in zip(indexed, decisions) if not d.allowed}
        kept = [r for i, r in enumerate(records) if i not in denied]
        self.logger.debug("Filtered records", total=len(records), allowed=len(kept))
        return kept

    async def filter_listing(
        self, directory: str, names: Iterable[str], method: Union[str, HttpMethod] = READ_METHOD
    ) -> List[str]:
        """
        Filter entries of a directory listing given relative to ``directory``.

        Returns:
            Allowed entries, still relative to ``directory``
        """
        prefix = normalize_vault_path(directory)
        if prefix and not prefix.endswith("/"):
            prefix += "/"
        allowed = await self.filter_paths([prefix + name for name in names], method)
        return [p[len(prefix) :] for p in allowed]

    def get_entries(self) -> List[RuleEntry]:
        """Get every loaded rule with its line number, disabled ones included."""
        return list(self._snapshot.entries)

    def get_default_policy(self) -> RuleMode:
        """Get the fallback verdict."""
        return self._snapshot.default_policy

    def __len__(self) -> int:
        """Return number of active rules."""
        return len(self._snapshot.rules)


def record_path_of(record: Any) -> Optional[str]:
    """
    Return the vault path carried by a search result record, if any.

    Mappings are read by key and other objects (dataclasses, named tuples,
    API models) by attribute, ``filename`` before ``path``.
    """
    for key in RECORD_PATH_FIELDS:
        if isinstance(record, Mapping):
            value = record.get(key)
        else:
            value = getattr(record, key, None)
        if value is not None:
            return value if isinstance(value, str) and value else None
    return None
