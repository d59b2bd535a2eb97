"""VaultGate Rules System.

This module provides access rules, their file format and evaluation:
- Rule, RuleSet, Decision: immutable rule and verdict types
- compile_pattern: glob and regex compilation with caching
- parse_rules_file: line-oriented rules file parser and editing helpers
- PolicyEngine: ordered evaluation chain over a policy snapshot

Rules decide whether a vault path may be read or written, based on its
folder, file name, tags and content.
"""

from .models import Decision, GlobalTagConfig, Rule, RuleEntry, RuleSet, normalize_tag
from .patterns import PatternEntry, PatternType, clear_pattern_cache, compile_pattern, glob_to_regex
from .rules_file import (
    ParsedRules,
    ParseWarning,
    RuleSyntaxError,
    RulesFileError,
    append_rule,
    generate_default_rules_file,
    load_rule_set,
    load_rules_file,
    make_rule,
    parse_rule_line,
    parse_rules_file,
    remove_rule_by_line,
    serialize_rule,
    toggle_rule_by_line,
)
from .matchers import FolderMatcher, KeywordMatcher, NameMatcher, TagMatcher, check_global_tags
from .engine import PolicyEngine, PolicySnapshot, record_path_of

__all__ = [
    # Model
    "Rule",
    "RuleEntry",
    "RuleSet",
    "GlobalTagConfig",
    "Decision",
    "normalize_tag",
    # Pattern matching
    "PatternType",
    "PatternEntry",
    "compile_pattern",
    "glob_to_regex",
    "clear_pattern_cache",
    # Rules file
    "ParsedRules",
    "ParseWarning",
    "RuleSyntaxError",
    "RulesFileError",
    "make_rule",
    "parse_rule_line",
    "parse_rules_file",
    "load_rule_set",
    "load_rules_file",
    "serialize_rule",
    "append_rule",
    "remove_rule_by_line",
    "toggle_rule_by_line",
    "generate_default_rules_file",
    # Matchers
    "FolderMatcher",
    "NameMatcher",
    "TagMatcher",
    "KeywordMatcher",
    "check_global_tags",
    # Engine
    "PolicyEngine",
    "PolicySnapshot",
    "record_path_of",
]
