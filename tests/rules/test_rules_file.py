"""Tests for the access rules file parser, serializer and editors."""

import pytest

from vaultgate.core.constants import ErrorCode, HttpMethod, MatcherKind, RuleMode
from vaultgate.rules.models import Rule
from vaultgate.rules.rules_file import (
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


class TestParseRuleLine:
    """Test parsing single lines."""

    def test_basic(self):
        """Parses mode, kind and glob pattern."""
        entry = parse_rule_line("allow folder Public/**", 3)
        assert entry.kind == MatcherKind.FOLDER
        assert entry.line_number == 3
        assert entry.rule == Rule(RuleMode.ALLOW, "Public/**")
        assert entry.rule.source_line == 3

    def test_case_insensitive_keywords(self):
        """Mode and kind are case-insensitive."""
        entry = parse_rule_line("DENY Name *.secret.md", 0)
        assert entry.rule.mode == RuleMode.DENY
        assert entry.kind == MatcherKind.NAME

    def test_quoted_pattern(self):
        """Quoted patterns may contain spaces."""
        entry = parse_rule_line('allow folder "00 Workpad/**" GET', 0)
        assert entry.rule.pattern == "00 Workpad/**"
        assert entry.rule.methods == (HttpMethod.GET,)

    def test_escaped_quote(self):
        """Backslash-escaped quotes stay in the pattern."""
        entry = parse_rule_line(r'deny keyword "say \"hi\""', 0)
        assert entry.rule.pattern == 'say "hi"'

    def test_escaped_backslash(self):
        """A doubled backslash inside quotes is one literal backslash."""
        entry = parse_rule_line(r'deny folder "Old Drive\\" GET', 0)
        assert entry.rule.pattern == "Old Drive\\"
        assert entry.rule.methods == (HttpMethod.GET,)

    def test_other_backslashes_literal(self):
        """Backslashes before other characters are kept as written."""
        entry = parse_rule_line(r'deny keyword "~\d{3} \w+"', 0)
        assert entry.rule.pattern == r"\d{3} \w+"
        assert entry.rule.is_regex

    def test_unterminated_quote(self):
        """An unterminated quote invalidates the line."""
        with pytest.raises(RuleSyntaxError, match="unterminated"):
            parse_rule_line('allow folder "00 Workpad/**', 0)

    def test_regex_with_flags(self):
        """A tilde marks a regex; a trailing /flags suffix is extracted."""
        rule = parse_rule_line("deny keyword ~password/i", 0).rule
        assert rule.is_regex
        assert rule.pattern == "password"
        assert rule.regex_flags == "i"

    def test_regex_without_flags(self):
        """A regex without suffix has no flags."""
        rule = parse_rule_line(r"allow folder ~^(Projects|Public)/", 0).rule
        assert rule.pattern == "^(Projects|Public)/"
        assert rule.regex_flags is None

    def test_regex_slash_not_flags(self):
        """A slash followed by non-flag letters is part of the pattern."""
        rule = parse_rule_line("deny folder ~^Private/x", 0).rule
        assert rule.pattern == "^Private/x"
        assert rule.regex_flags is None

    def test_methods(self):
        """Methods are parsed case-insensitively; unknown tokens are dropped."""
        rule = parse_rule_line("deny folder Archive/** put,Delete,OPTIONS", 0).rule
        assert rule.methods == (HttpMethod.PUT, HttpMethod.DELETE)

    def test_unknown_methods_only(self):
        """A method list with no known tokens means all methods."""
        rule = parse_rule_line("deny folder Archive/** HEAD,OPTIONS", 0).rule
        assert rule.methods is None

    def test_disabled(self):
        """The disabled marker is stripped and the rule flagged disabled."""
        entry = parse_rule_line("#!disabled allow folder Archive/**", 5)
        assert not entry.rule.enabled
        assert entry.rule.pattern == "Archive/**"

    def test_compound_tag(self):
        """Compound tag expressions are kept verbatim."""
        rule = parse_rule_line("deny tag #draft+#internal", 0).rule
        assert rule.pattern == "#draft+#internal"

    @pytest.mark.parametrize(
        "line,message",
        [
            ("allow folder", "at least 3 fields"),
            ("permit folder x", "invalid mode"),
            ("allow path x", "invalid type"),
            ('allow folder ""', "empty pattern"),
            ("deny keyword ~/i", "empty pattern"),
        ],
    )
    def test_rejected(self, line, message):
        """Malformed lines are rejected with a reason."""
        with pytest.raises(RuleSyntaxError, match=message):
            parse_rule_line(line, 0)


class TestMakeRule:
    """Test building rules from fields."""

    def test_fields(self):
        """Builds a rule outside any file."""
        entry = make_rule("deny", "keyword", "~secret/i", "GET,PUT", enabled=False)
        assert entry.line_number == -1
        assert entry.rule.is_regex
        assert entry.rule.methods == (HttpMethod.GET, HttpMethod.PUT)
        assert not entry.rule.enabled

    def test_invalid_kind(self):
        """Invalid kinds raise."""
        with pytest.raises(RuleSyntaxError):
            make_rule("deny", "folders", "x")


class TestParseRulesFile:
    """Test parsing whole files."""

    CONTENT = "\n".join(
        [
            "# Access rules",
            "",
            "allow folder Public/**",
            "#!disabled deny folder Public/secret/**",
            "deny folder Restricted/**",
            "broken line",
            "deny tag #secret",
            "   deny keyword ~([oops   ",
            "allow name *.md",
        ]
    )

    def test_rule_set(self):
        """Enabled rules are grouped by kind in file order."""
        parsed = parse_rules_file(self.CONTENT)
        assert [r.pattern for r in parsed.rule_set.folder] == ["Public/**", "Restricted/**"]
        assert [r.pattern for r in parsed.rule_set.tag] == ["#secret"]
        assert [r.pattern for r in parsed.rule_set.name] == ["*.md"]
        assert [r.pattern for r in parsed.rule_set.keyword] == ["([oops"]

    def test_entries_keep_disabled_and_lines(self):
        """Entries include disabled rules with their original line numbers."""
        parsed = parse_rules_file(self.CONTENT)
        lines = [(e.line_number, e.rule.enabled) for e in parsed.entries]
        assert lines == [(2, True), (3, False), (4, True), (6, True), (7, True), (8, True)]

    def test_warnings(self):
        """Broken lines and invalid regexes produce warnings."""
        parsed = parse_rules_file(self.CONTENT)
        assert [w.line_number for w in parsed.warnings] == [5, 7]
        assert "at least 3 fields" in parsed.warnings[0].message
        assert "never matches" in parsed.warnings[1].message
        assert str(parsed.warnings[0]).startswith("line 6: ")

    def test_crlf(self):
        """Windows line endings are tolerated."""
        parsed = parse_rules_file("allow folder A/**\r\ndeny folder B/**\r\n")
        assert [r.pattern for r in parsed.rule_set.folder] == ["A/**", "B/**"]

    def test_empty(self):
        """An empty file yields an empty rule set."""
        parsed = parse_rules_file("")
        assert len(parsed.rule_set) == 0
        assert parsed.warnings == ()

    def test_load_rule_set(self):
        """load_rule_set returns the active set and warnings."""
        rule_set, warnings = load_rule_set("allow folder A/**\nbogus")
        assert len(rule_set) == 1
        assert len(warnings) == 1


class TestSerializeRule:
    """Test serialization."""

    def test_plain(self):
        """Fields are joined with the field separator."""
        assert serialize_rule(MatcherKind.FOLDER, Rule(RuleMode.ALLOW, "Public/**")) == "allow  folder  Public/**"

    def test_full(self):
        """Disabled marker, regex prefix, flags and methods are written."""
        rule = Rule(
            RuleMode.DENY,
            "pass word",
            is_regex=True,
            regex_flags="i",
            methods=(HttpMethod.GET, HttpMethod.PUT),
            enabled=False,
        )
        assert serialize_rule("keyword", rule) == '#!disabled deny  keyword  "~pass word/i"  GET,PUT'

    def test_quoted_backslashes_escaped(self):
        """Backslashes inside a quoted pattern are doubled so the closing quote survives."""
        rule = Rule(RuleMode.DENY, "Old Drive\\")
        assert serialize_rule(MatcherKind.FOLDER, rule) == r'deny  folder  "Old Drive\\"'

    @pytest.mark.parametrize(
        "kind,rule",
        [
            (MatcherKind.FOLDER, Rule(RuleMode.ALLOW, "Public/**")),
            (MatcherKind.FOLDER, Rule(RuleMode.ALLOW, "00 Workpad/**", methods=(HttpMethod.GET,))),
            (MatcherKind.NAME, Rule(RuleMode.DENY, "*.secret.md", enabled=False)),
            (MatcherKind.TAG, Rule(RuleMode.DENY, "#draft+#internal", methods=(HttpMethod.PUT, HttpMethod.DELETE))),
            (MatcherKind.KEYWORD, Rule(RuleMode.DENY, "password", is_regex=True, regex_flags="i")),
            (MatcherKind.KEYWORD, Rule(RuleMode.DENY, 'say "hi" now')),
            (MatcherKind.KEYWORD, Rule(RuleMode.ALLOW, '"quoted"')),
            (MatcherKind.FOLDER, Rule(RuleMode.ALLOW, r"^(Projects|Public)/\d+", is_regex=True)),
            (MatcherKind.FOLDER, Rule(RuleMode.DENY, "Old Drive\\", methods=(HttpMethod.GET,))),
            (MatcherKind.KEYWORD, Rule(RuleMode.DENY, 'path C:\\"x" \\\\share')),
            (MatcherKind.KEYWORD, Rule(RuleMode.DENY, r"\d{3} \w+", is_regex=True, regex_flags="i")),
        ],
    )
    def test_round_trip(self, kind, rule):
        """Parsing a serialized rule reproduces an equivalent rule."""
        entry = parse_rule_line(serialize_rule(kind, rule), 0)
        assert entry.kind == kind
        assert entry.rule == rule


class TestRulesFileIO:
    """Test loading and editing rules files on disk."""

    def test_load_missing(self, tmp_path):
        """A missing file loads as None."""
        assert load_rules_file(tmp_path / "nope.conf") is None

    def test_load(self, tmp_path):
        """Loads and parses an existing file."""
        path = tmp_path / "access-rules.conf"
        path.write_text("allow folder Public/**\n")
        parsed = load_rules_file(path)
        assert len(parsed.rule_set.folder) == 1

    def test_load_too_large(self, tmp_path, monkeypatch):
        """Oversized files are refused."""
        monkeypatch.setattr("vaultgate.rules.rules_file.Limits.MAX_RULES_FILE_SIZE", 10)
        path = tmp_path / "access-rules.conf"
        path.write_text("allow folder Public/**\n")
        with pytest.raises(RulesFileError, match="size limit") as exc_info:
            load_rules_file(path)
        assert exc_info.value.error_code == ErrorCode.INVALID_INPUT

    def test_load_bad_encoding(self, tmp_path):
        """Undecodable files are refused."""
        path = tmp_path / "access-rules.conf"
        path.write_bytes(b"allow folder \xff\xfe/**\n")
        with pytest.raises(RulesFileError, match="encoding"):
            load_rules_file(path)

    def test_append_rule(self, tmp_path):
        """Appending adds one line and keeps a trailing newline."""
        path = tmp_path / "access-rules.conf"
        path.write_text("allow folder Public/**\n")

        append_rule(path, MatcherKind.FOLDER, Rule(RuleMode.DENY, "Private/**"))

        assert path.read_text() == "allow folder Public/**\ndeny  folder  Private/**\n"

    def test_append_creates_file(self, tmp_path):
        """Appending to a missing file creates it."""
        path = tmp_path / "access-rules.conf"
        append_rule(path, "tag", Rule(RuleMode.DENY, "#secret"))
        assert load_rules_file(path).rule_set.tag[0].pattern == "#secret"

    def test_remove_rule_by_line(self, tmp_path):
        """Removing deletes exactly that line."""
        path = tmp_path / "access-rules.conf"
        path.write_text("# header\nallow folder A/**\ndeny folder B/**\n")

        remove_rule_by_line(path, 1)

        assert path.read_text() == "# header\ndeny folder B/**\n"

    def test_remove_out_of_range(self, tmp_path):
        """Removing a line past the end changes nothing."""
        path = tmp_path / "access-rules.conf"
        path.write_text("allow folder A/**\n")
        remove_rule_by_line(path, 10)
        assert path.read_text() == "allow folder A/**\n"

    def test_toggle_rule_by_line(self, tmp_path):
        """Disabling and re-enabling a rule round-trips the line."""
        path = tmp_path / "access-rules.conf"
        path.write_text("allow folder A/**\n")

        toggle_rule_by_line(path, 0, False)
        assert path.read_text() == "#!disabled allow folder A/**\n"
        assert not load_rules_file(path).entries[0].rule.enabled

        toggle_rule_by_line(path, 0, True)
        assert path.read_text() == "allow folder A/**\n"

    def test_toggle_leaves_comments(self, tmp_path):
        """Comments cannot be disabled."""
        path = tmp_path / "access-rules.conf"
        path.write_text("# just a comment\n")
        toggle_rule_by_line(path, 0, False)
        assert path.read_text() == "# just a comment\n"

    def test_default_template_has_no_active_rules(self):
        """The template parses to an empty rule set without warnings."""
        parsed = parse_rules_file(generate_default_rules_file())
        assert len(parsed.rule_set) == 0
        assert parsed.entries == ()
        assert parsed.warnings == ()
