"""
Tests for attribute-based role mapping.
"""

import pytest

from authgate.rolemap import (
    RoleAttributes,
    RoleMappingResolver,
    RoleMappingRule,
    RuleType,
    matches_pattern,
    parse_role_mappings,
    resolve_role,
)


RULES_TEXT = """
# Library staff
email:*@library.uh.edu:editor
group:Faculty*:author
// titles
jobtitle:Librarian*:editor
jobtitle:*:contributor
department:IT:administrator
"""


KNOWN_ROLES = {"administrator", "editor", "author", "contributor", "subscriber"}


def role_exists(role):
    return role in KNOWN_ROLES


class TestPatternMatching:
    """Wildcard matching."""

    def test_exact_match(self):
        assert matches_pattern("IT", "IT")

    def test_star_and_question_mark(self):
        assert matches_pattern("Librarian II", "Librarian*")
        assert matches_pattern("cat", "c?t")
        assert not matches_pattern("coat", "c?t")

    def test_domain_and_single_character_wildcards(self):
        assert matches_pattern("student@uh.edu", "*@uh.edu")
        assert not matches_pattern("student@uh.edu.fake.com", "*@uh.edu")
        assert matches_pattern("jane@x.com", "j?ne@x.com")
        assert matches_pattern("june@x.com", "j?ne@x.com")
        assert not matches_pattern("jxxne@x.com", "j?ne@x.com")

    def test_case_insensitive(self):
        assert matches_pattern("LIBRARIAN", "librarian")

    def test_anchored_at_both_ends(self):
        """A pattern must cover the whole value."""
        assert not matches_pattern("Senior Librarian", "Librarian*")
        assert not matches_pattern("Librarian", "Lib")

    def test_regex_characters_are_literal(self):
        """Dots and brackets in patterns are not regex syntax."""
        assert matches_pattern("a.b@x.edu", "a.b@*")
        assert not matches_pattern("axb@x.edu", "a.b@*")
        assert matches_pattern("R&D (East)", "R&D (*)")


class TestParsing:
    """Rule text parsing."""

    def test_parse_skips_comments_and_blank_lines(self):
        rules = parse_role_mappings(RULES_TEXT)

        assert len(rules) == 5
        assert rules[0] == RoleMappingRule(RuleType.EMAIL, "*@library.uh.edu", "editor")
        assert rules[-1] == RoleMappingRule(RuleType.DEPARTMENT, "IT", "administrator")

    def test_parse_drops_malformed_and_unknown(self):
        text = "no-colons\nlocation:Houston:editor\njobtitle:Dean:emperor\njobtitle:Dean:author"

        rules = parse_role_mappings(text, role_exists)

        assert rules == [RoleMappingRule(RuleType.JOBTITLE, "Dean", "author")]

    def test_pattern_may_not_contain_colon_but_role_keeps_rest(self):
        """The line is split on the first two colons only."""
        rules = parse_role_mappings("group:Staff:editor:extra")

        assert rules[0].role == "editor:extra"

    def test_empty_text(self):
        assert parse_role_mappings("") == []
        assert parse_role_mappings(None) == []


class TestResolution:
    """Priority order and defaults."""

    @pytest.fixture
    def resolver(self):
        return RoleMappingResolver.from_text(RULES_TEXT, role_exists)

    def test_email_beats_everything(self, resolver):
        attrs = RoleAttributes(email="ann@library.uh.edu", job_title="Dean", department="IT", groups=["Faculty"])

        assert resolver.resolve(attrs, "subscriber") == "editor"

    def test_group_beats_job_title(self, resolver):
        attrs = RoleAttributes(email="ann@uh.edu", job_title="Librarian", groups=["Staff", "Faculty Senate"])

        assert resolver.resolve(attrs, "subscriber") == "author"

    def test_first_declared_rule_in_group_wins(self, resolver):
        """Librarian matches both jobtitle rules; the first one declared wins."""
        attrs = RoleAttributes(email="ann@uh.edu", job_title="Librarian III")

        assert resolver.resolve(attrs, "subscriber") == "editor"

    def test_job_title_beats_department(self, resolver):
        attrs = RoleAttributes(email="ann@uh.edu", job_title="Analyst", department="IT")

        assert resolver.resolve(attrs, "subscriber") == "contributor"

    def test_default_when_nothing_matches(self, resolver):
        attrs = RoleAttributes(email="ann@uh.edu", department="Finance")

        assert resolver.resolve(attrs, "subscriber") == "subscriber"

    def test_missing_roles_never_match(self):
        """A rule naming a role that no longer exists is skipped at match time."""
        rules = [
            RoleMappingRule(RuleType.DEPARTMENT, "IT", "retired"),
            RoleMappingRule(RuleType.DEPARTMENT, "I*", "editor"),
        ]
        attrs = RoleAttributes(department="IT")

        assert resolve_role(attrs, rules, "subscriber", role_exists) == "editor"
        assert resolve_role(attrs, rules, "subscriber") == "retired"
