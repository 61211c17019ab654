"""Tests for watch rule matching."""

import re

import pytest

from gh_digest.core import WatchRuleMatcher, build_rules
from gh_digest.core.watch_rules import DEFAULT_WATCH_RULES, WatchRule


@pytest.fixture
def matcher() -> WatchRuleMatcher:
    return WatchRuleMatcher(build_rules(DEFAULT_WATCH_RULES))


def test_literal_patterns_are_case_insensitive() -> None:
    """Test substring patterns ignore case."""
    rule = WatchRule(name="security_issues", patterns=("CVE", "vulnerability"))

    assert rule.matches("Fix for cve-2026-1234", None)
    assert rule.matches("VULNERABILITY in parser", None)
    assert not rule.matches("Refactor tests", None)


def test_regex_patterns() -> None:
    """Test re:-prefixed patterns are regular expressions."""
    rule = WatchRule(name="versions", patterns=(r"re:\bv\d+\.0\.0\b",))

    assert rule.matches("Release v3.0.0", None)
    assert not rule.matches("Release v3.1.0", None)


def test_invalid_regex_fails_at_build_time() -> None:
    """Test broken patterns are reported when rules are built."""
    with pytest.raises(re.error):
        build_rules({"broken": ["re:(unclosed"]})


def test_username_placeholder() -> None:
    """Test the mentions rule needs a login to match."""
    rule = WatchRule(name="mentions", patterns=("@{username}",))

    assert rule.matches("ping @alice please look", "alice")
    assert not rule.matches("ping @alice please look", "bob")
    assert not rule.matches("ping @alice please look", None)


def test_catch_all_rule_matches_everything(matcher: WatchRuleMatcher, make_item) -> None:
    """Test all_activity with no patterns matches any item."""
    item = make_item(title="Bump dependencies", body="", labels=frozenset())
    rules = matcher.active_rules({"all_activity"})

    assert WatchRuleMatcher.match(item, rules, None) == frozenset({"all_activity"})


def test_match_uses_title_body_and_labels(matcher: WatchRuleMatcher, make_item) -> None:
    """Test every text field is searched."""
    rules = matcher.active_rules({"security_issues", "performance", "breaking_changes"})

    assert WatchRuleMatcher.match(make_item(title="Security fix"), rules, None) == {"security_issues"}
    assert WatchRuleMatcher.match(make_item(body="big regression"), rules, None) == {"performance"}
    assert WatchRuleMatcher.match(make_item(labels=frozenset({"migration"})), rules, None) == {
        "breaking_changes"
    }


def test_profile_without_rules_gets_all_rules(matcher: WatchRuleMatcher) -> None:
    """Test a repository naming no rules is matched against every rule."""
    assert {rule.name for rule in matcher.active_rules(set())} == set(DEFAULT_WATCH_RULES)
    assert [rule.name for rule in matcher.active_rules({"performance", "unknown"})] == ["performance"]


def test_breaking_change_title_matches_several_rules(matcher: WatchRuleMatcher, make_item) -> None:
    """Test one title can trip multiple rules."""
    item = make_item(title="BREAKING change to config loader", body="", labels=frozenset())

    matched = WatchRuleMatcher.match(item, matcher.active_rules(set()), "alice")

    assert matched == {"api_changes", "breaking_changes", "all_activity"}
