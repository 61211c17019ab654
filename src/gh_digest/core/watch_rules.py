"""Watch rules: named pattern sets that flag activity on topics of interest."""

import re
from dataclasses import dataclass, field
from typing import Iterable, Mapping, Optional

from gh_digest.core.entities import ActivityItem

CATCH_ALL_RULE = "all_activity"
REGEX_PREFIX = "re:"
USERNAME_PLACEHOLDER = "{username}"

DEFAULT_WATCH_RULES: dict[str, list[str]] = {
    "api_changes": ["public API", "breaking change", "deprecation", "new feature"],
    "breaking_changes": ["BREAKING", "migration", "major version"],
    "security_issues": ["security", "vulnerability", "CVE", "exploit"],
    "performance": ["performance", "regression", "benchmark", "slow"],
    "mentions": ["@{username}"],
    "review_requests": ["review requested", "PTAL", "feedback needed"],
    CATCH_ALL_RULE: [],
}


@dataclass(frozen=True)
class WatchRule:
    """A named list of patterns.

    Patterns are literal substrings unless prefixed with ``re:``, in which case
    the rest is a regular expression. Matching is case-insensitive.
    """

    name: str
    patterns: tuple[str, ...] = ()
    catch_all: bool = False
    _compiled: tuple[tuple[str, Optional[re.Pattern]], ...] = field(
        default=(), init=False, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        compiled = []
        for pattern in self.patterns:
            if USERNAME_PLACEHOLDER in pattern:
                # Compiled per call once the login is known; validate the shape now
                _compile(pattern, "user")
                compiled.append((pattern, None))
            else:
                compiled.append((pattern, _compile(pattern, None)))
        object.__setattr__(self, "_compiled", tuple(compiled))

    def matches(self, text: str, username: Optional[str]) -> bool:
        if self.catch_all:
            return True
        for pattern, regex in self._compiled:
            if regex is None:
                if not username:
                    continue
                regex = _compile(pattern, username)
            if regex.search(text):
                return True
        return False


def _compile(pattern: str, username: Optional[str]) -> re.Pattern:
    if pattern.startswith(REGEX_PREFIX):
        source = pattern[len(REGEX_PREFIX):]
        if username is not None:
            source = source.replace(USERNAME_PLACEHOLDER, re.escape(username))
        return re.compile(source, re.IGNORECASE)

    literal = pattern
    if username is not None:
        literal = literal.replace(USERNAME_PLACEHOLDER, username)
    return re.compile(re.escape(literal), re.IGNORECASE)


def build_rules(config: Mapping[str, Iterable[str]]) -> dict[str, WatchRule]:
    """Build rules from a name -> patterns mapping.

    An empty pattern list under the catch-all name matches everything. Invalid
    regular expressions raise ``re.error`` here rather than at match time.
    """
    rules = {}
    for name, patterns in config.items():
        patterns = tuple(patterns or ())
        rules[name] = WatchRule(
            name=name,
            patterns=patterns,
            catch_all=name == CATCH_ALL_RULE and not patterns,
        )
    return rules


def searchable_text(item: ActivityItem) -> str:
    """Title, body and labels joined for pattern matching."""
    return "\n".join([item.title, item.body, " ".join(sorted(item.labels))])


class WatchRuleMatcher:
    """Match items against the rules active for their repository."""

    def __init__(self, rules: Mapping[str, WatchRule]) -> None:
        self.rules = dict(rules)

    def active_rules(self, rule_names: Iterable[str]) -> list[WatchRule]:
        """Rules named by a repository, or every rule when it names none."""
        names = set(rule_names)
        if not names:
            return list(self.rules.values())
        return [rule for name, rule in self.rules.items() if name in names]

    @staticmethod
    def match(
        item: ActivityItem, active_rules: Iterable[WatchRule], username: Optional[str]
    ) -> frozenset[str]:
        """Return the names of the rules that match `item`."""
        text = searchable_text(item)
        return frozenset(rule.name for rule in active_rules if rule.matches(text, username))
