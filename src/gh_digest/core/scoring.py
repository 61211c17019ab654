"""Deterministic priority scoring."""

from datetime import datetime
from typing import Iterable, Optional

from gh_digest.core.entities import (
    ActivityItem,
    Importance,
    ItemKind,
    RepoProfile,
    ScoredItem,
    Tier,
)

BASE_WEIGHTS = {
    Importance.CRITICAL: 100.0,
    Importance.HIGH: 50.0,
    Importance.MEDIUM: 20.0,
    Importance.LOW: 5.0,
}

HALF_LIFE_HOURS = 48.0

HIGH_SIGNAL_RULES = frozenset({"api_changes", "breaking_changes", "security_issues"})
HIGH_SIGNAL_BONUS = 15.0
RULE_BONUS = 5.0

AUTHOR_BONUS = 20.0
MENTION_BONUS = 10.0
PARTICIPANT_BONUS = 5.0

# Lower bounds, closed: a score equal to the bound belongs to that tier
TIER_THRESHOLDS = [
    (150.0, Tier.CRITICAL),
    (80.0, Tier.HIGH),
    (30.0, Tier.MEDIUM),
]


def tier_for_score(score: float) -> Tier:
    for threshold, tier in TIER_THRESHOLDS:
        if score >= threshold:
            return tier
    return Tier.LOW


def decayed_weight(importance: Importance, age_hours: float) -> float:
    """Base weight halved every 48 hours of age. Future timestamps count as age 0."""
    age_hours = max(0.0, age_hours)
    return BASE_WEIGHTS[importance] * 0.5 ** (age_hours / HALF_LIFE_HOURS)


def rule_bonus(matched_rules: Iterable[str]) -> float:
    return sum(
        HIGH_SIGNAL_BONUS if rule in HIGH_SIGNAL_RULES else RULE_BONUS
        for rule in set(matched_rules)
    )


def involvement_bonus(item: ActivityItem, username: Optional[str]) -> float:
    """Highest applicable involvement bonus; they do not add up."""
    if not username:
        return 0.0
    login = username.lower()
    if item.author.lower() == login:
        return AUTHOR_BONUS
    mention = f"@{login}"
    if item.kind == ItemKind.MENTION or mention in item.title.lower() or mention in item.body.lower():
        return MENTION_BONUS
    if login in {p.lower() for p in item.participants}:
        return PARTICIPANT_BONUS
    return 0.0


def presentation_key(scored: ScoredItem) -> tuple:
    """Score desc, importance desc, updated_at desc, id asc."""
    return (
        -scored.score,
        -scored.importance.rank,
        -scored.item.updated_at.timestamp(),
        scored.item.id,
    )


class PriorityScorer:
    """Score items relative to a fixed point in time.

    `now` is passed in rather than read from the clock so that every call with
    the same inputs returns the same result.
    """

    def __init__(self, username: Optional[str], now: datetime) -> None:
        self.username = username
        self.now = now

    def score(
        self, item: ActivityItem, profile: RepoProfile, matched_rules: Iterable[str]
    ) -> float:
        age_hours = (self.now - item.updated_at).total_seconds() / 3600.0
        total = (
            decayed_weight(profile.effective_importance, age_hours)
            + rule_bonus(matched_rules)
            + involvement_bonus(item, self.username)
        )
        return max(0.0, total)

    def score_item(self, item: ActivityItem, profile: RepoProfile) -> ScoredItem:
        """Score with the item's own matched rules and attach the tier."""
        value = self.score(item, profile, item.matched_rules)
        return ScoredItem(
            item=item,
            score=value,
            tier=tier_for_score(value),
            importance=profile.effective_importance,
        )
