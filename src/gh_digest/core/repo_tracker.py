"""Dynamic repository tracking with hysteresis."""

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Iterable, Optional

from gh_digest.core.entities import ActivityItem, RepoProfile, RunState
from gh_digest.core.errors import ExternalError
from gh_digest.core.interfaces import ActivityDiscovery, ActivityMetrics

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ActivityWeights:
    """Per-event weights for the activity score."""

    commits: int = 4
    prs: int = 3
    issues: int = 2
    comments: int = 1


def activity_score(metrics: ActivityMetrics, weights: ActivityWeights = ActivityWeights()) -> int:
    return (
        metrics.commits * weights.commits
        + metrics.prs * weights.prs
        + metrics.issues * weights.issues
        + metrics.comments * weights.comments
    )


@dataclass
class TrackerUpdate:
    """What one refresh changed."""

    added: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    refreshed: list[str] = field(default_factory=list)
    failure: Optional[str] = None


class DynamicRepoTracker:
    """Add repositories on recent activity, drop auto-tracked ones after long silence.

    The add window is strictly shorter than the remove threshold, so a repository
    that qualifies once stays tracked for the rest of the monitoring period.
    """

    def __init__(
        self,
        add_window_days: int = 7,
        remove_threshold_days: int = 30,
        min_activity_score: int = 5,
        weights: ActivityWeights = ActivityWeights(),
    ) -> None:
        if add_window_days >= remove_threshold_days:
            raise ValueError(
                f"Add window ({add_window_days}d) must be shorter than "
                f"remove threshold ({remove_threshold_days}d)"
            )
        self.add_window = timedelta(days=add_window_days)
        self.remove_threshold = timedelta(days=remove_threshold_days)
        self.min_activity_score = min_activity_score
        self.weights = weights

    @staticmethod
    def register_configured(
        state: RunState, configured: Iterable[RepoProfile], now: datetime
    ) -> None:
        """Upsert explicitly configured repositories, keeping their tracking history.

        Repositories dropped from the configuration become auto-tracked, so they
        age out like any other inactive repository.
        """
        configured = list(configured)
        names = {profile.name for profile in configured}
        for name, profile in state.profiles.items():
            if name not in names and not profile.auto_tracked:
                profile.auto_tracked = True
        for profile in configured:
            existing = state.profiles.get(profile.name)
            state.profiles[profile.name] = replace(
                profile,
                auto_tracked=False,
                last_seen=existing.last_seen if existing else profile.last_seen,
                activity_score=existing.activity_score if existing else profile.activity_score,
                tracked_since=(existing.tracked_since if existing else None) or now,
            )

    @staticmethod
    def observe(state: RunState, items: Iterable[ActivityItem]) -> None:
        """Advance last_seen for tracked repositories from activity seen this run."""
        for item in items:
            profile = state.profiles.get(item.repo)
            if profile is None:
                continue
            if profile.last_seen is None or item.updated_at > profile.last_seen:
                profile.last_seen = item.updated_at

    async def refresh(
        self, state: RunState, discovery: ActivityDiscovery, now: datetime
    ) -> TrackerUpdate:
        """Apply discovery results to the tracked set.

        A discovery failure leaves the set untouched and is reported in the
        returned update rather than raised.
        """
        update = TrackerUpdate()
        try:
            candidates = await discovery.discover(now - self.add_window)
        except ExternalError as e:
            logger.warning("Repository discovery failed, keeping tracked set: %s", e)
            update.failure = str(e) or e.__class__.__name__
            return update

        for candidate in candidates:
            score = activity_score(candidate.metrics, self.weights)
            profile = state.profiles.get(candidate.repo)

            if profile is None:
                if score < self.min_activity_score:
                    logger.debug("Skipping %s (activity score %d)", candidate.repo, score)
                    continue
                logger.info("Auto-tracking %s (activity score %d)", candidate.repo, score)
                state.profiles[candidate.repo] = RepoProfile(
                    name=candidate.repo,
                    last_seen=candidate.last_activity,
                    activity_score=score,
                    auto_tracked=True,
                    tracked_since=now,
                )
                update.added.append(candidate.repo)
                continue

            profile.activity_score = score
            if profile.last_seen is None or candidate.last_activity > profile.last_seen:
                profile.last_seen = candidate.last_activity
            update.refreshed.append(candidate.repo)

        update.removed = self.remove_inactive(state, now)
        return update

    def remove_inactive(self, state: RunState, now: datetime) -> list[str]:
        """Drop auto-tracked repositories silent for longer than the threshold."""
        removed = []
        for name, profile in list(state.profiles.items()):
            if not profile.auto_tracked:
                continue
            last_seen = profile.last_seen or profile.tracked_since
            if last_seen is None or now - last_seen > self.remove_threshold:
                logger.info("Untracking inactive repository %s (last seen %s)", name, last_seen)
                del state.profiles[name]
                removed.append(name)
        return removed
