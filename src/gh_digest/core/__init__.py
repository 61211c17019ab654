"""Core domain layer."""

from gh_digest.core.batch_planner import BatchPlan, BatchPlanner
from gh_digest.core.cache_store import CacheStats, CacheStore
from gh_digest.core.cancellation import CancellationToken
from gh_digest.core.entities import (
    ActivityItem,
    AnnotatedItem,
    Batch,
    CacheEntry,
    Importance,
    ItemKind,
    ItemStatus,
    OverflowRecord,
    RepoProfile,
    RunState,
    RunSummary,
    ScoredItem,
    SourceKind,
    SummaryResult,
    Tier,
)
from gh_digest.core.errors import (
    CacheCorruptionError,
    ExternalError,
    FatalExternalError,
    PermanentItemError,
    TransientExternalError,
)
from gh_digest.core.interfaces import (
    ActivityDiscovery,
    ActivityMetrics,
    ActivitySource,
    CandidateActivity,
    ReportRenderer,
    StateStore,
    Summarizer,
)
from gh_digest.core.repo_tracker import ActivityWeights, DynamicRepoTracker, TrackerUpdate
from gh_digest.core.scoring import PriorityScorer, tier_for_score
from gh_digest.core.watch_rules import WatchRule, WatchRuleMatcher, build_rules

__all__ = [
    "ActivityItem",
    "AnnotatedItem",
    "Batch",
    "CacheEntry",
    "Importance",
    "ItemKind",
    "ItemStatus",
    "OverflowRecord",
    "RepoProfile",
    "RunState",
    "RunSummary",
    "ScoredItem",
    "SourceKind",
    "SummaryResult",
    "Tier",
    "CacheCorruptionError",
    "ExternalError",
    "FatalExternalError",
    "PermanentItemError",
    "TransientExternalError",
    "ActivityDiscovery",
    "ActivityMetrics",
    "ActivitySource",
    "CandidateActivity",
    "ReportRenderer",
    "StateStore",
    "Summarizer",
    "BatchPlan",
    "BatchPlanner",
    "CacheStats",
    "CacheStore",
    "CancellationToken",
    "ActivityWeights",
    "DynamicRepoTracker",
    "TrackerUpdate",
    "PriorityScorer",
    "tier_for_score",
    "WatchRule",
    "WatchRuleMatcher",
    "build_rules",
]
