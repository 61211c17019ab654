"""Core domain entities."""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Optional


class ItemKind(str, Enum):
    """Kind of activity record."""

    ISSUE = "issue"
    PR = "pr"
    COMMENT = "comment"
    MENTION = "mention"


class Importance(str, Enum):
    """Repository importance, ordered from low to critical."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _IMPORTANCE_ORDER.index(self)


_IMPORTANCE_ORDER = [Importance.LOW, Importance.MEDIUM, Importance.HIGH, Importance.CRITICAL]


class Tier(str, Enum):
    """Priority bucket derived from a score."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


# Presentation and scheduling order
TIER_ORDER = [Tier.CRITICAL, Tier.HIGH, Tier.MEDIUM, Tier.LOW]


class SourceKind(str, Enum):
    """Who produced a cache entry."""

    SOURCE = "source"
    SUMMARIZER = "summarizer"


@dataclass(frozen=True)
class ActivityItem:
    """A single piece of repository activity."""

    id: str
    repo: str
    kind: ItemKind
    title: str
    body: str
    author: str
    created_at: datetime
    updated_at: datetime
    url: str
    labels: frozenset[str] = frozenset()
    participants: frozenset[str] = frozenset()
    matched_rules: frozenset[str] = frozenset()

    def __post_init__(self) -> None:
        if not self.id:
            raise ValueError("Item id cannot be empty")
        if not self.repo:
            raise ValueError("Repository cannot be empty")

    def to_dict(self) -> dict[str, Any]:
        """JSON-safe form used for source caching."""
        return {
            "id": self.id,
            "repo": self.repo,
            "kind": self.kind.value,
            "title": self.title,
            "body": self.body,
            "author": self.author,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "url": self.url,
            "labels": sorted(self.labels),
            "participants": sorted(self.participants),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ActivityItem":
        return cls(
            id=data["id"],
            repo=data["repo"],
            kind=ItemKind(data["kind"]),
            title=data.get("title", ""),
            body=data.get("body", ""),
            author=data.get("author", ""),
            created_at=datetime.fromisoformat(data["created_at"]),
            updated_at=datetime.fromisoformat(data["updated_at"]),
            url=data.get("url", ""),
            labels=frozenset(data.get("labels", [])),
            participants=frozenset(data.get("participants", [])),
        )


@dataclass
class RepoProfile:
    """A tracked repository and what we know about it."""

    name: str
    labels: list[str] = field(default_factory=list)
    importance: Importance = Importance.MEDIUM
    importance_override: Optional[Importance] = None
    custom_context: str = ""
    watch_rules: set[str] = field(default_factory=set)
    last_seen: Optional[datetime] = None
    activity_score: int = 0
    auto_tracked: bool = False
    tracked_since: Optional[datetime] = None

    @property
    def effective_importance(self) -> Importance:
        """Repository override wins over label-derived importance."""
        return self.importance_override or self.importance


@dataclass
class RunState:
    """Persisted repository set plus prior run metadata."""

    profiles: dict[str, RepoProfile] = field(default_factory=dict)
    last_run: Optional[datetime] = None

    def since(self, now: datetime, max_lookback_days: int) -> datetime:
        """Start of the fetch window: last run, bounded by the lookback limit."""
        floor = now - timedelta(days=max_lookback_days)
        if self.last_run is None or self.last_run < floor:
            return floor
        return self.last_run


@dataclass(frozen=True)
class CacheEntry:
    """Decoded cache entry."""

    fingerprint: str
    payload: bytes
    created_at: datetime
    expires_at: datetime
    source_kind: SourceKind

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


@dataclass(frozen=True)
class ScoredItem:
    """Activity item with its priority score."""

    item: ActivityItem
    score: float
    tier: Tier
    importance: Importance


@dataclass(frozen=True)
class Batch:
    """Items of one tier sharing a model and a concurrency budget."""

    tier: Tier
    items: tuple[ScoredItem, ...]
    model: str
    concurrency: int


@dataclass(frozen=True)
class OverflowRecord:
    """Stands in for the items a cap removed from a section."""

    section: str
    count: int


@dataclass(frozen=True)
class SummaryResult:
    """Output of one summarizer call."""

    text: str
    input_tokens: int = 0
    output_tokens: int = 0


class ItemStatus(str, Enum):
    """How an item's annotation was obtained."""

    SUMMARIZED = "summarized"
    CACHED = "cached"
    DEGRADED = "degraded"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class AnnotatedItem:
    """Scored item plus its summary, or the reason it has none."""

    scored: ScoredItem
    status: ItemStatus
    summary: Optional[str] = None
    error: Optional[str] = None


@dataclass
class RunSummary:
    """Everything that was skipped, degraded, truncated or changed in a run."""

    source_failures: dict[str, str] = field(default_factory=dict)
    skipped_repos: list[str] = field(default_factory=list)
    discovery_failure: Optional[str] = None
    degraded: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    overflow: list[OverflowRecord] = field(default_factory=list)
    truncated: bool = False
    repos_added: list[str] = field(default_factory=list)
    repos_removed: list[str] = field(default_factory=list)
    items_fetched: int = 0
    source_cache_hits: int = 0
    cache_hits: int = 0
    summarizer_calls: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    cancelled: bool = False
