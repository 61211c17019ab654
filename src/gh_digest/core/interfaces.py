"""Core interfaces for adapters."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import TYPE_CHECKING, AsyncIterator

from gh_digest.core.entities import ActivityItem, RunState, SummaryResult

if TYPE_CHECKING:
    from gh_digest.use_cases import PipelineResult


@dataclass
class ActivityMetrics:
    """Raw activity counts for one repository over a window."""

    commits: int = 0
    prs: int = 0
    issues: int = 0
    comments: int = 0


@dataclass
class CandidateActivity:
    """A repository seen by discovery, with its activity over the asked window."""

    repo: str
    last_activity: datetime
    metrics: ActivityMetrics = field(default_factory=ActivityMetrics)


class ActivitySource(ABC):
    """Interface for fetching activity of one repository."""

    @abstractmethod
    def fetch_activity(
        self, repo: str, since: datetime, until: datetime
    ) -> AsyncIterator[ActivityItem]:
        """Lazily yield activity of `repo` updated within [since, until]."""


class ActivityDiscovery(ABC):
    """Interface for finding candidate repositories by recent activity."""

    @abstractmethod
    async def discover(self, since: datetime) -> list[CandidateActivity]:
        """Return repositories with activity since the given time."""
        pass


class Summarizer(ABC):
    """Interface for LLM summarization."""

    @abstractmethod
    async def summarize(self, model_id: str, prompt_version: str, content: str) -> SummaryResult:
        """Summarize content with the given model and prompt version."""
        pass


class StateStore(ABC):
    """Load/save pair for the persisted repository set."""

    @abstractmethod
    def load(self) -> RunState:
        pass

    @abstractmethod
    def save(self, state: RunState) -> None:
        pass


class ReportRenderer(ABC):
    """Interface for rendering a digest."""

    @abstractmethod
    def render(self, result: "PipelineResult", digest_date: date) -> str:
        """Render pipeline output for the given date."""
        pass
