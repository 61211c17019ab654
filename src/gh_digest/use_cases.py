"""Business logic use cases."""

import asyncio
import json
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from pathlib import Path
from typing import Awaitable, Callable, Iterable, Optional, Sequence, TypeVar

from gh_digest.core import (
    ActivityDiscovery,
    ActivityItem,
    ActivitySource,
    AnnotatedItem,
    Batch,
    BatchPlan,
    BatchPlanner,
    CacheStore,
    CancellationToken,
    DynamicRepoTracker,
    ExternalError,
    FatalExternalError,
    ItemStatus,
    OverflowRecord,
    PriorityScorer,
    RepoProfile,
    RunState,
    RunSummary,
    ScoredItem,
    StateStore,
    Summarizer,
    SummaryResult,
    Tier,
    TransientExternalError,
    WatchRuleMatcher,
)
from gh_digest.core.cache_store import local_now
from gh_digest.core.fingerprint import source_fingerprint, summary_fingerprint

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_CONTENT_CHARS = 8000


class _Cancelled(Exception):
    """Raised internally when the token is set before a call is issued."""


@dataclass
class PipelineState:
    """Ephemeral per-run state."""

    token: CancellationToken
    resolved: set[str] = field(default_factory=set)
    summary: RunSummary = field(default_factory=RunSummary)


@dataclass
class PipelineResult:
    """Annotated items grouped by tier, plus the run summary."""

    tiers: list[tuple[Tier, list[AnnotatedItem]]]
    overflow: list[OverflowRecord]
    summary: RunSummary

    @property
    def items(self) -> list[AnnotatedItem]:
        return [item for _, items in self.tiers for item in items]


def normalize(items: Iterable[ActivityItem], profiles: dict[str, RepoProfile]) -> list[ActivityItem]:
    """Drop items of untracked repos, strip text, keep the newest copy of each id."""
    latest: dict[str, ActivityItem] = {}
    for item in items:
        if item.repo not in profiles:
            logger.debug("Dropping %s: repository %s is not tracked", item.id, item.repo)
            continue
        item = replace(
            item,
            title=item.title.strip(),
            body=item.body.strip(),
            labels=frozenset(label.strip() for label in item.labels if label.strip()),
        )
        current = latest.get(item.id)
        if current is None or item.updated_at > current.updated_at:
            latest[item.id] = item
    return sorted(latest.values(), key=lambda i: i.id)


def build_content(item: ActivityItem, context: str = "") -> str:
    """Text sent to the summarizer for one item."""
    lines = [
        f"Repository: {item.repo}",
        f"Type: {item.kind.value}",
        f"Title: {item.title}",
        f"Author: {item.author}",
    ]
    if item.labels:
        lines.append(f"Labels: {', '.join(sorted(item.labels))}")
    if item.matched_rules:
        lines.append(f"Watch rules: {', '.join(sorted(item.matched_rules))}")
    if context:
        lines.append(f"Repository context: {context}")
    lines.append("")
    lines.append(item.body[:MAX_CONTENT_CHARS])
    return "\n".join(lines)


class DigestPipeline:
    """Drive fetch, match, score, track, plan and summarize for one run.

    The CacheStore is the only shared mutable resource. Plans are immutable, so
    scoring and planning need no locking.
    """

    def __init__(
        self,
        source: ActivitySource,
        summarizer: Summarizer,
        state_store: StateStore,
        matcher: WatchRuleMatcher,
        planner: BatchPlanner,
        cache: Optional[CacheStore] = None,
        tracker: Optional[DynamicRepoTracker] = None,
        discovery: Optional[ActivityDiscovery] = None,
        configured_repos: Sequence[RepoProfile] = (),
        username: Optional[str] = None,
        prompt_version: str = "v1",
        source_pool: int = 12,
        summary_pool: int = 4,
        max_attempts: int = 3,
        source_max_attempts: Optional[int] = None,
        initial_retry_delay: float = 2.0,
        max_retry_delay: float = 60.0,
        lookback_days: int = 30,
        retention: Optional[timedelta] = None,
        clock: Callable[[], datetime] = local_now,
    ) -> None:
        self.source = source
        self.summarizer = summarizer
        self.state_store = state_store
        self.matcher = matcher
        self.planner = planner
        self.cache = cache
        self.tracker = tracker
        self.discovery = discovery
        self.configured_repos = list(configured_repos)
        self.username = username
        self.prompt_version = prompt_version
        self.source_pool = source_pool
        self.summary_pool = summary_pool
        self.max_attempts = max_attempts
        self.source_max_attempts = source_max_attempts or max_attempts
        self.initial_retry_delay = initial_retry_delay
        self.max_retry_delay = max_retry_delay
        self.lookback_days = lookback_days
        self.retention = retention
        self.clock = clock

    async def run(self, token: Optional[CancellationToken] = None) -> PipelineResult:
        """Run the pipeline once.

        State is loaded here and saved exactly once on the way out, whether the
        run completes, is cancelled or aborts on a fatal error.
        """
        run = PipelineState(token=token or CancellationToken())
        now = self.clock()
        state = self.state_store.load()

        try:
            if self.cache and self.retention is not None:
                await asyncio.to_thread(self.cache.prune, self.retention)

            DynamicRepoTracker.register_configured(state, self.configured_repos, now)

            since = state.since(now, self.lookback_days)
            fetched = await self._fetch_all(state, since, now, run)
            items = normalize(fetched, state.profiles)
            run.summary.items_fetched = len(items)
            logger.info("Fetched %d items from %d repositories", len(items), len(state.profiles))

            items = [self._match(item, state.profiles[item.repo]) for item in items]
            scorer = PriorityScorer(self.username, now)
            scored = [scorer.score_item(item, state.profiles[item.repo]) for item in items]

            if self.tracker:
                await self._update_tracked(state, items, now, run)

            plan = self.planner.plan(scored)
            run.summary.overflow = list(plan.overflow)
            run.summary.truncated = plan.truncated

            contexts = {name: profile.custom_context for name, profile in state.profiles.items()}
            tiers = await self._execute(plan, contexts, run)

            run.summary.cancelled = run.token.is_cancelled
            if not run.summary.cancelled:
                state.last_run = now
        finally:
            self.state_store.save(state)

        return PipelineResult(tiers=tiers, overflow=list(plan.overflow), summary=run.summary)

    def _match(self, item: ActivityItem, profile: RepoProfile) -> ActivityItem:
        rules = self.matcher.active_rules(profile.watch_rules)
        return replace(item, matched_rules=self.matcher.match(item, rules, self.username))

    async def _update_tracked(
        self, state: RunState, items: list[ActivityItem], now: datetime, run: PipelineState
    ) -> None:
        self.tracker.observe(state, items)
        if self.discovery is None or run.token.is_cancelled:
            run.summary.repos_removed = self.tracker.remove_inactive(state, now)
            return

        update = await self.tracker.refresh(state, self.discovery, now)
        run.summary.repos_added = update.added
        run.summary.repos_removed = update.removed
        run.summary.discovery_failure = update.failure

    async def _fetch_all(
        self, state: RunState, since: datetime, until: datetime, run: PipelineState
    ) -> list[ActivityItem]:
        pool = asyncio.Semaphore(self.source_pool)
        results = await self._gather_or_abort(
            self._fetch_repo(repo, since, until, pool, run) for repo in sorted(state.profiles)
        )
        return [item for items in results for item in items]

    async def _fetch_repo(
        self, repo: str, since: datetime, until: datetime, pool: asyncio.Semaphore, run: PipelineState
    ) -> list[ActivityItem]:
        fingerprint = source_fingerprint(repo, since, until)
        cached = await self._cached_items(fingerprint)
        if cached is not None:
            run.summary.source_cache_hits += 1
            return cached

        async def fetch() -> list[ActivityItem]:
            return [item async for item in self.source.fetch_activity(repo, since, until)]

        async with pool:
            try:
                items = await self._with_retries(fetch, run, self.source_max_attempts)
            except _Cancelled:
                run.summary.skipped_repos.append(repo)
                return []
            except FatalExternalError:
                raise
            except ExternalError as e:
                logger.warning("Fetching %s failed: %s", repo, e)
                run.summary.source_failures[repo] = str(e) or e.__class__.__name__
                return []

        if self.cache:
            payload = json.dumps([item.to_dict() for item in items]).encode("utf-8")
            await asyncio.to_thread(self.cache.put_source, fingerprint, payload)
        run.resolved.add(fingerprint)
        return items

    async def _execute(
        self, plan: BatchPlan, contexts: dict[str, str], run: PipelineState
    ) -> list[tuple[Tier, list[AnnotatedItem]]]:
        """Summarize every planned item, one external call per unique fingerprint.

        Cached summaries are loaded up front. Remaining jobs are created in tier
        order, so higher tiers queue first on the shared pool; lower tiers are
        not held back once capacity frees up.
        """
        pool = asyncio.Semaphore(self.summary_pool)
        fingerprints: dict[str, str] = {}
        pending: dict[str, tuple[ScoredItem, Batch, str, asyncio.Semaphore]] = {}
        for batch in plan.batches:
            batch_pool = asyncio.Semaphore(batch.concurrency)
            for scored in batch.items:
                context = contexts.get(scored.item.repo, "")
                fingerprint = summary_fingerprint(scored.item, batch.model, self.prompt_version, context)
                fingerprints[scored.item.id] = fingerprint
                pending.setdefault(fingerprint, (scored, batch, context, batch_pool))

        cached = await asyncio.to_thread(self._load_summaries, list(pending))
        run.summary.cache_hits += len(cached)
        run.resolved.update(cached)
        by_fingerprint = {
            fingerprint: (ItemStatus.CACHED, text, None) for fingerprint, text in cached.items()
        }

        jobs = [
            (fingerprint, self._resolve(fingerprint, *args, pool, run))
            for fingerprint, args in pending.items()
            if fingerprint not in cached
        ]
        outcomes = await self._gather_or_abort(job for _, job in jobs)
        by_fingerprint.update((fingerprint, outcome) for (fingerprint, _), outcome in zip(jobs, outcomes))

        tiers = []
        for batch in plan.batches:
            annotated = []
            for scored in batch.items:
                status, text, error = by_fingerprint[fingerprints[scored.item.id]]
                annotated.append(AnnotatedItem(scored=scored, status=status, summary=text, error=error))
                if status == ItemStatus.DEGRADED:
                    run.summary.degraded.append(scored.item.id)
                elif status == ItemStatus.SKIPPED:
                    run.summary.skipped.append(scored.item.id)
            tiers.append((batch.tier, annotated))
        return tiers

    async def _resolve(
        self,
        fingerprint: str,
        scored: ScoredItem,
        batch: Batch,
        context: str,
        batch_pool: asyncio.Semaphore,
        pool: asyncio.Semaphore,
        run: PipelineState,
    ) -> tuple[ItemStatus, Optional[str], Optional[str]]:
        content = build_content(scored.item, context)

        async def call() -> SummaryResult:
            run.summary.summarizer_calls += 1
            return await self.summarizer.summarize(batch.model, self.prompt_version, content)

        async with batch_pool, pool:
            try:
                result = await self._with_retries(call, run, self.max_attempts)
            except _Cancelled:
                return ItemStatus.SKIPPED, None, "cancelled"
            except FatalExternalError:
                raise
            except ExternalError as e:
                logger.warning("Summarizing %s failed, using raw content: %s", scored.item.id, e)
                return ItemStatus.DEGRADED, None, str(e) or e.__class__.__name__

        run.summary.input_tokens += result.input_tokens
        run.summary.output_tokens += result.output_tokens
        if self.cache:
            payload = {
                "text": result.text,
                "input_tokens": result.input_tokens,
                "output_tokens": result.output_tokens,
            }
            await asyncio.to_thread(self.cache.put_summary, fingerprint, json.dumps(payload).encode("utf-8"))
        run.resolved.add(fingerprint)
        return ItemStatus.SUMMARIZED, result.text, None

    async def _with_retries(self, call: Callable[[], Awaitable[T]], run: PipelineState, max_attempts: int) -> T:
        """Issue `call` with bounded retries on transient failures.

        The token is checked before every attempt; no attempt starts once it is set.
        """
        for attempt in range(max_attempts):
            if run.token.is_cancelled:
                raise _Cancelled()
            try:
                return await call()
            except TransientExternalError as e:
                if attempt == max_attempts - 1:
                    raise
                delay = e.retry_after if e.retry_after is not None else self.initial_retry_delay * (2 ** attempt)
                delay = min(delay, self.max_retry_delay)
                logger.info("Transient failure (%s), retrying in %.1fs (attempt %d/%d)",
                            e, delay, attempt + 1, max_attempts)
                await asyncio.sleep(delay)
        raise RuntimeError("max_attempts must be at least 1")

    @staticmethod
    async def _gather_or_abort(coros: Iterable[Awaitable[T]]) -> list[T]:
        """Gather, cancelling the remaining work if any task raises."""
        tasks = [asyncio.ensure_future(coro) for coro in coros]
        try:
            return list(await asyncio.gather(*tasks))
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    async def _cached_items(self, fingerprint: str) -> Optional[list[ActivityItem]]:
        if not self.cache:
            return None
        payload = await asyncio.to_thread(self.cache.get, fingerprint)
        if payload is None:
            return None
        try:
            return [ActivityItem.from_dict(raw) for raw in json.loads(payload)]
        except (ValueError, KeyError, TypeError) as e:
            logger.warning("Purging unreadable source cache entry %s: %s", fingerprint, e)
            self.cache.purge(fingerprint)
            return None

    def _load_summaries(self, fingerprints: list[str]) -> dict[str, str]:
        """Cached summary text by fingerprint; unreadable entries are purged."""
        if not self.cache:
            return {}
        found = {}
        for fingerprint in fingerprints:
            payload = self.cache.get(fingerprint)
            if payload is None:
                continue
            try:
                found[fingerprint] = json.loads(payload)["text"]
            except (ValueError, KeyError, TypeError) as e:
                logger.warning("Purging unreadable summary cache entry %s: %s", fingerprint, e)
                self.cache.purge(fingerprint)
        return found


class DigestService:
    """Render and save digests produced by the pipeline."""

    def __init__(self, renderer) -> None:
        self.renderer = renderer

    def render(self, result: PipelineResult, digest_date) -> str:
        return self.renderer.render(result, digest_date)

    def save_digest(self, digest: str, output_path: Path) -> None:
        """Save digest to file."""
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(digest, encoding="utf-8")
        logger.info("Digest saved to %s", output_path)
