"""CLI entry point for the GitHub activity digest."""

import asyncio
import logging
import signal
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Optional

import typer

from gh_digest.adapters.digest import MarkdownReportRenderer
from gh_digest.adapters.llm import ClaudeSummarizer
from gh_digest.adapters.sources import GitHubActivityDiscovery, GitHubActivitySource, GitHubClient
from gh_digest.adapters.state import YamlStateStore
from gh_digest.config import Settings, get_settings
from gh_digest.core import (
    BatchPlanner,
    CacheStore,
    CancellationToken,
    DynamicRepoTracker,
    FatalExternalError,
    WatchRuleMatcher,
)
from gh_digest.use_cases import DigestPipeline, DigestService

cli = typer.Typer(help="Summarize GitHub activity across tracked repositories.")


def app() -> None:
    """CLI entry point."""
    cli()


def _load_settings(config: Path) -> Settings:
    try:
        return get_settings(config)
    except ValueError as e:
        print(f"✗ Invalid configuration: {e}")
        raise typer.Exit(code=2)


def _cache_store(settings: Settings) -> CacheStore:
    return CacheStore(
        settings.paths.cache_dir,
        summary_ttl=timedelta(hours=settings.cache.summary_ttl_hours),
        compression=settings.cache.compression,
    )


@cli.command()
def run(
    days: Optional[int] = typer.Option(None, help="Override the lookback window in days"),
    output: Optional[Path] = typer.Option(None, help="Where to write the digest"),
    config: Path = typer.Option(Path("config.yaml"), help="Path to config.yaml"),
    debug: bool = typer.Option(False, "--debug", help="Verbose logging"),
    no_discovery: bool = typer.Option(False, "--no-discovery", help="Do not auto-track repositories"),
) -> None:
    """Fetch activity, summarize it and write the digest."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    settings = _load_settings(config)
    if days is not None:
        settings.limits.lookback_days = days
    try:
        asyncio.run(async_run(settings, output, no_discovery))
    except FatalExternalError as e:
        print(f"\n✗ Aborted: {e}")
        raise typer.Exit(code=1)


async def async_run(settings: Settings, output: Optional[Path], no_discovery: bool) -> None:
    """Async implementation of run command."""
    # Header
    print("\n" + "=" * 70)
    print("📬  GITHUB ACTIVITY DIGEST")
    print("=" * 70)

    print("\n🔑 Credentials:")
    if settings.anthropic_api_key:
        print("  ✓ ANTHROPIC_API_KEY - summaries via Claude")
    else:
        print("  ✗ ANTHROPIC_API_KEY - not set (summaries will fail)")

    if settings.github_token:
        print("  ✓ GITHUB_TOKEN - authenticated GitHub API")
    else:
        print("  ⚠️  GITHUB_TOKEN - not set (low rate limit, no discovery)")

    discovery_enabled = settings.dynamic_repos.enabled and not no_discovery and bool(settings.github_token)

    print("\n⚙️  Settings:")
    print(f"  • Configured repositories: {len(settings.repos)}")
    print(f"  • Lookback: {settings.limits.lookback_days} days")
    print(f"  • Models: {settings.primary_model} / {settings.secondary_model}")
    print(f"  • Discovery: {'on' if discovery_enabled else 'off'}")
    print(f"  • Cache: {settings.paths.cache_dir if settings.cache.enabled else 'off'}")

    github = GitHubClient(
        token=settings.github_token,
        api_base=settings.github.api_base,
        timeout=settings.github.timeout,
    )
    tracker = None
    if settings.dynamic_repos.enabled:
        tracker = DynamicRepoTracker(
            add_window_days=settings.dynamic_repos.auto_add_window_days,
            remove_threshold_days=settings.dynamic_repos.auto_remove_threshold_days,
            min_activity_score=settings.dynamic_repos.min_activity_score,
            weights=settings.activity_weights,
        )

    pipeline = DigestPipeline(
        source=GitHubActivitySource(github),
        summarizer=ClaudeSummarizer(settings),
        state_store=YamlStateStore(settings.paths.state_file),
        matcher=WatchRuleMatcher(settings.build_watch_rules()),
        planner=BatchPlanner(
            primary_model=settings.primary_model,
            secondary_model=settings.secondary_model,
            summary_pool=settings.concurrency.summary_pool,
            max_items=settings.limits.max_items,
            max_comments=settings.limits.max_comments,
            tier_shares=settings.tier_shares,
        ),
        cache=_cache_store(settings) if settings.cache.enabled else None,
        tracker=tracker,
        discovery=GitHubActivityDiscovery(github, settings.github.username) if discovery_enabled else None,
        configured_repos=settings.build_repo_profiles(),
        username=settings.github.username,
        prompt_version=settings.claude.prompt_version,
        source_pool=settings.concurrency.source_pool,
        summary_pool=settings.concurrency.summary_pool,
        max_attempts=settings.claude.max_retries,
        source_max_attempts=settings.github.max_retries,
        initial_retry_delay=settings.claude.initial_retry_delay,
        lookback_days=settings.limits.lookback_days,
        retention=timedelta(days=settings.cache.retention_days),
    )

    token = CancellationToken()
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, token.cancel)
    except NotImplementedError:
        pass

    print("\n" + "=" * 70)
    print("📡 Fetching and summarizing activity...")
    print("=" * 70)

    try:
        result = await pipeline.run(token)
    finally:
        try:
            loop.remove_signal_handler(signal.SIGINT)
        except NotImplementedError:
            pass

    summary = result.summary
    for repo, error in sorted(summary.source_failures.items()):
        print(f"  ⚠️  {repo}: {error}")
    for repo in summary.skipped_repos:
        print(f"  ⏭️  {repo}: fetch skipped")
    if summary.discovery_failure:
        print(f"  ⚠️  Discovery failed: {summary.discovery_failure}")
    for repo in summary.repos_added:
        print(f"  + tracking {repo}")
    for repo in summary.repos_removed:
        print(f"  - untracked {repo}")

    digest_service = DigestService(MarkdownReportRenderer())
    digest = digest_service.render(result, date.today())
    if output is None:
        timestamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
        output = settings.paths.output_dir / f"{timestamp}_digest.md"
    digest_service.save_digest(digest, output)

    print("\n" + "=" * 70)
    print("⏹️  INTERRUPTED (partial digest)" if summary.cancelled else "✅ DONE!")
    print("=" * 70)
    print(f"📄 Digest saved: {output}")
    print(f"  • Items: {len(result.items)} ({summary.items_fetched} fetched)")
    print(f"  • Summaries: {summary.summarizer_calls} calls, {summary.cache_hits} from cache")
    if summary.degraded:
        print(f"  • Degraded: {len(summary.degraded)}")
    if summary.truncated:
        print(f"  • Over limit: {sum(r.count for r in summary.overflow)}")
    print()


@cli.command("cache-stats")
def cache_stats(
    config: Path = typer.Option(Path("config.yaml"), help="Path to config.yaml"),
) -> None:
    """Show cache size and entry counts."""
    settings = _load_settings(config)
    stats = _cache_store(settings).stats()
    print(f"📦 Cache: {settings.paths.cache_dir}")
    print(f"  • Entries: {stats.total_entries}")
    print(f"  • Size: {stats.size_human()}")
    for kind, count in sorted(stats.by_kind.items()):
        print(f"  • {kind}: {count}")
    if stats.corrupt_entries:
        print(f"  ⚠️  Corrupt entries: {stats.corrupt_entries}")


@cli.command("cache-sweep")
def cache_sweep(
    days: Optional[int] = typer.Option(None, help="Retention horizon in days"),
    config: Path = typer.Option(Path("config.yaml"), help="Path to config.yaml"),
) -> None:
    """Remove expired entries and entries older than the retention horizon."""
    settings = _load_settings(config)
    retention = days if days is not None else settings.cache.retention_days
    removed = _cache_store(settings).prune(timedelta(days=retention))
    print(f"🧹 Removed {removed} cache entries")


if __name__ == "__main__":
    app()
