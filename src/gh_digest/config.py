"""Configuration management."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml

from gh_digest.core.entities import Importance, RepoProfile, Tier
from gh_digest.core.repo_tracker import ActivityWeights
from gh_digest.core.watch_rules import DEFAULT_WATCH_RULES, WatchRule, build_rules

MODEL_ALIASES = {
    "sonnet": "claude-sonnet-4-20250514",
    "haiku": "claude-3-5-haiku-20241022",
    "opus": "claude-opus-4-20250514",
}


def resolve_model_alias(alias: str) -> str:
    """Map short names to full model ids; anything else passes through."""
    return MODEL_ALIASES.get(alias.lower(), alias)


@dataclass
class GitHubConfig:
    """GitHub API settings."""
    username: Optional[str] = None
    api_base: str = "https://api.github.com"
    timeout: float = 30.0
    max_retries: int = 3


@dataclass
class ClaudeConfig:
    """Claude API settings."""
    primary_model: str = "sonnet"
    secondary_model: str = "haiku"
    prompt_version: str = "v1"
    max_tokens: int = 1024
    temperature: float = 0.3
    max_retries: int = 3
    initial_retry_delay: float = 2.0
    timeout: float = 60.0


@dataclass
class PathsConfig:
    """Path settings."""
    output_dir: Path = Path("digests")
    state_file: Path = Path(".gh-digest/state.yaml")
    cache_dir: Path = Path(".gh-digest/cache")


@dataclass
class CacheConfig:
    """Cache settings."""
    enabled: bool = True
    summary_ttl_hours: int = 24
    retention_days: int = 7
    compression: bool = True


@dataclass
class ConcurrencyConfig:
    """Sizes of the two execution pools."""
    source_pool: int = 12
    summary_pool: int = 4
    tier_shares: dict = field(default_factory=lambda: {
        "critical": 1.0,
        "high": 0.75,
        "medium": 0.5,
        "low": 0.25,
    })


@dataclass
class LimitsConfig:
    """Report caps and fetch window."""
    max_items: int = 100
    max_comments: int = 500
    lookback_days: int = 30


@dataclass
class DynamicReposConfig:
    """Automatic repository tracking."""
    enabled: bool = True
    auto_add_window_days: int = 7
    auto_remove_threshold_days: int = 30
    min_activity_score: int = 5
    activity_weights: dict = field(default_factory=lambda: {
        "commits": 4,
        "prs": 3,
        "issues": 2,
        "comments": 1,
    })


@dataclass
class LabelConfig:
    """A repository label: importance, watch rules and context for summaries."""
    name: str
    importance: str = "medium"
    watch_rules: list[str] = field(default_factory=list)
    context: str = ""


@dataclass
class RepoConfig:
    """An explicitly tracked repository."""
    name: str
    labels: list[str] = field(default_factory=list)
    watch_rules: Optional[list[str]] = None
    importance_override: Optional[str] = None
    custom_context: Optional[str] = None


@dataclass
class Settings:
    """Application settings."""

    # API keys (from environment only)
    anthropic_api_key: str = ""
    github_token: Optional[str] = None

    # Config sections
    github: GitHubConfig = field(default_factory=GitHubConfig)
    claude: ClaudeConfig = field(default_factory=ClaudeConfig)
    paths: PathsConfig = field(default_factory=PathsConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    concurrency: ConcurrencyConfig = field(default_factory=ConcurrencyConfig)
    limits: LimitsConfig = field(default_factory=LimitsConfig)
    dynamic_repos: DynamicReposConfig = field(default_factory=DynamicReposConfig)
    labels: list[LabelConfig] = field(default_factory=list)
    repos: list[RepoConfig] = field(default_factory=list)
    watch_rules: dict[str, list[str]] = field(
        default_factory=lambda: {name: list(p) for name, p in DEFAULT_WATCH_RULES.items()}
    )

    @property
    def primary_model(self) -> str:
        return resolve_model_alias(self.claude.primary_model)

    @property
    def secondary_model(self) -> str:
        return resolve_model_alias(self.claude.secondary_model)

    @property
    def activity_weights(self) -> ActivityWeights:
        return ActivityWeights(**self.dynamic_repos.activity_weights)

    @property
    def tier_shares(self) -> dict[Tier, float]:
        return {Tier(name): float(share) for name, share in self.concurrency.tier_shares.items()}

    def build_watch_rules(self) -> dict[str, WatchRule]:
        return build_rules(self.watch_rules)

    def build_repo_profiles(self) -> list[RepoProfile]:
        """Profiles for explicitly configured repositories.

        Label importance is the highest importance among the repo's labels;
        watch rules are the union of label rules and repo rules.
        """
        labels = {label.name: label for label in self.labels}
        profiles = []
        for repo in self.repos:
            repo_labels = [labels[name] for name in repo.labels if name in labels]
            importance = max(
                (Importance(label.importance) for label in repo_labels),
                key=lambda imp: imp.rank,
                default=Importance.MEDIUM,
            )
            rules = {rule for label in repo_labels for rule in label.watch_rules}
            rules.update(repo.watch_rules or [])
            context_parts = [label.context for label in repo_labels if label.context]
            if repo.custom_context:
                context_parts.append(repo.custom_context)
            profiles.append(
                RepoProfile(
                    name=repo.name,
                    labels=list(repo.labels),
                    importance=importance,
                    importance_override=(
                        Importance(repo.importance_override) if repo.importance_override else None
                    ),
                    custom_context="\n".join(context_parts),
                    watch_rules=rules,
                )
            )
        return profiles

    def validate(self) -> None:
        """Raise ValueError on settings that cannot work together."""
        if self.concurrency.source_pool < 1 or self.concurrency.summary_pool < 1:
            raise ValueError("Concurrency pools must allow at least one call")
        if self.dynamic_repos.auto_add_window_days >= self.dynamic_repos.auto_remove_threshold_days:
            raise ValueError("dynamic_repos.auto_add_window_days must be shorter than auto_remove_threshold_days")
        if self.claude.max_retries < 1:
            raise ValueError("claude.max_retries must be at least 1")
        if self.github.max_retries < 1:
            raise ValueError("github.max_retries must be at least 1")
        label_names = {label.name for label in self.labels}
        for repo in self.repos:
            unknown = set(repo.labels) - label_names
            if unknown:
                raise ValueError(f"Repository {repo.name} uses undefined labels: {sorted(unknown)}")
        for label in self.labels:
            Importance(label.importance)
        for repo in self.repos:
            if repo.importance_override:
                Importance(repo.importance_override)
        for name in self.concurrency.tier_shares:
            Tier(name)
        self.build_watch_rules()


def load_config(config_path: Path = Path("config.yaml")) -> dict:
    """Load configuration from YAML file."""
    if not config_path.exists():
        return {}

    with open(config_path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def _apply_section(section: Any, values: dict, paths: bool = False) -> None:
    for key, value in values.items():
        if not hasattr(section, key):
            raise ValueError(f"Unknown setting: {key}")
        setattr(section, key, Path(value).expanduser() if paths else value)


def get_settings(config_path: Path = Path("config.yaml")) -> Settings:
    """Get application settings from YAML config and environment."""
    config = load_config(config_path)

    settings = Settings(
        anthropic_api_key=os.getenv("ANTHROPIC_API_KEY", ""),
        github_token=os.getenv("GITHUB_TOKEN"),
    )

    if "github" in config:
        _apply_section(settings.github, config["github"])

    if "claude" in config:
        _apply_section(settings.claude, config["claude"])

    if "paths" in config:
        _apply_section(settings.paths, config["paths"], paths=True)

    if "cache" in config:
        _apply_section(settings.cache, config["cache"])

    if "concurrency" in config:
        _apply_section(settings.concurrency, config["concurrency"])

    if "limits" in config:
        _apply_section(settings.limits, config["limits"])

    if "dynamic_repos" in config:
        _apply_section(settings.dynamic_repos, config["dynamic_repos"])

    if "labels" in config:
        settings.labels = [LabelConfig(**label) for label in config["labels"]]

    if "repos" in config:
        settings.repos = [RepoConfig(**repo) for repo in config["repos"]]

    if "watch_rules" in config:
        settings.watch_rules.update(config["watch_rules"])

    if not settings.github.username:
        settings.github.username = os.getenv("GITHUB_USER") or None

    settings.validate()
    return settings
