"""Tests for configuration loading."""

from pathlib import Path
from tempfile import TemporaryDirectory
from unittest.mock import patch

import pytest
import yaml

from gh_digest.config import get_settings, resolve_model_alias
from gh_digest.core import Importance, Tier

CONFIG = {
    "github": {"username": "alice"},
    "claude": {"primary_model": "opus", "secondary_model": "my-custom-model"},
    "paths": {"cache_dir": "/tmp/gh-digest-cache"},
    "concurrency": {"summary_pool": 8},
    "labels": [
        {"name": "core", "importance": "critical", "watch_rules": ["api_changes"], "context": "Core platform"},
        {"name": "tooling", "importance": "low", "watch_rules": ["performance"]},
    ],
    "repos": [
        {"name": "octo/core", "labels": ["core", "tooling"], "custom_context": "Owned by infra"},
        {"name": "octo/docs", "labels": ["tooling"], "importance_override": "high", "watch_rules": ["mentions"]},
    ],
    "watch_rules": {"releases": ["re:v\\d+\\.0\\.0"]},
}


def write_config(tmpdir: str, data: dict) -> Path:
    path = Path(tmpdir) / "config.yaml"
    path.write_text(yaml.safe_dump(data), encoding="utf-8")
    return path


def test_missing_config_uses_defaults() -> None:
    """Test defaults when no config file exists."""
    with TemporaryDirectory() as tmpdir, patch.dict("os.environ", {"ANTHROPIC_API_KEY": "k"}, clear=True):
        settings = get_settings(Path(tmpdir) / "absent.yaml")

    assert settings.anthropic_api_key == "k"
    assert settings.github_token is None
    assert settings.limits.max_items == 100
    assert settings.limits.max_comments == 500
    assert settings.cache.summary_ttl_hours == 24
    assert settings.github.max_retries == 3
    assert settings.tier_shares[Tier.LOW] == 0.25
    assert "all_activity" in settings.build_watch_rules()


def test_load_sections_and_env() -> None:
    """Test YAML sections and environment credentials are combined."""
    env = {"ANTHROPIC_API_KEY": "k", "GITHUB_TOKEN": "gh"}
    with TemporaryDirectory() as tmpdir, patch.dict("os.environ", env, clear=True):
        settings = get_settings(write_config(tmpdir, CONFIG))

    assert settings.github_token == "gh"
    assert settings.github.username == "alice"
    assert settings.primary_model == resolve_model_alias("opus")
    assert settings.secondary_model == "my-custom-model"
    assert settings.paths.cache_dir == Path("/tmp/gh-digest-cache")
    assert settings.concurrency.summary_pool == 8
    assert "releases" in settings.build_watch_rules()
    assert "api_changes" in settings.build_watch_rules()


def test_repo_profiles_merge_labels() -> None:
    """Test label importance, rules and context flow into profiles."""
    with TemporaryDirectory() as tmpdir, patch.dict("os.environ", {}, clear=True):
        settings = get_settings(write_config(tmpdir, CONFIG))

    core, docs = settings.build_repo_profiles()

    assert core.importance == Importance.CRITICAL
    assert core.watch_rules == {"api_changes", "performance"}
    assert core.custom_context == "Core platform\nOwned by infra"
    assert docs.effective_importance == Importance.HIGH
    assert docs.watch_rules == {"performance", "mentions"}


def test_github_user_from_env() -> None:
    """Test GITHUB_USER fills a missing username."""
    with TemporaryDirectory() as tmpdir, patch.dict("os.environ", {"GITHUB_USER": "bob"}, clear=True):
        settings = get_settings(Path(tmpdir) / "absent.yaml")

    assert settings.github.username == "bob"


@pytest.mark.parametrize(
    "data",
    [
        {"limits": {"max_itemz": 5}},
        {"repos": [{"name": "octo/x", "labels": ["missing"]}]},
        {"labels": [{"name": "x", "importance": "urgent"}]},
        {"dynamic_repos": {"auto_add_window_days": 30, "auto_remove_threshold_days": 7}},
        {"concurrency": {"summary_pool": 0}},
        {"github": {"max_retries": 0}},
    ],
)
def test_invalid_config_rejected(data: dict) -> None:
    """Test unusable settings raise ValueError."""
    with TemporaryDirectory() as tmpdir, patch.dict("os.environ", {}, clear=True):
        with pytest.raises(ValueError):
            get_settings(write_config(tmpdir, data))


def test_model_alias_passthrough() -> None:
    """Test unknown model names pass through unchanged."""
    assert resolve_model_alias("claude-something-new") == "claude-something-new"
    assert resolve_model_alias("Haiku").startswith("claude-")
