"""Tests for cache fingerprints."""

from dataclasses import replace
from datetime import datetime, timedelta, timezone

from gh_digest.core import SourceKind
from gh_digest.core.fingerprint import (
    canonical_json,
    compute_fingerprint,
    source_fingerprint,
    summary_fingerprint,
)


def test_canonical_json_ignores_key_order() -> None:
    """Test key order and set order do not change the canonical form."""
    assert canonical_json({"b": 1, "a": {"y", "x"}}) == canonical_json({"a": {"x", "y"}, "b": 1})
    assert canonical_json({"a": 1}) == '{"a":1}'


def test_fingerprint_is_stable_hex() -> None:
    """Test the same request always hashes the same."""
    first = compute_fingerprint(SourceKind.SOURCE, {"repo": "octo/repo"})
    second = compute_fingerprint(SourceKind.SOURCE, {"repo": "octo/repo"})

    assert first == second
    assert len(first) == 64
    int(first, 16)


def test_fingerprint_covers_model_and_prompt_version(make_item) -> None:
    """Test a prompt or model change yields a new key."""
    item = make_item()

    base = summary_fingerprint(item, "model-a", "v1")

    assert summary_fingerprint(item, "model-a", "v2") != base
    assert summary_fingerprint(item, "model-b", "v1") != base
    assert summary_fingerprint(item, "model-a", "v1", context="infra repo") != base


def test_summary_fingerprint_tracks_content(make_item) -> None:
    """Test edits to an item produce a new key, derived rules do not."""
    item = make_item()

    assert summary_fingerprint(replace(item, body="edited"), "m", "v1") != summary_fingerprint(item, "m", "v1")
    assert summary_fingerprint(
        replace(item, matched_rules=frozenset({"performance"})), "m", "v1"
    ) == summary_fingerprint(item, "m", "v1")


def test_source_fingerprint_window() -> None:
    """Test `until` is keyed by day and `since` by exact instant."""
    since = datetime(2026, 10, 18, 8, 0, tzinfo=timezone.utc)
    morning = datetime(2026, 10, 19, 8, 0, tzinfo=timezone.utc)
    evening = datetime(2026, 10, 19, 20, 0, tzinfo=timezone.utc)
    next_day = datetime(2026, 10, 20, 8, 0, tzinfo=timezone.utc)

    assert source_fingerprint("octo/repo", since, morning) == source_fingerprint("Octo/Repo", since, evening)
    assert source_fingerprint("octo/repo", since, morning) != source_fingerprint("octo/repo", since, next_day)
    later_since = since + timedelta(hours=4)
    assert source_fingerprint("octo/repo", since, evening) != source_fingerprint("octo/repo", later_since, evening)
