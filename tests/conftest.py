"""Shared fixtures."""

from datetime import datetime, timezone
from typing import Callable

import pytest

from gh_digest.core import ActivityItem, ItemKind


def build_item(**overrides) -> ActivityItem:
    fields = dict(
        id="octo/repo#1",
        repo="octo/repo",
        kind=ItemKind.ISSUE,
        title="Crash on startup",
        body="Stack trace attached",
        author="alice",
        created_at=datetime(2026, 10, 1, 9, 0, tzinfo=timezone.utc),
        updated_at=datetime(2026, 10, 2, 9, 0, tzinfo=timezone.utc),
        url="https://github.com/octo/repo/issues/1",
        labels=frozenset({"bug"}),
        participants=frozenset({"bob"}),
    )
    fields.update(overrides)
    return ActivityItem(**fields)


@pytest.fixture
def make_item() -> Callable[..., ActivityItem]:
    """Factory for activity items with sensible defaults."""
    return build_item
