"""Tests for the content-addressed cache."""

import gzip
from datetime import datetime, timedelta
from pathlib import Path
from tempfile import TemporaryDirectory

from gh_digest.core import CacheStore, SourceKind
from gh_digest.core.fingerprint import compute_fingerprint


class FakeClock:
    """Settable clock."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now += delta


def fingerprint(name: str) -> str:
    return compute_fingerprint(SourceKind.SUMMARIZER, {"name": name})


def test_put_then_get() -> None:
    """Test basic store and load."""
    with TemporaryDirectory() as tmpdir:
        cache = CacheStore(Path(tmpdir))
        fp = fingerprint("a")

        assert cache.get(fp) is None
        cache.put_summary(fp, b'{"text": "hello"}')

        assert cache.get(fp) == b'{"text": "hello"}'
        assert (Path(tmpdir) / fp[:2] / f"{fp}.cache").exists()


def test_put_is_idempotent() -> None:
    """Test re-putting the same entry leaves one entry with the same payload."""
    with TemporaryDirectory() as tmpdir:
        cache = CacheStore(Path(tmpdir))
        fp = fingerprint("a")

        cache.put_summary(fp, b"payload")
        cache.put_summary(fp, b"payload")

        assert cache.get(fp) == b"payload"
        assert cache.stats().total_entries == 1


def test_entries_survive_new_instance() -> None:
    """Test entries are persisted on disk, compressed or not."""
    with TemporaryDirectory() as tmpdir:
        fp = fingerprint("a")
        CacheStore(Path(tmpdir), compression=True).put_summary(fp, b"zipped")
        fp_plain = fingerprint("b")
        CacheStore(Path(tmpdir), compression=False).put_summary(fp_plain, b"plain")

        reader = CacheStore(Path(tmpdir))
        assert reader.get(fp) == b"zipped"
        assert reader.get(fp_plain) == b"plain"
        assert gzip.decompress((Path(tmpdir) / fp[:2] / f"{fp}.cache").read_bytes())


def test_corrupt_entry_is_a_miss_and_purged() -> None:
    """Test garbage on disk is dropped instead of raising."""
    with TemporaryDirectory() as tmpdir:
        cache = CacheStore(Path(tmpdir))
        fp = fingerprint("a")
        cache.put_summary(fp, b"payload")
        path = Path(tmpdir) / fp[:2] / f"{fp}.cache"
        path.write_bytes(b"\x1f\x8b not really gzip")

        assert cache.get(fp) is None
        assert not path.exists()


def test_truncated_json_is_a_miss() -> None:
    """Test a partially written envelope is treated as corrupt."""
    with TemporaryDirectory() as tmpdir:
        cache = CacheStore(Path(tmpdir), compression=False)
        fp = fingerprint("a")
        cache.put_summary(fp, b"payload")
        path = Path(tmpdir) / fp[:2] / f"{fp}.cache"
        path.write_bytes(path.read_bytes()[:20])

        assert cache.get(fp) is None
        assert cache.stats().total_entries == 0


def test_summary_ttl_expiry() -> None:
    """Test summaries expire after the configured TTL."""
    with TemporaryDirectory() as tmpdir:
        clock = FakeClock(datetime(2026, 10, 19, 10, 0).astimezone())
        cache = CacheStore(Path(tmpdir), summary_ttl=timedelta(hours=24), clock=clock)
        fp = fingerprint("a")
        cache.put_summary(fp, b"payload")

        clock.advance(timedelta(hours=23, minutes=59))
        assert cache.get(fp) == b"payload"

        clock.advance(timedelta(minutes=1))
        assert cache.get(fp) is None


def test_source_entries_expire_at_local_midnight() -> None:
    """Test source data is reused within the day only."""
    with TemporaryDirectory() as tmpdir:
        clock = FakeClock(datetime(2026, 10, 19, 23, 0).astimezone())
        cache = CacheStore(Path(tmpdir), clock=clock)
        fp = compute_fingerprint(SourceKind.SOURCE, {"repo": "octo/repo"})
        entry = cache.put_source(fp, b"[]")

        assert entry.expires_at == datetime(2026, 10, 20, 0, 0).astimezone()
        clock.advance(timedelta(minutes=59))
        assert cache.get(fp) == b"[]"

        clock.advance(timedelta(minutes=1))
        assert cache.get(fp) is None


def test_invalidate_expired() -> None:
    """Test bulk removal of expired entries keeps live ones."""
    with TemporaryDirectory() as tmpdir:
        clock = FakeClock(datetime(2026, 10, 19, 10, 0).astimezone())
        cache = CacheStore(Path(tmpdir), clock=clock)
        cache.put(fingerprint("short"), b"x", timedelta(hours=1))
        cache.put(fingerprint("long"), b"y", timedelta(hours=48))

        clock.advance(timedelta(hours=2))

        assert cache.invalidate_expired() == 1
        assert cache.get(fingerprint("long")) == b"y"


def test_sweep_uses_retention_horizon() -> None:
    """Test sweep drops old entries regardless of TTL, plus stray temp files."""
    with TemporaryDirectory() as tmpdir:
        clock = FakeClock(datetime(2026, 10, 1, 10, 0).astimezone())
        cache = CacheStore(Path(tmpdir), clock=clock)
        old = fingerprint("old")
        cache.put(old, b"x", timedelta(days=30))
        clock.advance(timedelta(days=8))
        recent = fingerprint("recent")
        cache.put(recent, b"y", timedelta(days=30))
        stray = Path(tmpdir) / recent[:2] / ".tmp-abc.cache"
        stray.write_bytes(b"partial")

        removed = cache.sweep(timedelta(days=7))

        assert removed == 1
        assert cache.get(old) is None
        assert cache.get(recent) == b"y"
        assert not stray.exists()


def test_prune_removes_expired_and_old_entries() -> None:
    """Test prune combines TTL expiry and the retention horizon."""
    with TemporaryDirectory() as tmpdir:
        clock = FakeClock(datetime(2026, 10, 1, 10, 0).astimezone())
        cache = CacheStore(Path(tmpdir), clock=clock)
        cache.put(fingerprint("old"), b"x", timedelta(days=30))
        clock.advance(timedelta(days=8))
        cache.put(fingerprint("expired"), b"y", timedelta(hours=1))
        cache.put(fingerprint("live"), b"z", timedelta(days=1))
        clock.advance(timedelta(hours=2))

        assert cache.prune(timedelta(days=7)) == 2
        assert cache.stats().total_entries == 1
        assert cache.get(fingerprint("live")) == b"z"

def test_stats_by_kind() -> None:
    """Test stats count entries per producer."""
    with TemporaryDirectory() as tmpdir:
        cache = CacheStore(Path(tmpdir))
        cache.put_summary(fingerprint("a"), b"a")
        cache.put_summary(fingerprint("b"), b"b")
        cache.put_source(compute_fingerprint(SourceKind.SOURCE, {"repo": "x/y"}), b"[]")

        stats = cache.stats()

        assert stats.total_entries == 3
        assert stats.by_kind == {"summarizer": 2, "source": 1}
        assert stats.total_size > 0
        assert stats.size_human().endswith("B")


def test_clear() -> None:
    """Test clearing removes everything."""
    with TemporaryDirectory() as tmpdir:
        cache = CacheStore(Path(tmpdir))
        cache.put_summary(fingerprint("a"), b"a")

        assert cache.clear() == 1
        assert cache.get(fingerprint("a")) is None
