"""Content-addressed, TTL-bound cache persisted as one file per entry."""

import base64
import gzip
import json
import logging
import os
import tempfile
import zlib
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta
from pathlib import Path
from typing import Callable, Iterator, Optional

from gh_digest.core.entities import CacheEntry, SourceKind
from gh_digest.core.errors import CacheCorruptionError

logger = logging.getLogger(__name__)

DEFAULT_SUMMARY_TTL = timedelta(hours=24)
DEFAULT_RETENTION = timedelta(days=7)

_GZIP_MAGIC = b"\x1f\x8b"
_SUFFIX = ".cache"


def local_now() -> datetime:
    """Current time as an aware datetime in the local timezone."""
    return datetime.now().astimezone()


def next_local_midnight(moment: datetime) -> datetime:
    """First local midnight strictly after `moment`."""
    local = moment.astimezone()
    next_day = local.date() + timedelta(days=1)
    return datetime.combine(next_day, time.min, tzinfo=local.tzinfo)


@dataclass
class CacheStats:
    """Counts and sizes of stored entries."""

    total_entries: int = 0
    total_size: int = 0
    by_kind: dict[str, int] = field(default_factory=dict)
    corrupt_entries: int = 0

    def size_human(self) -> str:
        size = float(self.total_size)
        for unit in ("B", "KB", "MB"):
            if size < 1024.0:
                return f"{size:.0f} {unit}" if unit == "B" else f"{size:.2f} {unit}"
            size /= 1024.0
        return f"{size:.2f} GB"


class CacheStore:
    """Store entries as JSON envelopes under `cache_dir/<fp[:2]>/<fp>.cache`.

    Writes go to a temporary file in the same directory and are committed with
    `os.replace`, so readers see either the old entry, the new one, or nothing.
    Anything that fails to decode is purged and reported as a miss.
    """

    def __init__(
        self,
        cache_dir: Path,
        summary_ttl: timedelta = DEFAULT_SUMMARY_TTL,
        compression: bool = True,
        clock: Callable[[], datetime] = local_now,
    ) -> None:
        self.cache_dir = cache_dir
        self.summary_ttl = summary_ttl
        self.compression = compression
        self.clock = clock
        self.cache_dir.mkdir(parents=True, exist_ok=True)

    def get(self, fingerprint: str) -> Optional[bytes]:
        """Return the payload for `fingerprint`, or None on miss."""
        entry = self.get_entry(fingerprint)
        return entry.payload if entry else None

    def get_entry(self, fingerprint: str) -> Optional[CacheEntry]:
        path = self._path(fingerprint)
        try:
            raw = path.read_bytes()
        except FileNotFoundError:
            return None

        try:
            entry = self._decode(raw)
        except CacheCorruptionError as e:
            logger.warning("Purging corrupt cache entry %s: %s", fingerprint, e)
            self._unlink(path)
            return None

        if entry.fingerprint != fingerprint:
            logger.warning("Purging misplaced cache entry %s", fingerprint)
            self._unlink(path)
            return None

        if entry.is_expired(self.clock()):
            logger.debug("Cache entry expired: %s", fingerprint)
            self._unlink(path)
            return None

        return entry

    def put(
        self,
        fingerprint: str,
        payload: bytes,
        ttl: timedelta,
        source_kind: SourceKind = SourceKind.SUMMARIZER,
    ) -> CacheEntry:
        """Atomically commit an entry. Re-putting the same content is a no-op in effect."""
        created_at = self.clock()
        entry = CacheEntry(
            fingerprint=fingerprint,
            payload=payload,
            created_at=created_at,
            expires_at=created_at + ttl,
            source_kind=source_kind,
        )
        path = self._path(fingerprint)
        path.parent.mkdir(parents=True, exist_ok=True)

        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".tmp-", suffix=_SUFFIX)
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(self._encode(entry))
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            self._unlink(Path(tmp_name))
            raise

        logger.debug("Cached %s entry %s (%d bytes)", source_kind.value, fingerprint, len(payload))
        return entry

    def put_source(self, fingerprint: str, payload: bytes) -> CacheEntry:
        """Source data lives until the next local midnight."""
        now = self.clock()
        return self.put(fingerprint, payload, next_local_midnight(now) - now, SourceKind.SOURCE)

    def put_summary(self, fingerprint: str, payload: bytes) -> CacheEntry:
        return self.put(fingerprint, payload, self.summary_ttl, SourceKind.SUMMARIZER)

    def purge(self, fingerprint: str) -> None:
        self._unlink(self._path(fingerprint))

    def invalidate_expired(self) -> int:
        """Remove every entry whose TTL has elapsed.

        Returns:
            Number of entries removed
        """
        now = self.clock()
        removed = 0
        for path in self._entry_paths():
            entry = self._read_path(path)
            if entry is None or entry.is_expired(now):
                self._unlink(path)
                removed += 1
        if removed:
            logger.info("Removed %d expired cache entries", removed)
        return removed

    def sweep(self, retention_horizon: timedelta = DEFAULT_RETENTION) -> int:
        """Remove entries created before the retention horizon, whatever their TTL.

        Returns:
            Number of entries removed
        """
        cutoff = self.clock() - retention_horizon
        removed = 0
        for path in self._entry_paths():
            entry = self._read_path(path)
            if entry is None or entry.created_at < cutoff:
                self._unlink(path)
                removed += 1
        for tmp in self.cache_dir.glob(f"*/.tmp-*{_SUFFIX}"):
            self._unlink(tmp)
        if removed:
            logger.info("Swept %d cache entries older than %s", removed, retention_horizon)
        return removed

    def prune(self, retention_horizon: timedelta = DEFAULT_RETENTION) -> int:
        """Remove expired entries, then anything past the retention horizon."""
        return self.invalidate_expired() + self.sweep(retention_horizon)

    def clear(self) -> int:
        removed = 0
        for path in self._entry_paths():
            self._unlink(path)
            removed += 1
        return removed

    def stats(self) -> CacheStats:
        stats = CacheStats()
        for path in self._entry_paths():
            stats.total_entries += 1
            stats.total_size += path.stat().st_size
            entry = self._read_path(path)
            if entry is None:
                stats.corrupt_entries += 1
                continue
            kind = entry.source_kind.value
            stats.by_kind[kind] = stats.by_kind.get(kind, 0) + 1
        return stats

    def _path(self, fingerprint: str) -> Path:
        if not fingerprint or not all(c.isalnum() or c in "-_" for c in fingerprint):
            raise ValueError(f"Invalid fingerprint: {fingerprint!r}")
        return self.cache_dir / fingerprint[:2] / f"{fingerprint}{_SUFFIX}"

    def _entry_paths(self) -> Iterator[Path]:
        for path in sorted(self.cache_dir.glob(f"*/*{_SUFFIX}")):
            if not path.name.startswith(".tmp-"):
                yield path

    def _read_path(self, path: Path) -> Optional[CacheEntry]:
        try:
            return self._decode(path.read_bytes())
        except FileNotFoundError:
            return None
        except CacheCorruptionError:
            return None

    def _encode(self, entry: CacheEntry) -> bytes:
        envelope = {
            "fingerprint": entry.fingerprint,
            "created_at": entry.created_at.isoformat(),
            "expires_at": entry.expires_at.isoformat(),
            "source_kind": entry.source_kind.value,
            "payload": base64.b64encode(entry.payload).decode("ascii"),
        }
        data = json.dumps(envelope).encode("utf-8")
        return gzip.compress(data) if self.compression else data

    @staticmethod
    def _decode(raw: bytes) -> CacheEntry:
        try:
            if raw.startswith(_GZIP_MAGIC):
                raw = gzip.decompress(raw)
            envelope = json.loads(raw.decode("utf-8"))
            return CacheEntry(
                fingerprint=envelope["fingerprint"],
                payload=base64.b64decode(envelope["payload"], validate=True),
                created_at=datetime.fromisoformat(envelope["created_at"]),
                expires_at=datetime.fromisoformat(envelope["expires_at"]),
                source_kind=SourceKind(envelope["source_kind"]),
            )
        except (OSError, EOFError, zlib.error, ValueError, KeyError, TypeError) as e:
            raise CacheCorruptionError(str(e)) from e

    @staticmethod
    def _unlink(path: Path) -> None:
        try:
            path.unlink()
        except FileNotFoundError:
            pass
