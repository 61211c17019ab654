"""Content-addressed cache keys."""

import hashlib
import json
from datetime import datetime
from typing import Any, Mapping, Optional

from gh_digest.core.entities import ActivityItem, SourceKind


def canonical_json(value: Any) -> str:
    """Serialize with sorted keys and no insignificant whitespace."""
    return json.dumps(
        value,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=_canonical_default,
    )


def _canonical_default(value: Any) -> Any:
    if isinstance(value, (set, frozenset)):
        return sorted(value)
    if isinstance(value, datetime):
        return value.isoformat()
    raise TypeError(f"Cannot canonicalize {type(value).__name__}")


def compute_fingerprint(
    kind: SourceKind,
    params: Mapping[str, Any],
    model: Optional[str] = None,
    prompt_version: Optional[str] = None,
) -> str:
    """Hash canonicalized request parameters.

    Summarizer fingerprints also cover the model and prompt version, so a prompt
    change produces a new key instead of a stale hit.
    """
    document = {
        "kind": kind.value,
        "params": dict(params),
        "model": model,
        "prompt_version": prompt_version,
    }
    return hashlib.sha256(canonical_json(document).encode("utf-8")).hexdigest()


def source_fingerprint(repo: str, since: datetime, until: datetime) -> str:
    """Key for one repository's fetched activity.

    `since` is keyed to the millisecond so an incremental run never reuses an
    earlier window; `until` only to the day.
    """
    return compute_fingerprint(
        SourceKind.SOURCE,
        {
            "repo": repo.lower(),
            "since": int(since.timestamp() * 1000),
            "until": until.date().isoformat(),
        },
    )


def summary_fingerprint(
    item: ActivityItem, model: str, prompt_version: str, context: str = ""
) -> str:
    """Key for one summarizer call over an item's normalized content."""
    params = item.to_dict()
    params["context"] = context
    return compute_fingerprint(SourceKind.SUMMARIZER, params, model, prompt_version)
