"""Persist the tracked repository set as a YAML document."""

import logging
import os
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

import yaml

from gh_digest.core import Importance, RepoProfile, RunState, StateStore

logger = logging.getLogger(__name__)


def _dt(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_dt(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


class YamlStateStore(StateStore):
    """Load once at run start, save once at run end."""

    def __init__(self, state_file: Path) -> None:
        self.state_file = state_file

    def load(self) -> RunState:
        if not self.state_file.exists():
            return RunState()

        with open(self.state_file, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        profiles = {}
        for name, raw in (data.get("repos") or {}).items():
            profiles[name] = RepoProfile(
                name=name,
                labels=list(raw.get("labels", [])),
                importance=Importance(raw.get("importance", "medium")),
                importance_override=(
                    Importance(raw["importance_override"]) if raw.get("importance_override") else None
                ),
                custom_context=raw.get("custom_context", ""),
                watch_rules=set(raw.get("watch_rules", [])),
                last_seen=_parse_dt(raw.get("last_seen")),
                activity_score=int(raw.get("activity_score", 0)),
                auto_tracked=bool(raw.get("auto_tracked", False)),
                tracked_since=_parse_dt(raw.get("tracked_since")),
            )

        return RunState(profiles=profiles, last_run=_parse_dt(data.get("last_run")))

    def save(self, state: RunState) -> None:
        document = {
            "last_run": _dt(state.last_run),
            "repos": {
                name: {
                    "labels": profile.labels,
                    "importance": profile.importance.value,
                    "importance_override": (
                        profile.importance_override.value if profile.importance_override else None
                    ),
                    "custom_context": profile.custom_context,
                    "watch_rules": sorted(profile.watch_rules),
                    "last_seen": _dt(profile.last_seen),
                    "activity_score": profile.activity_score,
                    "auto_tracked": profile.auto_tracked,
                    "tracked_since": _dt(profile.tracked_since),
                }
                for name, profile in sorted(state.profiles.items())
            },
        }

        self.state_file.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self.state_file.parent, prefix=".state-")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                yaml.safe_dump(document, f, allow_unicode=True, default_flow_style=False, sort_keys=False)
            os.replace(tmp_name, self.state_file)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

        logger.debug("Saved state for %d repositories to %s", len(state.profiles), self.state_file)
