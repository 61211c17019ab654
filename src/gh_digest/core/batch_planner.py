"""Group scored items into tiered, capped batches."""

import logging
import math
from dataclasses import dataclass
from typing import Iterable, Mapping, Optional

from gh_digest.core.entities import TIER_ORDER, Batch, ItemKind, OverflowRecord, ScoredItem, Tier
from gh_digest.core.scoring import presentation_key

logger = logging.getLogger(__name__)

ITEMS_SECTION = "items"
COMMENTS_SECTION = "comments"

DEFAULT_TIER_SHARES = {
    Tier.CRITICAL: 1.0,
    Tier.HIGH: 0.75,
    Tier.MEDIUM: 0.5,
    Tier.LOW: 0.25,
}


def section_for(item: ScoredItem) -> str:
    return COMMENTS_SECTION if item.item.kind == ItemKind.COMMENT else ITEMS_SECTION


@dataclass(frozen=True)
class BatchPlan:
    """Immutable execution plan, Critical batch first."""

    batches: tuple[Batch, ...]
    overflow: tuple[OverflowRecord, ...] = ()

    @property
    def truncated(self) -> bool:
        return bool(self.overflow)

    @property
    def item_count(self) -> int:
        return sum(len(batch.items) for batch in self.batches)


class BatchPlanner:
    """Apply caps, then split by tier and assign models and concurrency."""

    def __init__(
        self,
        primary_model: str,
        secondary_model: str,
        summary_pool: int,
        max_items: Optional[int] = 100,
        max_comments: Optional[int] = 500,
        tier_shares: Optional[Mapping[Tier, float]] = None,
    ) -> None:
        self.primary_model = primary_model
        self.secondary_model = secondary_model
        self.summary_pool = summary_pool
        self.caps = {ITEMS_SECTION: max_items, COMMENTS_SECTION: max_comments}
        self.tier_shares = dict(DEFAULT_TIER_SHARES)
        if tier_shares:
            self.tier_shares.update(tier_shares)

    def model_for(self, tier: Tier) -> str:
        """Higher tiers get the more capable model."""
        if tier in (Tier.CRITICAL, Tier.HIGH):
            return self.primary_model
        return self.secondary_model

    def concurrency_for(self, tier: Tier) -> int:
        return max(1, math.floor(self.summary_pool * self.tier_shares[tier] + 0.5))

    def plan(self, scored_items: Iterable[ScoredItem]) -> BatchPlan:
        ordered = sorted(scored_items, key=presentation_key)

        retained: list[ScoredItem] = []
        overflow: list[OverflowRecord] = []
        for section in (ITEMS_SECTION, COMMENTS_SECTION):
            members = [item for item in ordered if section_for(item) == section]
            cap = self.caps[section]
            if cap is not None and len(members) > cap:
                dropped = len(members) - cap
                logger.info("Section %s over cap %d, dropping %d items", section, cap, dropped)
                overflow.append(OverflowRecord(section=section, count=dropped))
                members = members[:cap]
            retained.extend(members)

        retained.sort(key=presentation_key)
        batches = []
        for tier in TIER_ORDER:
            items = tuple(item for item in retained if item.tier == tier)
            if not items:
                continue
            batches.append(
                Batch(
                    tier=tier,
                    items=items,
                    model=self.model_for(tier),
                    concurrency=self.concurrency_for(tier),
                )
            )

        return BatchPlan(batches=tuple(batches), overflow=tuple(overflow))
