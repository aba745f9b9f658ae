"""Budgeted, tiered scrape queue for product detail pages."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum, IntEnum
from typing import Iterable, Optional

from sqlalchemy import case, delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from product_scout.db.models import (
    Candidate,
    CandidateTag,
    Product,
    ProductDetail,
    ProductSnapshot,
    ScrapeQueueEntry,
    Tag,
)
from product_scout.metrics import queue_entries_enqueued_total, queue_transitions_total
from product_scout.schemas.config import ScrapingFreshness
from product_scout.utils.dates import start_of_utc_day, utcnow

logger = logging.getLogger(__name__)

MAX_RETRIES = 3
TARGET_PRODUCT_DETAIL = "product_detail"
TRACK_TAG = "track"


class QueueStatus(str, Enum):
    PENDING = "pending"
    DONE = "done"
    FAILED = "failed"


class Priority(IntEnum):
    """Queue tiers; higher always outranks lower."""

    TRACKED = 1  # manually tagged "track"
    STALE_REAPPEARED = 2  # stale detail and seen in a snapshot today
    NEVER_DETAILED = 3  # no detail row yet


@dataclass
class QueueCandidate:
    product_id: int
    priority: Priority


class ScrapeQueueManager:
    """Builds the pending scrape queue and records scrape outcomes."""

    def __init__(self):
        self._build_lock = asyncio.Lock()

    async def build_queue(
        self,
        db: AsyncSession,
        budget: int,
        freshness: ScrapingFreshness,
        eligible_product_ids: Optional[Iterable[int]] = None,
        now: Optional[datetime] = None,
    ) -> int:
        """
        Rebuild the pending queue from current product state.

        Pending rows are deleted and regenerated in one transaction; done and
        failed rows are left as history.

        Args:
            db: Database session
            budget: Maximum number of entries to enqueue
            freshness: Detail refresh policy
            eligible_product_ids: When given, only these products are
                considered for the never-detailed and stale tiers. Manually
                tracked products are always considered.
            now: Clock override (naive UTC)

        Returns:
            Number of entries inserted
        """
        now = now or utcnow()
        eligible = set(eligible_product_ids) if eligible_product_ids is not None else None

        async with self._build_lock:
            try:
                await db.execute(
                    delete(ScrapeQueueEntry).where(
                        ScrapeQueueEntry.status == QueueStatus.PENDING.value
                    )
                )

                candidates = await self.collect_candidates(db, freshness, eligible, now)
                selected = candidates[: max(0, budget)]

                for item in selected:
                    db.add(
                        ScrapeQueueEntry(
                            target_type=TARGET_PRODUCT_DETAIL,
                            target_id=str(item.product_id),
                            priority=int(item.priority),
                            status=QueueStatus.PENDING.value,
                            retry_count=0,
                            created_at=now,
                        )
                    )
                await db.commit()
            except Exception:
                await db.rollback()
                raise

        for item in selected:
            queue_entries_enqueued_total.labels(priority=str(int(item.priority))).inc()

        logger.info(
            "Scrape queue built: %d candidates, %d enqueued (budget %d)",
            len(candidates),
            len(selected),
            budget,
        )
        return len(selected)

    async def collect_candidates(
        self,
        db: AsyncSession,
        freshness: ScrapingFreshness,
        eligible: Optional[set[int]] = None,
        now: Optional[datetime] = None,
    ) -> list[QueueCandidate]:
        """Gather the three tiers, deduplicated, ordered by tier then discovery order."""
        now = now or utcnow()
        stale_before = now - timedelta(days=freshness.detail_refresh_days)
        today = start_of_utc_day(now).date()

        never_detailed = await db.execute(
            select(Product.product_id)
            .outerjoin(ProductDetail, Product.product_id == ProductDetail.product_id)
            .where(ProductDetail.product_id.is_(None))
            .order_by(Product.product_id)
        )
        stale_reappeared = await db.execute(
            select(ProductDetail.product_id)
            .join(ProductSnapshot, ProductSnapshot.product_id == ProductDetail.product_id)
            .where(
                ProductDetail.scraped_at < stale_before,
                ProductSnapshot.scraped_at >= today,
            )
            .distinct()
            .order_by(ProductDetail.product_id)
        )
        tracked = await db.execute(
            select(Candidate.product_id)
            .join(CandidateTag, CandidateTag.candidate_id == Candidate.candidate_id)
            .join(Tag, Tag.tag_id == CandidateTag.tag_id)
            .where(Tag.tag_type == "manual", Tag.tag_name == TRACK_TAG)
            .distinct()
            .order_by(Candidate.product_id)
        )

        tiers = [
            (Priority.NEVER_DETAILED, never_detailed.scalars().all(), True),
            (Priority.STALE_REAPPEARED, stale_reappeared.scalars().all(), True),
            (Priority.TRACKED, tracked.scalars().all(), False),
        ]

        seen: set[int] = set()
        candidates: list[QueueCandidate] = []
        for priority, product_ids, restricted in tiers:
            for product_id in product_ids:
                if product_id in seen:
                    continue
                if restricted and eligible is not None and product_id not in eligible:
                    continue
                seen.add(product_id)
                candidates.append(QueueCandidate(product_id, priority))

        # Stable: discovery order is kept within a tier
        candidates.sort(key=lambda c: c.priority, reverse=True)
        return candidates

    async def consume(
        self,
        db: AsyncSession,
        queue_id: int,
        outcome: QueueStatus | str,
        now: Optional[datetime] = None,
    ) -> Optional[ScrapeQueueEntry]:
        """
        Record the outcome of a scrape attempt.

        "done" is terminal. "failed" increments retry_count and returns the
        entry to pending until the retry ceiling is reached, then marks it
        failed. The update is a single statement guarded on status=pending,
        so concurrent consumers cannot lose an increment.

        Returns:
            The updated entry, or None when the entry does not exist.
        """
        outcome = QueueStatus(outcome)
        if outcome is QueueStatus.PENDING:
            raise ValueError("outcome must be 'done' or 'failed'")
        now = now or utcnow()

        if outcome is QueueStatus.DONE:
            values = {"status": QueueStatus.DONE.value, "last_scraped_at": now}
        else:
            new_count = ScrapeQueueEntry.retry_count + 1
            values = {
                "retry_count": new_count,
                "status": case(
                    (new_count < MAX_RETRIES, QueueStatus.PENDING.value),
                    else_=QueueStatus.FAILED.value,
                ),
            }

        result = await db.execute(
            update(ScrapeQueueEntry)
            .where(
                ScrapeQueueEntry.queue_id == queue_id,
                ScrapeQueueEntry.status == QueueStatus.PENDING.value,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        await db.commit()

        entry = await db.get(ScrapeQueueEntry, queue_id, populate_existing=True)
        if entry is None:
            logger.error("Scrape queue entry %s not found", queue_id)
            return None

        if result.rowcount == 0:
            logger.warning(
                "Scrape queue entry %s is already %s, ignoring %s",
                queue_id,
                entry.status,
                outcome.value,
            )
            return entry

        queue_transitions_total.labels(status=entry.status).inc()
        if entry.status == QueueStatus.PENDING.value:
            logger.info(
                "Scrape queue entry %s failed (retry %d/%d)",
                queue_id,
                entry.retry_count,
                MAX_RETRIES,
            )
        else:
            logger.info("Scrape queue entry %s -> %s", queue_id, entry.status)
        return entry

    async def get_next_targets(
        self,
        db: AsyncSession,
        limit: int = 10,
    ) -> list[ScrapeQueueEntry]:
        """Fetch pending entries by priority, then insertion order."""
        query = (
            select(ScrapeQueueEntry)
            .where(ScrapeQueueEntry.status == QueueStatus.PENDING.value)
            .order_by(
                ScrapeQueueEntry.priority.desc(),
                ScrapeQueueEntry.created_at.asc(),
                ScrapeQueueEntry.queue_id.asc(),
            )
            .limit(limit)
        )
        result = await db.execute(query)
        return list(result.scalars().all())

    async def get_quota_used_today(
        self,
        db: AsyncSession,
        now: Optional[datetime] = None,
    ) -> int:
        """Count entries completed since the start of the UTC day."""
        since = start_of_utc_day(now or utcnow())
        result = await db.execute(
            select(func.count(ScrapeQueueEntry.queue_id)).where(
                ScrapeQueueEntry.status == QueueStatus.DONE.value,
                ScrapeQueueEntry.last_scraped_at >= since,
            )
        )
        return result.scalar() or 0
