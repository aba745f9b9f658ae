"""Tests for the tiered scrape queue."""

import asyncio
from datetime import date, datetime, timedelta

import pytest
from sqlalchemy import func, select

from product_scout.core.scrape_queue import (
    MAX_RETRIES,
    Priority,
    QueueStatus,
    ScrapeQueueManager,
    TARGET_PRODUCT_DETAIL,
)
from product_scout.db import queries
from product_scout.db.models import Candidate, ProductDetail, ProductSnapshot, ScrapeQueueEntry
from product_scout.db.session import create_engine, create_session_factory, init_db
from product_scout.schemas.config import ScrapingFreshness

NOW = datetime(2026, 3, 10, 12, 0)
TODAY = date(2026, 3, 10)
FRESHNESS = ScrapingFreshness()


async def _product(db, name, detail_age_days=None, snapshot_day=None):
    product_id = await queries.upsert_product(db, name, "Shop", "th")
    if detail_age_days is not None:
        db.add(
            ProductDetail(
                product_id=product_id,
                fastmoss_id=f"fm-{product_id}",
                scraped_at=NOW - timedelta(days=detail_age_days),
            )
        )
    if snapshot_day is not None:
        db.add(ProductSnapshot(product_id=product_id, scraped_at=snapshot_day, source="saleslist"))
    await db.flush()
    return product_id


async def _track(db, product_id):
    candidate = Candidate(product_id=product_id)
    db.add(candidate)
    await db.flush()
    tag_id = await queries.upsert_tag(db, "manual", "track")
    await queries.add_candidate_tag(db, candidate.candidate_id, tag_id, created_by="user")


async def _row_count(db):
    result = await db.execute(select(func.count(ScrapeQueueEntry.queue_id)))
    return result.scalar()


@pytest.mark.asyncio
async def test_build_queue_orders_tiers(db_session):
    """Never detailed (3), stale and reappeared (2), tracked (1)."""
    tracked = await _product(db_session, "Tracked", detail_age_days=1)
    await _track(db_session, tracked)
    stale = await _product(db_session, "Stale", detail_age_days=10, snapshot_day=TODAY)
    fresh_new = await _product(db_session, "New")
    await db_session.commit()

    manager = ScrapeQueueManager()
    count = await manager.build_queue(db_session, 10, FRESHNESS, now=NOW)
    assert count == 3

    targets = await manager.get_next_targets(db_session, 10)
    assert [(t.target_id, t.priority) for t in targets] == [
        (str(fresh_new), Priority.NEVER_DETAILED),
        (str(stale), Priority.STALE_REAPPEARED),
        (str(tracked), Priority.TRACKED),
    ]
    assert all(t.target_type == TARGET_PRODUCT_DETAIL for t in targets)
    assert all(t.status == "pending" and t.retry_count == 0 for t in targets)


@pytest.mark.asyncio
async def test_build_queue_respects_budget(db_session):
    for i in range(5):
        await _product(db_session, f"Product {i}")
    await db_session.commit()

    manager = ScrapeQueueManager()
    assert await manager.build_queue(db_session, 3, FRESHNESS, now=NOW) == 3
    assert await _row_count(db_session) == 3


@pytest.mark.asyncio
async def test_stale_detail_not_seen_today_is_skipped(db_session):
    await _product(db_session, "Stale yesterday", detail_age_days=10, snapshot_day=TODAY - timedelta(days=1))
    await _product(db_session, "Fresh today", detail_age_days=2, snapshot_day=TODAY)
    await db_session.commit()

    manager = ScrapeQueueManager()
    assert await manager.build_queue(db_session, 10, FRESHNESS, now=NOW) == 0


@pytest.mark.asyncio
async def test_product_in_two_tiers_keeps_highest(db_session):
    product_id = await _product(db_session, "Both")
    await _track(db_session, product_id)
    await db_session.commit()

    manager = ScrapeQueueManager()
    candidates = await manager.collect_candidates(db_session, FRESHNESS, now=NOW)
    assert [(c.product_id, c.priority) for c in candidates] == [(product_id, Priority.NEVER_DETAILED)]


@pytest.mark.asyncio
async def test_eligibility_restricts_all_but_tracked(db_session):
    kept = await _product(db_session, "Kept")
    await _product(db_session, "Filtered out")
    tracked = await _product(db_session, "Tracked", detail_age_days=1)
    await _track(db_session, tracked)
    await db_session.commit()

    manager = ScrapeQueueManager()
    candidates = await manager.collect_candidates(db_session, FRESHNESS, eligible={kept}, now=NOW)
    assert [c.product_id for c in candidates] == [kept, tracked]


@pytest.mark.asyncio
async def test_rebuild_replaces_pending_and_keeps_history(db_session):
    first = await _product(db_session, "First")
    await _product(db_session, "Second")
    await db_session.commit()

    manager = ScrapeQueueManager()
    await manager.build_queue(db_session, 10, FRESHNESS, now=NOW)
    targets = await manager.get_next_targets(db_session, 10)
    done_id = next(t.queue_id for t in targets if t.target_id == str(first))
    await manager.consume(db_session, done_id, "done", now=NOW)

    # "First" still has no detail row, so it is enqueued again next to its done entry
    assert await manager.build_queue(db_session, 10, FRESHNESS, now=NOW) == 2
    assert await _row_count(db_session) == 3
    done = await db_session.get(ScrapeQueueEntry, done_id)
    assert done.status == "done"


@pytest.mark.asyncio
async def test_consume_done_is_terminal(db_session):
    await _product(db_session, "Only")
    await db_session.commit()

    manager = ScrapeQueueManager()
    await manager.build_queue(db_session, 10, FRESHNESS, now=NOW)
    (entry,) = await manager.get_next_targets(db_session, 10)

    updated = await manager.consume(db_session, entry.queue_id, QueueStatus.DONE, now=NOW)
    assert updated.status == "done"
    assert updated.last_scraped_at == NOW

    again = await manager.consume(db_session, entry.queue_id, "failed", now=NOW)
    assert again.status == "done"
    assert again.retry_count == 0
    assert await manager.get_next_targets(db_session, 10) == []


@pytest.mark.asyncio
async def test_retry_ceiling(db_session):
    """Three failures: retry_count 1, 2, 3 and status pending, pending, failed."""
    await _product(db_session, "Flaky")
    await db_session.commit()

    manager = ScrapeQueueManager()
    await manager.build_queue(db_session, 10, FRESHNESS, now=NOW)
    (entry,) = await manager.get_next_targets(db_session, 10)

    observed = []
    for _ in range(MAX_RETRIES):
        updated = await manager.consume(db_session, entry.queue_id, "failed")
        observed.append((updated.retry_count, updated.status))

    assert observed == [(1, "pending"), (2, "pending"), (3, "failed")]

    # Terminal: a fourth failure changes nothing
    updated = await manager.consume(db_session, entry.queue_id, "failed")
    assert (updated.retry_count, updated.status) == (3, "failed")


@pytest.mark.asyncio
async def test_consume_missing_entry_returns_none(db_session):
    manager = ScrapeQueueManager()
    assert await manager.consume(db_session, 999, "failed") is None


@pytest.mark.asyncio
async def test_consume_rejects_pending_outcome(db_session):
    manager = ScrapeQueueManager()
    with pytest.raises(ValueError):
        await manager.consume(db_session, 1, "pending")
    with pytest.raises(ValueError):
        await manager.consume(db_session, 1, "skipped")


@pytest.mark.asyncio
async def test_quota_used_today(db_session):
    for i in range(3):
        await _product(db_session, f"Product {i}")
    await db_session.commit()

    manager = ScrapeQueueManager()
    await manager.build_queue(db_session, 10, FRESHNESS, now=NOW)
    targets = await manager.get_next_targets(db_session, 10)

    await manager.consume(db_session, targets[0].queue_id, "done", now=NOW - timedelta(days=1))
    await manager.consume(db_session, targets[1].queue_id, "done", now=NOW)
    await manager.consume(db_session, targets[2].queue_id, "failed", now=NOW)

    assert await manager.get_quota_used_today(db_session, now=NOW) == 1


@pytest.mark.asyncio
async def test_failed_rebuild_keeps_previous_pending(db_session, monkeypatch):
    await _product(db_session, "First")
    await _product(db_session, "Second")
    await db_session.commit()

    manager = ScrapeQueueManager()
    assert await manager.build_queue(db_session, 10, FRESHNESS, now=NOW) == 2
    before = [t.queue_id for t in await manager.get_next_targets(db_session, 10)]

    async def broken(*args, **kwargs):
        raise RuntimeError("snapshot query failed")

    monkeypatch.setattr(manager, "collect_candidates", broken)
    with pytest.raises(RuntimeError):
        await manager.build_queue(db_session, 10, FRESHNESS, now=NOW)

    after = await manager.get_next_targets(db_session, 10)
    assert [t.queue_id for t in after] == before
    assert all(t.status == "pending" for t in after)


@pytest.fixture
async def file_session_factory(tmp_path):
    """File-backed database, one connection per session."""
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'queue.db'}", echo=False)
    await init_db(engine)
    try:
        yield create_session_factory(engine)
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_concurrent_failures_all_count(file_session_factory):
    async with file_session_factory() as db:
        await _product(db, "Contended")
        await db.commit()
        manager = ScrapeQueueManager()
        await manager.build_queue(db, 10, FRESHNESS, now=NOW)
        (entry,) = await manager.get_next_targets(db, 10)
        queue_id = entry.queue_id

    async def fail_once():
        async with file_session_factory() as db:
            await ScrapeQueueManager().consume(db, queue_id, "failed")

    await asyncio.gather(*(fail_once() for _ in range(MAX_RETRIES)))

    async with file_session_factory() as db:
        entry = await db.get(ScrapeQueueEntry, queue_id)
        assert entry.retry_count == MAX_RETRIES
        assert entry.status == "failed"


def test_queue_table_columns():
    assert set(ScrapeQueueEntry.__table__.columns.keys()) == {
        "queue_id",
        "target_type",
        "target_id",
        "priority",
        "status",
        "retry_count",
        "last_scraped_at",
        "created_at",
    }
