"""Tests for the Notion sync step."""

from datetime import datetime

import pytest

from product_scout.core.sync import map_to_notion_properties, sync_to_notion
from product_scout.db import queries
from product_scout.db.models import Candidate, Product
from product_scout.db.queries import CandidateWithProduct


class RecordingNotion:
    database_id = "db-1"

    def __init__(self, fail_for=()):
        self.fail_for = set(fail_for)
        self.pages = []

    async def create_page(self, database_id, properties):
        name = properties["Product Name"]["title"][0]["text"]["content"]
        if name in self.fail_for:
            raise RuntimeError("Notion 502")
        self.pages.append(properties)
        return {"id": f"page-{len(self.pages)}"}


async def _candidate(db, name, default_score=70.0, labels=(), signals=()):
    product_id = await queries.upsert_product(db, name, "Shop", "th", category="Beauty")
    candidate_id = await queries.upsert_candidate(db, product_id, {"default": default_score})
    for label in labels:
        await queries.add_candidate_tag(db, candidate_id, await queries.upsert_tag(db, "discovery", label))
    for signal in signals:
        await queries.add_candidate_tag(db, candidate_id, await queries.upsert_tag(db, "signal", signal))
    await db.commit()
    return candidate_id


def test_map_to_notion_properties():
    entry = CandidateWithProduct(
        candidate=Candidate(
            candidate_id=1,
            product_id=1,
            default_score=81.5,
            high_margin_score=None,
            created_at=datetime(2026, 3, 10, 8, 30),
        ),
        product=Product(product_id=1, product_name="Lip Tint", shop_name="Shop", country="th", category=None),
    )

    properties = map_to_notion_properties(entry, ["sales-rank", "trending"], "sales-surge")

    assert properties["Product Name"] == {"title": [{"text": {"content": "Lip Tint"}}]}
    assert properties["Default Score"] == {"number": 81.5}
    assert properties["High Margin Score"] == {"number": None}
    assert properties["Labels"] == {"multi_select": [{"name": "sales-rank"}, {"name": "trending"}]}
    assert properties["Signals"] == {"rich_text": [{"text": {"content": "sales-surge"}}]}
    assert properties["Category"] == {"select": None}
    assert properties["Source"] == {"select": {"name": "th"}}
    assert properties["Discovery Date"] == {"date": {"start": "2026-03-10"}}


@pytest.mark.asyncio
async def test_sync_marks_candidates_and_continues_after_failure(db_session):
    broken = await _candidate(db_session, "Broken")
    await _candidate(db_session, "Lip Tint", labels=["sales-rank"], signals=["hot-product", "shopee-validated"])

    notion = RecordingNotion(fail_for={"Broken"})
    assert await sync_to_notion(db_session, notion) == 1

    (page,) = notion.pages
    assert page["Labels"] == {"multi_select": [{"name": "sales-rank"}]}
    assert page["Signals"]["rich_text"][0]["text"]["content"] == "hot-product, shopee-validated"

    (left,) = await queries.get_unsynced_candidates(db_session)
    assert left.candidate.candidate_id == broken


@pytest.mark.asyncio
async def test_sync_with_nothing_pending(db_session):
    notion = RecordingNotion()
    assert await sync_to_notion(db_session, notion) == 0
    assert notion.pages == []


@pytest.mark.asyncio
async def test_sync_recovers_after_failed_flush(db_session, monkeypatch):
    broken = await _candidate(db_session, "Broken")
    await _candidate(db_session, "Lip Tint")
    mark_synced = queries.mark_synced

    async def duplicate_then_mark(db, candidate_id):
        if candidate_id == broken:
            existing = await db.get(Candidate, candidate_id)
            db.add(Candidate(product_id=existing.product_id))
            await db.flush()
        await mark_synced(db, candidate_id)

    monkeypatch.setattr(queries, "mark_synced", duplicate_then_mark)
    notion = RecordingNotion()

    assert await sync_to_notion(db_session, notion) == 1
    assert len(notion.pages) == 2

    (left,) = await queries.get_unsynced_candidates(db_session)
    assert left.candidate.candidate_id == broken
