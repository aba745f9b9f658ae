"""Push scored candidates to a Notion database."""

import logging
from typing import Any, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from product_scout.clients.notion import NotionClient
from product_scout.db import queries
from product_scout.db.queries import CandidateWithProduct
from product_scout.metrics import candidates_synced_total

logger = logging.getLogger(__name__)

# Notion property -> candidates column
SCORE_PROPERTIES = {
    "Default Score": "default_score",
    "Trending Score": "trending_score",
    "Blue Ocean Score": "blue_ocean_score",
    "High Margin Score": "high_margin_score",
    "Shop Copy Score": "shop_copy_score",
}


def map_to_notion_properties(
    entry: CandidateWithProduct,
    labels: Sequence[str],
    signal_summary: str,
) -> dict[str, Any]:
    """Build the page properties for one candidate."""
    candidate, product = entry.candidate, entry.product
    properties: dict[str, Any] = {
        "Product Name": {"title": [{"text": {"content": product.product_name}}]},
    }
    for prop, column in SCORE_PROPERTIES.items():
        properties[prop] = {"number": getattr(candidate, column)}

    properties["Labels"] = {"multi_select": [{"name": name} for name in labels]}
    properties["Signals"] = {"rich_text": [{"text": {"content": signal_summary}}]}
    properties["Category"] = (
        {"select": {"name": product.category}} if product.category else {"select": None}
    )
    properties["Source"] = {"select": {"name": product.country}}
    properties["Discovery Date"] = {"date": {"start": candidate.created_at.date().isoformat()}}
    return properties


async def sync_to_notion(
    db: AsyncSession,
    client: NotionClient,
    database_id: Optional[str] = None,
) -> int:
    """
    Create a Notion page for every unsynced candidate.

    A candidate is marked synced only after its page was created; a failure
    is logged and the remaining candidates are still attempted.

    Returns:
        Number of candidates synced
    """
    database_id = database_id or client.database_id
    entries = await queries.get_unsynced_candidates(db)
    if not entries:
        logger.info("No unsynced candidates to sync")
        return 0

    # Plain values only below; a rollback expires the loaded rows
    pages = []
    for entry in entries:
        candidate_id = entry.candidate.candidate_id
        labels = await queries.get_tag_names_for_candidate(db, candidate_id)
        signals = await queries.get_tag_names_for_candidate(db, candidate_id, signals=True)
        properties = map_to_notion_properties(entry, labels, ", ".join(signals))
        pages.append((candidate_id, entry.product.product_name, properties))

    synced = 0
    for candidate_id, product_name, properties in pages:
        try:
            await client.create_page(database_id, properties)
            await queries.mark_synced(db, candidate_id)
            await db.commit()

            synced += 1
            candidates_synced_total.labels(status="success").inc()
            logger.info(f"Synced to Notion: {product_name}")
        except Exception as e:
            await db.rollback()
            candidates_synced_total.labels(status="failed").inc()
            logger.error(
                f"Failed to sync candidate {candidate_id} ({product_name}): {e}",
                exc_info=True,
            )

    logger.info(f"Notion sync complete: {synced}/{len(entries)}")
    return synced
