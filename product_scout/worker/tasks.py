"""Background tasks: full discovery runs and queue rebuilds."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from product_scout.clients.cj import CjClient
from product_scout.clients.google_trends import TrendsClient
from product_scout.clients.notion import NotionClient
from product_scout.clients.shopee import ShopeeClient
from product_scout.config import settings
from product_scout.config_loader import load_full_config
from product_scout.core.pipeline import (
    PipelineDependencies,
    PipelineOptions,
    PipelineResult,
    build_detail_queue,
    run_pipeline,
)
from product_scout.core.scrape_queue import ScrapeQueueManager
from product_scout.schemas.config import FullConfig
from product_scout.scrapers.fastmoss import FastMossSession

logger = logging.getLogger(__name__)


@asynccontextmanager
async def open_dependencies(
    skip_scrape: bool = False,
    queue: Optional[ScrapeQueueManager] = None,
) -> AsyncIterator[PipelineDependencies]:
    """
    Build the production collaborators and close them afterwards.

    CJ and Notion are left out when their credentials are not configured.
    """
    scraper = None if skip_scrape else FastMossSession()
    shopee = ShopeeClient()
    cj = CjClient() if settings.cj_api_key else None
    notion = NotionClient()
    if not notion.configured:
        await notion.close()
        notion = None

    if cj is None:
        logger.warning("CJ_API_KEY not set, CJ enrichment disabled")

    try:
        yield PipelineDependencies(
            scraper=scraper,
            shopee=shopee,
            cj=cj,
            trends=TrendsClient(),
            notion=notion,
            queue=queue or ScrapeQueueManager(),
        )
    finally:
        for client in (scraper, shopee, cj, notion):
            if client is not None:
                await client.close()


async def rebuild_queue(
    db: AsyncSession,
    config: FullConfig,
    region: str,
    queue: ScrapeQueueManager,
    budget: Optional[int] = None,
) -> int:
    """Rebuild the pending queue from the pre-filtered latest snapshots."""
    deps = PipelineDependencies(queue=queue)
    _, queued = await build_detail_queue(db, PipelineOptions(region=region), config, deps, budget)
    return queued


class TaskRunner:
    """Runs scheduled jobs against one session factory."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        region: Optional[str] = None,
        config: Optional[FullConfig] = None,
    ):
        self.session_factory = session_factory
        self.region = region or settings.default_region
        self.config = config
        self.queue = ScrapeQueueManager()

    def _config(self) -> FullConfig:
        # Reloaded per run so YAML edits apply without a restart
        return self.config or load_full_config()

    async def run_discovery(self) -> Optional[PipelineResult]:
        """Run the full pipeline for the configured region."""
        logger.info(f"Scheduled discovery run starting (region={self.region})")
        options = PipelineOptions(
            region=self.region,
            strategy_threshold=settings.strategy_threshold,
            shop_detail_limit=settings.shop_detail_limit,
        )
        try:
            config = self._config()
            async with open_dependencies(queue=self.queue) as deps:
                async with self.session_factory() as db:
                    return await run_pipeline(db, options, config, deps)
        except Exception as e:
            logger.error(f"Scheduled discovery run failed: {e}", exc_info=True)
            return None

    async def rebuild_queue(self) -> int:
        """Rebuild the pending scrape queue between full runs."""
        try:
            config = self._config()
            async with self.session_factory() as db:
                queued = await rebuild_queue(db, config, self.region, self.queue)
            logger.info(f"Scheduled queue rebuild enqueued {queued} entries")
            return queued
        except Exception as e:
            logger.error(f"Scheduled queue rebuild failed: {e}", exc_info=True)
            return 0
