"""Command-line entry point: ``product-scout`` / ``python -m product_scout``."""

import argparse
import asyncio
import json
import logging
import sys
from typing import Optional, Sequence

from prometheus_client import start_http_server

from product_scout.config import settings
from product_scout.config_loader import load_full_config
from product_scout.core.pipeline import PipelineOptions, run_pipeline
from product_scout.core.scrape_queue import QueueStatus, ScrapeQueueManager
from product_scout.db import queries
from product_scout.db.session import create_engine, create_session_factory, init_db
from product_scout.logging_config import setup_logging
from product_scout.scrapers.fastmoss import LOGIN_TIMEOUT_SECONDS, FastMossSession
from product_scout.worker.scheduler import setup_scheduler
from product_scout.worker.tasks import TaskRunner, open_dependencies, rebuild_queue

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="product-scout",
        description="TikTok Shop product discovery: collect, enrich, score and sync candidates",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    scout = sub.add_parser("scout", help="Run the full discovery pipeline")
    scout.add_argument("--region", default=settings.default_region)
    scout.add_argument("--category", default=None)
    scout.add_argument("--limit", type=int, default=None, help="Max rows per discovery list")
    scout.add_argument("--dry-run", action="store_true", help="Skip the Notion sync")
    scout.add_argument("--skip-scrape", action="store_true", help="Reuse already collected products")
    scout.add_argument("--shop-detail-limit", type=int, default=settings.shop_detail_limit)
    scout.add_argument("--strategy-threshold", type=float, default=settings.strategy_threshold)

    top = sub.add_parser("top", help="Show the best scored candidates")
    top.add_argument("--limit", type=int, default=20)
    top.add_argument(
        "--strategy",
        default="default",
        choices=sorted(queries.PROFILE_SCORE_COLUMNS),
        help="Scoring profile to rank by",
    )

    sub.add_parser("status", help="Show table counts and scrape queue state")

    queue = sub.add_parser("queue", help="Scrape queue maintenance")
    queue_sub = queue.add_subparsers(dest="queue_command", required=True)
    build = queue_sub.add_parser("build", help="Rebuild the pending queue")
    build.add_argument("--region", default=settings.default_region)
    build.add_argument("--budget", type=int, default=None)
    consume = queue_sub.add_parser("consume", help="Record a scrape outcome")
    consume.add_argument("queue_id", type=int)
    consume.add_argument("outcome", choices=[QueueStatus.DONE.value, QueueStatus.FAILED.value])

    serve = sub.add_parser("serve", help="Run the scheduler until interrupted")
    serve.add_argument("--region", default=settings.default_region)

    login = sub.add_parser("login", help="Sign in to FastMoss in a visible browser and keep the session")
    login.add_argument("--timeout", type=float, default=LOGIN_TIMEOUT_SECONDS, help="Seconds to wait for the sign-in")

    return parser


def _format_score(value: Optional[float]) -> str:
    return "-" if value is None else f"{value:6.2f}"


async def cmd_scout(args, session_factory) -> int:
    config = load_full_config()
    options = PipelineOptions(
        region=args.region,
        category=args.category,
        limit=args.limit,
        dry_run=args.dry_run,
        skip_scrape=args.skip_scrape,
        strategy_threshold=args.strategy_threshold,
        shop_detail_limit=args.shop_detail_limit,
    )
    async with open_dependencies(skip_scrape=args.skip_scrape) as deps:
        async with session_factory() as db:
            result = await run_pipeline(db, options, config, deps)
    print(json.dumps(result.to_dict(), indent=2))
    return 0


async def cmd_top(args, session_factory) -> int:
    column = queries.PROFILE_SCORE_COLUMNS[args.strategy]
    async with session_factory() as db:
        entries = await queries.get_top_candidates(db, args.limit, sort_by=column)
        if not entries:
            print("No candidates yet. Run `product-scout scout` first.")
            return 0

        for rank, entry in enumerate(entries, start=1):
            candidate_id = entry.candidate.candidate_id
            labels = await queries.get_tag_names_for_candidate(db, candidate_id)
            signals = await queries.get_tag_names_for_candidate(db, candidate_id, signals=True)
            score = getattr(entry.candidate, column)
            print(f"{rank:3d}. [{_format_score(score)}] {entry.product.product_name}")
            print(f"     shop: {entry.product.shop_name}  country: {entry.product.country}")
            if labels:
                print(f"     labels: {', '.join(labels)}")
            if signals:
                print(f"     signals: {', '.join(signals)}")
    return 0


async def cmd_status(args, session_factory) -> int:
    queue = ScrapeQueueManager()
    async with session_factory() as db:
        counts = await queries.count_rows(db)
        statuses = await queries.queue_status_counts(db)
        used = await queue.get_quota_used_today(db)

    budget = load_full_config().scraping().daily_detail_budget
    print("Tables:")
    for table, count in counts.items():
        print(f"  {table:28s} {count}")
    print("Scrape queue:")
    for status in QueueStatus:
        print(f"  {status.value:28s} {statuses.get(status.value, 0)}")
    print(f"Detail quota today: {used}/{budget}")
    return 0


async def cmd_queue(args, session_factory) -> int:
    queue = ScrapeQueueManager()
    async with session_factory() as db:
        if args.queue_command == "build":
            queued = await rebuild_queue(db, load_full_config(), args.region, queue, args.budget)
            print(f"Enqueued {queued} entries")
            return 0

        entry = await queue.consume(db, args.queue_id, args.outcome)
        if entry is None:
            print(f"Queue entry {args.queue_id} not found", file=sys.stderr)
            return 1
        print(f"Queue entry {entry.queue_id}: status={entry.status} retries={entry.retry_count}")
    return 0


async def cmd_serve(args, session_factory) -> int:
    if not settings.scheduler_enabled:
        logger.warning("Scheduler disabled (SCHEDULER_ENABLED=false), nothing to serve")
        return 0

    if settings.metrics_port:
        start_http_server(settings.metrics_port)
        logger.info(f"Prometheus metrics on port {settings.metrics_port}")

    runner = TaskRunner(session_factory, region=args.region)
    scheduler = setup_scheduler(runner)
    scheduler.start()
    logger.info("Scheduler started, press Ctrl+C to stop")
    try:
        await asyncio.Event().wait()
    finally:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
    return 0


async def cmd_login(args, session_factory) -> int:
    async with FastMossSession(headless=False) as session:
        logged_in = await session.login(timeout_seconds=args.timeout)
    if not logged_in:
        print("FastMoss login timed out, try again", file=sys.stderr)
        return 1
    print(f"FastMoss session saved in {session.profile_dir}")
    return 0


COMMANDS = {
    "scout": cmd_scout,
    "top": cmd_top,
    "status": cmd_status,
    "queue": cmd_queue,
    "serve": cmd_serve,
    "login": cmd_login,
}


async def run(args) -> int:
    engine = create_engine()
    try:
        await init_db(engine)
        return await COMMANDS[args.command](args, create_session_factory(engine))
    finally:
        await engine.dispose()


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging()
    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 130
    except Exception as e:
        logger.error(f"{args.command} failed: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
