# scheduler/scheduler.py
import asyncio
import os
import logging
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from dotenv import load_dotenv
from scraper.crawler import Crawler
from scraper.runner import run_book_crawl, run_quote_crawl

load_dotenv()
CRON_HOUR = int(os.getenv("CRAWL_CRON_HOUR", "2"))
CRON_MINUTE = int(os.getenv("CRAWL_CRON_MINUTE", "0"))
TIMEZONE = os.getenv("CRAWL_TIMEZONE", "Europe/Belgrade")

logger = logging.getLogger("scheduler")
logger.setLevel(logging.INFO)
handler = logging.StreamHandler()
handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))
logger.addHandler(handler)


async def scheduled_crawl():
    """
    Crawl books, then quotes, and replace each snapshot.

    Each source is isolated: a failure is logged and leaves that source's
    previous snapshot live, and the other source still runs. Nothing is
    retried until the next trigger.

    Returns:
        dict: {source: persisted count, or None if that crawl failed}
    """
    logger.info("Starting scheduled crawl")
    results = {}
    c = Crawler()
    try:
        for name, job in (("books", run_book_crawl), ("quotes", run_quote_crawl)):
            try:
                results[name] = await job(c)
            except Exception:
                logger.exception(f"{name} crawl failed, previous snapshot kept")
                results[name] = None
    finally:
        await c.close()
    logger.info(f"Scheduled crawl finished: {results}")
    return results


def build_scheduler():
    """
    Create the AsyncIOScheduler with both crawl triggers.

    Jobs:
        - "startup_crawl": date trigger, runs once as soon as the scheduler
          starts
        - "daily_crawl": cron trigger at CRON_HOUR:CRON_MINUTE in TIMEZONE

    Both use max_instances=1 and coalesce=True; crawls of the same source are
    additionally serialized by the runner's per-source lock.
    """
    scheduler = AsyncIOScheduler(timezone=TIMEZONE)
    scheduler.add_job(
        scheduled_crawl,
        "date",
        id="startup_crawl",
        max_instances=1,
    )
    scheduler.add_job(
        scheduled_crawl,
        CronTrigger(hour=CRON_HOUR, minute=CRON_MINUTE, timezone=TIMEZONE),
        id="daily_crawl",
        max_instances=1,
        coalesce=True,
    )
    return scheduler


async def async_main():
    scheduler = build_scheduler()
    scheduler.start()
    logger.info(
        f"Scheduler started (daily at {CRON_HOUR:02d}:{CRON_MINUTE:02d} {TIMEZONE})"
    )
    # Keep program running forever
    await asyncio.Event().wait()


if __name__ == "__main__":
    asyncio.run(async_main())
