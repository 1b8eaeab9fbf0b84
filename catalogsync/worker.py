"""arq worker for asset download jobs.

Run with: arq catalogsync.worker.WorkerSettings
"""

import logging
import os
from typing import Any

from arq.connections import RedisSettings
from arq.cron import cron

from catalogsync.config import get_config
from catalogsync.core.logging import configure_logging
from catalogsync.services import build_services

logger = logging.getLogger(__name__)


async def startup(ctx: dict[str, Any]) -> None:
    """Build pipeline services when the worker starts."""
    config = get_config()
    configure_logging(config.log_level)
    ctx["services"] = build_services(config)
    logger.info("Worker started. Database connection initialized.")


async def shutdown(ctx: dict[str, Any]) -> None:
    """Release HTTP clients and database connections."""
    services = ctx.get("services")
    if services is not None:
        await services.aclose()
    logger.info("Worker stopped. Database connection closed.")


async def process_asset_jobs(ctx: dict[str, Any], batch_size: int | None = None) -> dict[str, Any]:
    """Run one batch of asset download jobs."""
    services = ctx["services"]
    result = await services.queue.process_batch(batch_size or services.config.assets.batch_size)
    return result.model_dump()


async def cleanup_asset_jobs(ctx: dict[str, Any], days_old: int | None = None) -> dict[str, Any]:
    """Purge completed jobs older than the retention window."""
    services = ctx["services"]
    days = days_old if days_old is not None else services.config.assets.retention_days
    deleted = await services.queue.cleanup(days)
    return {"deleted": deleted, "days_old": days}


class WorkerSettings:
    functions = [process_asset_jobs, cleanup_asset_jobs]
    on_startup = startup
    on_shutdown = shutdown
    redis_settings = RedisSettings.from_dsn(os.environ.get("REDIS_URL", "redis://localhost:6379"))
    cron_jobs = [
        # Asset downloads every five minutes, cleanup nightly
        cron(process_asset_jobs, minute=set(range(0, 60, 5)), run_at_startup=True),
        cron(cleanup_asset_jobs, hour=3, minute=30),
    ]
