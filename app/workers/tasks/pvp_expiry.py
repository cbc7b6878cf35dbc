from __future__ import annotations

from datetime import datetime, timezone

import structlog

from app.core.config import get_settings
from app.db.transactions import TransactionRetryExhaustedError
from app.game.pvp.service import PvpMatchService
from app.workers.asyncio_runner import run_async_job
from app.workers.celery_app import celery_app

logger = structlog.get_logger(__name__)
PVP_EXPIRY_MAX_BATCHES_PER_RUN = 20


async def run_pvp_async_expiry_async(*, batch_size: int | None = None) -> dict[str, int]:
    settings = get_settings()
    resolved_batch_size = max(1, int(batch_size or settings.pvp_expiry_batch_size))
    now_utc = datetime.now(timezone.utc)

    result = {"expired_total": 0, "batches": 0, "failed_batches": 0}
    for _ in range(PVP_EXPIRY_MAX_BATCHES_PER_RUN):
        try:
            expired_count = await PvpMatchService.expire_due_async_matches(
                now_utc=now_utc,
                batch_size=resolved_batch_size,
            )
        except TransactionRetryExhaustedError:
            result["failed_batches"] += 1
            logger.warning("pvp_async_expiry_batch_failed", batch=result["batches"] + 1)
            break

        result["batches"] += 1
        result["expired_total"] += expired_count
        if expired_count < resolved_batch_size:
            break

    logger.info("pvp_async_expiry_finished", **result)
    return result


@celery_app.task(name="app.workers.tasks.pvp_expiry.run_pvp_async_expiry")
def run_pvp_async_expiry() -> dict[str, int]:
    return run_async_job(run_pvp_async_expiry_async())


celery_app.conf.beat_schedule = celery_app.conf.beat_schedule or {}
celery_app.conf.beat_schedule.update(
    {
        "pvp-async-expiry-scan": {
            "task": "app.workers.tasks.pvp_expiry.run_pvp_async_expiry",
            "schedule": float(get_settings().pvp_expiry_scan_interval_seconds),
            "options": {"queue": "q_normal"},
        },
    }
)
