"""
Background worker for the outbound reply queue and renewal sweeps.

Usage:
    python -m replyflow.worker

The worker polls for claimable outbound jobs and processes them, and runs a
live renewal sweep every RENEWAL_SWEEP_INTERVAL seconds. Several workers can
run side by side; claiming skips rows another worker holds.
"""

import asyncio
import logging
import time

from replyflow.core.config import settings
from replyflow.core.structured_logging import configure_logging
from replyflow.db.session import SessionLocal
from replyflow.services import job_processor, renewal_service

configure_logging()
logger = logging.getLogger(__name__)


async def run_queue_pass() -> None:
    with SessionLocal() as db:
        result = await job_processor.process_queue_once(db, settings.WORKER_BATCH_SIZE)
        if result.processed or result.failed or result.retried or result.skipped:
            logger.info(
                "Queue pass: %s sent, %s retried, %s failed, %s skipped",
                len(result.processed),
                len(result.retried),
                len(result.failed),
                len(result.skipped),
            )


def run_renewal_sweep() -> None:
    with SessionLocal() as db:
        candidates = renewal_service.sweep_renewals(db, dry_run=False)
        sent = sum(1 for c in candidates if c.will_send)
        logger.info("Renewal sweep queued %s reminders (%s candidates)", sent, len(candidates))


async def worker_loop() -> None:
    """Main worker loop - polls for and processes outbound jobs."""
    logger.info(
        "Worker starting (poll interval: %ss, batch size: %s, renewal sweep every %ss)",
        settings.WORKER_POLL_INTERVAL,
        settings.WORKER_BATCH_SIZE,
        settings.RENEWAL_SWEEP_INTERVAL,
    )
    if not settings.whatsapp_configured:
        logger.warning("WhatsApp credentials not set - sends will be logged but not delivered")
    if not settings.OPENAI_API_KEY:
        logger.warning("OPENAI_API_KEY not set - replies fall back to an acknowledgement")
    last_sweep: float | None = None
    while True:
        try:
            await run_queue_pass()
        except Exception as e:
            logger.error("Error in worker loop: %s", type(e).__name__, exc_info=True)

        if last_sweep is None or time.monotonic() - last_sweep >= settings.RENEWAL_SWEEP_INTERVAL:
            try:
                run_renewal_sweep()
            except Exception as e:
                logger.error("Renewal sweep failed: %s", type(e).__name__, exc_info=True)
            last_sweep = time.monotonic()

        await asyncio.sleep(settings.WORKER_POLL_INTERVAL)


def main() -> None:
    try:
        asyncio.run(worker_loop())
    except KeyboardInterrupt:
        logger.info("Worker stopped")


if __name__ == "__main__":
    main()
