"""
Internal endpoints for inbound delivery and scheduled operations.

Protected by X-Internal-Secret header.
Call from the channel webhook relay and from external cron.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from replyflow.core.config import settings
from replyflow.core.deps import get_db, verify_internal_secret
from replyflow.schemas.jobs import QueueRunResult
from replyflow.schemas.pipeline import InboundPayload, InboundResult
from replyflow.schemas.renewals import RenewalCandidate, RenewalSweepRequest
from replyflow.services import job_processor, pipeline_service, renewal_service

router = APIRouter(
    prefix="/internal",
    tags=["internal"],
    dependencies=[Depends(verify_internal_secret)],
)


@router.post("/inbound/{channel}", response_model=InboundResult)
def submit_inbound(channel: str, payload: InboundPayload, db: Session = Depends(get_db)):
    """Run one inbound message through the pipeline."""
    return pipeline_service.submit_inbound_message(db, channel, payload)


@router.post("/scheduled/outbound-jobs", response_model=QueueRunResult)
async def process_outbound_jobs(max_jobs: int | None = None, db: Session = Depends(get_db)):
    """Process one batch of the outbound job queue."""
    return await job_processor.process_queue_once(db, max_jobs or settings.WORKER_BATCH_SIZE)


@router.post("/scheduled/renewals", response_model=list[RenewalCandidate])
def sweep_renewals(request: RenewalSweepRequest, db: Session = Depends(get_db)):
    """
    Sweep expiry items for renewal reminders.

    Defaults to a dry run that reports candidates without writing anything.
    """
    return renewal_service.sweep_renewals(
        db, dry_run=request.dry_run, window_days=request.window_days
    )
