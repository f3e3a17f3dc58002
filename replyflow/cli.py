"""CLI tools for operating the message pipeline."""

import asyncio
import json
from datetime import datetime

import click

from replyflow.core.structured_logging import configure_logging
from replyflow.db.session import SessionLocal
from replyflow.schemas.pipeline import InboundPayload
from replyflow.services import job_processor, outbound_job_service, pipeline_service, renewal_service


@click.group()
def cli():
    """Replyflow CLI tools."""
    configure_logging()


@cli.command("process-queue")
@click.option("--max-jobs", default=10, show_default=True, help="Jobs to claim in this pass")
def process_queue(max_jobs: int):
    """Run one pass over the outbound job queue."""
    with SessionLocal() as db:
        result = asyncio.run(job_processor.process_queue_once(db, max_jobs))
    click.echo(
        f"processed={len(result.processed)} retried={len(result.retried)} "
        f"failed={len(result.failed)} skipped={len(result.skipped)}"
    )


@cli.command("sweep-renewals")
@click.option("--live", is_flag=True, help="Enqueue reminders instead of a dry run")
@click.option("--window-days", default=90, show_default=True, type=click.IntRange(1, 365))
def sweep_renewals(live: bool, window_days: int):
    """
    Evaluate renewal reminders.

    Without --live nothing is written; each candidate is listed with its
    send decision or skip reason.

    Example:
        python -m replyflow.cli sweep-renewals --window-days 60
    """
    with SessionLocal() as db:
        candidates = renewal_service.sweep_renewals(db, dry_run=not live, window_days=window_days)
    for candidate in candidates:
        decision = "SEND" if candidate.will_send else f"skip:{candidate.skip_reason}"
        click.echo(
            f"{candidate.expiry_item_id} {candidate.item_type} {candidate.expiry_date.isoformat()} "
            f"stage={candidate.stage or '-'} {decision}"
        )
    click.echo(f"{sum(1 for c in candidates if c.will_send)} of {len(candidates)} sendable")


@cli.command("submit-inbound")
@click.option("--channel", default="whatsapp", show_default=True)
@click.option("--phone", default=None, help="Sender phone number")
@click.option("--email", default=None, help="Sender email address")
@click.option("--name", default=None, help="Sender display name")
@click.option("--message-id", default=None, help="Provider message id")
@click.option("--received-at", type=click.DateTime(), default=None)
@click.argument("text")
def submit_inbound(
    channel: str,
    phone: str | None,
    email: str | None,
    name: str | None,
    message_id: str | None,
    received_at: datetime | None,
    text: str,
):
    """Submit one inbound message as if the channel had delivered it."""
    payload = InboundPayload(
        provider_message_id=message_id,
        from_phone=phone,
        from_email=email,
        from_name=name,
        text=text,
        received_at=received_at,
    )
    with SessionLocal() as db:
        result = pipeline_service.submit_inbound_message(db, channel, payload)
    click.echo(json.dumps(result.model_dump(mode="json"), indent=2))


@cli.command("recover-stale")
def recover_stale():
    """Return jobs with expired leases to PENDING."""
    with SessionLocal() as db:
        recovered = outbound_job_service.recover_stale_jobs(db)
    click.echo(f"Recovered {recovered} stale jobs")


if __name__ == "__main__":
    cli()
