"""Pydantic schemas for outbound job processing."""

from uuid import UUID

from pydantic import BaseModel, Field


class QueueRunResult(BaseModel):
    """Job ids grouped by what one queue pass did with them."""
    processed: list[UUID] = Field(default_factory=list)
    failed: list[UUID] = Field(default_factory=list)
    retried: list[UUID] = Field(default_factory=list)
    skipped: list[UUID] = Field(default_factory=list)


class RecoveredJobs(BaseModel):
    recovered: int
