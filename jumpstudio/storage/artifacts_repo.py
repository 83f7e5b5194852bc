"""Storage interfaces for persisted generation artifacts."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol

from jumpstudio.ai.pipeline.contracts import StageResult
from jumpstudio.jobs.models import STATUS_RANK, TERMINAL_STATUSES, JobStatus


@dataclass(frozen=True)
class ArtifactRecord:
  """Durable snapshot of a job's status and the stage values written so far."""

  job_id: str
  subject: str
  status: JobStatus
  completion_percentage: int
  content: dict[str, dict[str, Any]] = field(default_factory=dict)
  degraded_stages: list[int] = field(default_factory=list)
  title: str | None = None
  error_message: str | None = None
  created_at: datetime | None = None
  updated_at: datetime | None = None


def merge_status(current: JobStatus, incoming: JobStatus) -> JobStatus:
  """Keep the furthest-along status; a terminal status is never replaced."""
  if current in TERMINAL_STATUSES:
    return current
  if STATUS_RANK[incoming] > STATUS_RANK[current]:
    return incoming
  return current


class ArtifactsRepository(Protocol):
  """Repository contract for additive, order-independent artifact writes."""

  async def upsert_job(self, *, job_id: str, subject: str, status: JobStatus, completion_percentage: int, error_message: str | None = None) -> None:
    """Create the job row or merge status/progress into it."""

  async def upsert_stage(self, *, job_id: str, subject: str, status: JobStatus, completion_percentage: int, result: StageResult) -> None:
    """Merge job progress and write one stage's value in a single transaction."""

  async def get_artifact(self, job_id: str) -> ArtifactRecord | None:
    """Fetch the artifact with all stage values applied so far."""
