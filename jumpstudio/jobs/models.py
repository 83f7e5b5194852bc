"""Domain models for streamed generation jobs."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from typing import Literal

from jumpstudio.ai.pipeline.contracts import GenerationRequest, StageResult

JobStatus = Literal["pending", "running", "complete", "failed"]
RequesterKind = Literal["user", "guest"]

TERMINAL_STATUSES: frozenset[str] = frozenset({"complete", "failed"})
STATUS_RANK: dict[str, int] = {"pending": 0, "running": 1, "complete": 2, "failed": 2}
_ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
  "pending": frozenset({"running", "failed"}),
  "running": frozenset({"complete", "failed"}),
  "complete": frozenset(),
  "failed": frozenset(),
}


class JobStateError(RuntimeError):
  """Raised on an illegal job state change."""


def _utc_now() -> datetime:
  return datetime.now(UTC)


@dataclass(frozen=True)
class Requester:
  """Identity a job is attributed to and charged against."""

  subject: str
  kind: RequesterKind

  @classmethod
  def for_user(cls, uid: str) -> Requester:
    return cls(subject=f"user:{uid}", kind="user")

  @classmethod
  def for_guest(cls, client_ip: str) -> Requester:
    # Hash the address so raw IPs never reach the database.
    digest = hashlib.sha256(client_ip.encode("utf-8")).hexdigest()[:16]
    return cls(subject=f"guest:{digest}", kind="guest")


@dataclass(frozen=True)
class JobSnapshot:
  """Read-only view of a job handed to the writer and the transport."""

  job_id: str
  subject: str
  status: JobStatus
  stage_index: int
  completion_percentage: int
  results: tuple[StageResult, ...]
  created_at: datetime
  updated_at: datetime


@dataclass
class GenerationJob:
  """Mutable job state, owned by exactly one orchestrator run."""

  job_id: str
  requester: Requester
  request: GenerationRequest
  status: JobStatus = "pending"
  stage_index: int = 0
  completion_percentage: int = 0
  results: tuple[StageResult, ...] = ()
  # Quota bucket charged for this job, used when the debit is refunded.
  quota_period_start: date | None = None
  created_at: datetime = field(default_factory=_utc_now)
  updated_at: datetime = field(default_factory=_utc_now)

  @property
  def is_terminal(self) -> bool:
    return self.status in TERMINAL_STATUSES

  def advance_status(self, status: JobStatus) -> None:
    """Move forward through pending -> running -> complete|failed."""
    if status not in _ALLOWED_TRANSITIONS[self.status]:
      raise JobStateError(f"Job {self.job_id} cannot move from {self.status} to {status}.")
    self.status = status
    self.updated_at = _utc_now()

  def record_stage(self, result: StageResult, completion_percentage: int) -> None:
    """Append the next stage result and its progress value."""
    if self.status != "running":
      raise JobStateError(f"Job {self.job_id} is {self.status}; stage results require a running job.")
    if result.stage_index != self.stage_index:
      raise JobStateError(f"Job {self.job_id} expected stage {self.stage_index}, got {result.stage_index}.")
    if completion_percentage < self.completion_percentage:
      raise JobStateError(f"Job {self.job_id} progress cannot decrease ({self.completion_percentage} -> {completion_percentage}).")
    self.results = (*self.results, result)
    self.stage_index += 1
    self.completion_percentage = completion_percentage
    self.updated_at = _utc_now()

  def snapshot(self) -> JobSnapshot:
    return JobSnapshot(
      job_id=self.job_id,
      subject=self.requester.subject,
      status=self.status,
      stage_index=self.stage_index,
      completion_percentage=self.completion_percentage,
      results=self.results,
      created_at=self.created_at,
      updated_at=self.updated_at,
    )
