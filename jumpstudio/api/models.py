from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from jumpstudio.jobs.models import JobStatus
from jumpstudio.storage.artifacts_repo import ArtifactRecord


class GenerationArtifactResponse(BaseModel):
  """Durable view of a generation job and every stage value persisted so far."""

  job_id: str
  status: JobStatus
  completion_percentage: int = Field(ge=0, le=100)
  title: str | None = None
  content: dict[str, dict[str, Any]] = Field(default_factory=dict, description="Stage values keyed by stage key.")
  degraded_stages: list[int] = Field(default_factory=list, description="Indices of stages that used fallback content.")
  error_message: str | None = None
  created_at: datetime | None = None
  updated_at: datetime | None = None

  @classmethod
  def from_record(cls, record: ArtifactRecord) -> GenerationArtifactResponse:
    return cls(
      job_id=record.job_id,
      status=record.status,
      completion_percentage=record.completion_percentage,
      title=record.title,
      content=record.content,
      degraded_stages=record.degraded_stages,
      error_message=record.error_message,
      created_at=record.created_at,
      updated_at=record.updated_at,
    )
