"""SQLAlchemy models for persisted generation artifacts."""

from __future__ import annotations

from sqlalchemy import Boolean, CheckConstraint, DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from jumpstudio.core.database import Base


class GenerationJobRow(Base):
  """Job-level status and progress. Stage content lives in `generation_stage_outputs`."""

  __tablename__ = "generation_jobs"
  __table_args__ = (
    CheckConstraint("status IN ('pending', 'running', 'complete', 'failed')", name="ck_generation_jobs_status"),
    CheckConstraint("completion_percentage BETWEEN 0 AND 100", name="ck_generation_jobs_completion"),
  )

  job_id: Mapped[str] = mapped_column(String, primary_key=True)
  subject: Mapped[str] = mapped_column(String, nullable=False, index=True)
  status: Mapped[str] = mapped_column(String, nullable=False)
  completion_percentage: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
  error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
  created_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
  updated_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())


class StageOutputRow(Base):
  """One recovered stage value; rows for different stages never overlap."""

  __tablename__ = "generation_stage_outputs"

  job_id: Mapped[str] = mapped_column(ForeignKey("generation_jobs.job_id", ondelete="CASCADE"), primary_key=True)
  stage_index: Mapped[int] = mapped_column(Integer, primary_key=True)
  stage_key: Mapped[str] = mapped_column(String, nullable=False)
  value_json: Mapped[dict] = mapped_column(JSONB, nullable=False)
  recovered_by: Mapped[str] = mapped_column(String, nullable=False)
  from_fallback: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
  updated_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())
