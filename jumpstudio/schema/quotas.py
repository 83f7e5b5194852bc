"""SQLAlchemy models for per-subject quota tracking."""

from __future__ import annotations

import enum
import uuid

from sqlalchemy import BigInteger, Date, DateTime, Integer, String, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import ENUM, JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from jumpstudio.core.database import Base


class QuotaPeriod(str, enum.Enum):
  """Supported period buckets for quota accounting."""

  DAY = "DAY"
  WEEK = "WEEK"
  MONTH = "MONTH"


class QuotaBucket(Base):
  """Per-subject per-period counters for quota enforcement."""

  __tablename__ = "quota_buckets"
  __table_args__ = (UniqueConstraint("subject", "metric_key", "period", "period_start", name="ux_quota_buckets_key"),)

  id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
  # `user:<uid>` for authenticated callers, `guest:<ip digest>` for trial callers.
  subject: Mapped[str] = mapped_column(String, index=True, nullable=False)
  metric_key: Mapped[str] = mapped_column(String, nullable=False, index=True)
  # Schema migrations own enum lifecycle; avoid create_all races attempting to re-create the type.
  period: Mapped[QuotaPeriod] = mapped_column(ENUM(QuotaPeriod, name="quota_period", create_type=False), nullable=False)
  period_start: Mapped[Date] = mapped_column(Date, nullable=False)
  used: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0, server_default="0")
  updated_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class QuotaUsageLog(Base):
  __tablename__ = "quota_usage_logs"

  id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
  subject: Mapped[str] = mapped_column(String, index=True, nullable=False)
  action_type: Mapped[str] = mapped_column(String, nullable=False)
  quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
  job_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
  metadata_json: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
  created_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
