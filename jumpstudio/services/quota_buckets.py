"""Quota bucket services for period-based enforcement and logging."""

from __future__ import annotations

import datetime
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from jumpstudio.schema.quotas import QuotaBucket, QuotaPeriod, QuotaUsageLog


class QuotaExceededError(RuntimeError):
  """Raised when a quota bucket would exceed its configured limit."""

  def __init__(self, message: str, *, snapshot: QuotaSnapshot) -> None:
    super().__init__(message)
    self.snapshot = snapshot


@dataclass(frozen=True)
class QuotaSnapshot:
  """Snapshot of a single quota metric for the active period."""

  metric_key: str
  period: QuotaPeriod
  period_start: datetime.date
  limit: int
  used: int
  remaining: int


def _utc_now() -> datetime.datetime:
  """Return timezone-aware current UTC time for deterministic period math."""
  return datetime.datetime.now(datetime.UTC)


def period_start_date(*, now: datetime.datetime, period: QuotaPeriod) -> datetime.date:
  """Compute the period start date for the given UTC timestamp."""
  # Use UTC boundaries so quotas are consistent across regions.
  if now.tzinfo is None:
    raise ValueError("now must be timezone-aware (UTC).")
  utc_date = now.astimezone(datetime.UTC).date()
  if period == QuotaPeriod.DAY:
    return utc_date
  if period == QuotaPeriod.WEEK:
    # Week starts Monday 00:00 UTC.
    return utc_date - datetime.timedelta(days=utc_date.weekday())
  if period == QuotaPeriod.MONTH:
    # Month starts on the 1st 00:00 UTC.
    return utc_date.replace(day=1)
  raise ValueError(f"Unsupported period: {period}")


def _normalize_limit(limit: int) -> int:
  normalized_limit = int(limit)
  if normalized_limit < 0:
    raise ValueError("limit must be >= 0")
  return normalized_limit


@asynccontextmanager
async def _quota_transaction(session: AsyncSession):
  """Start a transaction appropriate for the current session state.

  How/Why:
    - SQLAlchemy AsyncSession autobegins on the first statement, so a new
      explicit begin() inside the same request can raise InvalidRequestError.
    - Use a SAVEPOINT when already inside a transaction to keep atomicity.
  """
  # Use a nested transaction when an outer transaction is already active.
  if session.in_transaction():
    async with session.begin_nested():
      yield
    return
  # Start a new transaction when none is active on the session.
  async with session.begin():
    yield


async def _lock_bucket(session: AsyncSession, *, subject: str, metric_key: str, period: QuotaPeriod, start: datetime.date, create: bool) -> QuotaBucket | None:
  """Return the bucket row locked FOR UPDATE, creating it first when asked."""
  if create:
    # Concurrent first requests race on the insert; the unique key lets exactly one win.
    insert_stmt = pg_insert(QuotaBucket).values(id=uuid.uuid4(), subject=subject, metric_key=metric_key, period=period, period_start=start, used=0)
    await session.execute(insert_stmt.on_conflict_do_nothing(constraint="ux_quota_buckets_key"))
  stmt = select(QuotaBucket).where(QuotaBucket.subject == subject, QuotaBucket.metric_key == metric_key, QuotaBucket.period == period, QuotaBucket.period_start == start).with_for_update()
  result = await session.execute(stmt)
  return result.scalar_one_or_none()


async def get_quota_snapshot(session: AsyncSession, *, subject: str, metric_key: str, period: QuotaPeriod, limit: int) -> QuotaSnapshot:
  """Return current used/remaining for the active period for a metric."""
  normalized_limit = _normalize_limit(limit)
  start = period_start_date(now=_utc_now(), period=period)
  stmt = select(QuotaBucket.used).where(QuotaBucket.subject == subject, QuotaBucket.metric_key == metric_key, QuotaBucket.period == period, QuotaBucket.period_start == start)
  result = await session.execute(stmt)
  used = int(result.scalar_one_or_none() or 0)
  remaining = max(normalized_limit - used, 0)
  return QuotaSnapshot(metric_key=metric_key, period=period, period_start=start, limit=normalized_limit, used=used, remaining=remaining)


async def consume_quota(session: AsyncSession, *, subject: str, metric_key: str, period: QuotaPeriod, quantity: int, limit: int, job_id: str | None = None, metadata: dict | None = None) -> QuotaSnapshot:
  """Atomically consume quota for a metric and append a usage log entry."""
  if quantity <= 0:
    raise ValueError("quantity must be positive.")
  normalized_limit = _normalize_limit(limit)

  now = _utc_now()
  start = period_start_date(now=now, period=period)

  async with _quota_transaction(session):
    # Lock the current bucket row to prevent race conditions across requests/workers.
    bucket = await _lock_bucket(session, subject=subject, metric_key=metric_key, period=period, start=start, create=True)
    if bucket is None:
      raise RuntimeError(f"quota bucket for {metric_key} could not be created")

    remaining_before = max(normalized_limit - int(bucket.used), 0)
    # A zero limit disables the metric entirely.
    if normalized_limit == 0 or int(quantity) > remaining_before:
      snapshot = QuotaSnapshot(metric_key=metric_key, period=period, period_start=start, limit=normalized_limit, used=int(bucket.used), remaining=remaining_before)
      raise QuotaExceededError(f"quota exceeded for {metric_key} ({remaining_before} remaining)", snapshot=snapshot)

    new_used = int(bucket.used) + int(quantity)
    bucket.used = new_used
    bucket.updated_at = now
    session.add(bucket)
    # Record an append-only log for auditing and analytics.
    session.add(QuotaUsageLog(subject=subject, action_type=f"quota:{metric_key}", quantity=int(quantity), job_id=job_id, metadata_json=metadata))

  remaining = max(normalized_limit - new_used, 0)
  return QuotaSnapshot(metric_key=metric_key, period=period, period_start=start, limit=normalized_limit, used=new_used, remaining=remaining)


async def refund_quota(session: AsyncSession, *, subject: str, metric_key: str, period: QuotaPeriod, quantity: int, limit: int, job_id: str | None = None, metadata: dict | None = None, period_start: datetime.date | None = None) -> QuotaSnapshot:
  """Refund quota to compensate for a job that produced nothing usable.

  How/Why:
    - Quota is debited before the first stage runs so concurrent submissions cannot double-spend.
    - When the foundational stage fails the caller received only an error, so the unit is returned.
    - Pass the debit's `period_start` so a refund after a period boundary credits the bucket that was charged.
  """
  if quantity <= 0:
    raise ValueError("quantity must be positive.")
  normalized_limit = _normalize_limit(limit)

  now = _utc_now()
  start = period_start or period_start_date(now=now, period=period)

  async with _quota_transaction(session):
    bucket = await _lock_bucket(session, subject=subject, metric_key=metric_key, period=period, start=start, create=False)
    if bucket is None:
      # If there is no bucket row, there is nothing to refund safely.
      return QuotaSnapshot(metric_key=metric_key, period=period, period_start=start, limit=normalized_limit, used=0, remaining=normalized_limit)

    new_used = max(int(bucket.used) - int(quantity), 0)
    bucket.used = new_used
    bucket.updated_at = now
    session.add(bucket)
    session.add(QuotaUsageLog(subject=subject, action_type=f"quota_refund:{metric_key}", quantity=int(quantity), job_id=job_id, metadata_json=metadata))

  remaining = max(normalized_limit - new_used, 0)
  return QuotaSnapshot(metric_key=metric_key, period=period, period_start=start, limit=normalized_limit, used=new_used, remaining=remaining)
