"""Per-requester allowance checks that run before a job is started."""

from __future__ import annotations

import datetime
import logging
from dataclasses import dataclass
from typing import Protocol

from jumpstudio.config import Settings
from jumpstudio.core.database import get_session_factory
from jumpstudio.jobs.models import Requester
from jumpstudio.schema.quotas import QuotaPeriod
from jumpstudio.services.quota_buckets import QuotaExceededError, consume_quota, get_quota_snapshot, refund_quota

JUMP_METRIC = "jump.generate"

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QuotaDecision:
  """Outcome of an authorize-and-debit call."""

  allowed: bool
  remaining: int | None
  limit: int | None
  period: str | None
  # Bucket the debit landed in; refunds must credit the same one.
  period_start: datetime.date | None = None


class QuotaGate(Protocol):
  """Atomic check-and-debit of one Jump against a requester's allowance."""

  async def authorize_and_debit(self, requester: Requester, *, job_id: str) -> QuotaDecision: ...

  async def refund(self, requester: Requester, *, job_id: str, period_start: datetime.date | None = None) -> None: ...

  async def remaining(self, requester: Requester) -> QuotaDecision: ...


class UnlimitedQuotaGate:
  """Gate used when quota enforcement is switched off."""

  async def authorize_and_debit(self, requester: Requester, *, job_id: str) -> QuotaDecision:
    return QuotaDecision(allowed=True, remaining=None, limit=None, period=None)

  async def refund(self, requester: Requester, *, job_id: str, period_start: datetime.date | None = None) -> None:
    return None

  async def remaining(self, requester: Requester) -> QuotaDecision:
    return QuotaDecision(allowed=True, remaining=None, limit=None, period=None)


class PostgresQuotaGate:
  """Debit quota buckets: users per UTC week, guests per UTC day."""

  def __init__(self, session_factory=None, *, user_limit: int, guest_limit: int) -> None:  # noqa: ANN001
    self._session_factory = session_factory or get_session_factory()
    if self._session_factory is None:
      raise RuntimeError("Database not initialized")
    self._user_limit = int(user_limit)
    self._guest_limit = int(guest_limit)

  def _policy(self, requester: Requester) -> tuple[QuotaPeriod, int]:
    if requester.kind == "user":
      return QuotaPeriod.WEEK, self._user_limit
    return QuotaPeriod.DAY, self._guest_limit

  async def authorize_and_debit(self, requester: Requester, *, job_id: str) -> QuotaDecision:
    period, limit = self._policy(requester)
    async with self._session_factory() as session:
      try:
        snapshot = await consume_quota(session, subject=requester.subject, metric_key=JUMP_METRIC, period=period, quantity=1, limit=limit, job_id=job_id, metadata={"kind": requester.kind})
      except QuotaExceededError as exc:
        logger.info("Quota denied subject=%s metric=%s remaining=%s", requester.subject, JUMP_METRIC, exc.snapshot.remaining)
        return QuotaDecision(allowed=False, remaining=exc.snapshot.remaining, limit=limit, period=period.value)
    return QuotaDecision(allowed=True, remaining=snapshot.remaining, limit=limit, period=period.value, period_start=snapshot.period_start)

  async def refund(self, requester: Requester, *, job_id: str, period_start: datetime.date | None = None) -> None:
    period, limit = self._policy(requester)
    async with self._session_factory() as session:
      snapshot = await refund_quota(session, subject=requester.subject, metric_key=JUMP_METRIC, period=period, quantity=1, limit=limit, job_id=job_id, metadata={"reason": "foundational_stage_failed"}, period_start=period_start)
    logger.info("Quota refunded subject=%s job_id=%s period_start=%s", requester.subject, job_id, snapshot.period_start)

  async def remaining(self, requester: Requester) -> QuotaDecision:
    """Report what is left without debiting."""
    period, limit = self._policy(requester)
    async with self._session_factory() as session:
      snapshot = await get_quota_snapshot(session, subject=requester.subject, metric_key=JUMP_METRIC, period=period, limit=limit)
    return QuotaDecision(allowed=snapshot.remaining > 0, remaining=snapshot.remaining, limit=limit, period=period.value)


def build_quota_gate(settings: Settings) -> QuotaGate:
  """Return the configured quota gate."""
  if not settings.quota_enabled:
    logger.warning("Quota enforcement disabled; every request is allowed.")
    return UnlimitedQuotaGate()
  return PostgresQuotaGate(user_limit=settings.user_jumps_per_week, guest_limit=settings.guest_jumps_per_day)
