"""Admission of new Jump generations: capacity, quota and job start."""

from __future__ import annotations

import logging

from fastapi import HTTPException, status

from jumpstudio.ai.orchestrator import FailureHook
from jumpstudio.ai.pipeline.contracts import GenerationRequest
from jumpstudio.jobs.models import GenerationJob, Requester
from jumpstudio.jobs.runner import EventChannel, JobRunner, RunnerAtCapacityError
from jumpstudio.services.quota_gate import JUMP_METRIC, QuotaGate
from jumpstudio.utils.ids import generate_job_id

logger = logging.getLogger(__name__)

_CAPACITY_DETAIL = "Generation capacity reached. Please retry shortly."


def _at_capacity() -> HTTPException:
  return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=_CAPACITY_DETAIL, headers={"Retry-After": "5"})


async def start_generation(request: GenerationRequest, requester: Requester, *, gate: QuotaGate, runner: JobRunner) -> tuple[GenerationJob, EventChannel]:
  """Debit quota and start a job; raise HTTPException when it cannot start."""
  # Check capacity first so a busy server does not spend anyone's allowance.
  if not runner.has_capacity():
    raise _at_capacity()

  job_id = generate_job_id()
  decision = await gate.authorize_and_debit(requester, job_id=job_id)
  if not decision.allowed:
    logger.info("Generation rejected by quota subject=%s period=%s", requester.subject, decision.period)
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail={"error": "QUOTA_EXCEEDED", "metric": JUMP_METRIC, "limit": decision.limit, "period": decision.period})

  job = GenerationJob(job_id=job_id, requester=requester, request=request, quota_period_start=decision.period_start)
  try:
    channel = runner.start(job)
  except RunnerAtCapacityError as exc:
    # Another request took the last slot between the check and the debit.
    await gate.refund(requester, job_id=job_id, period_start=decision.period_start)
    raise _at_capacity() from exc
  logger.info("Generation accepted job_id=%s subject=%s remaining=%s", job_id, requester.subject, decision.remaining)
  return job, channel


def build_refund_hook(gate: QuotaGate) -> FailureHook:
  """Return the hook that gives a failed job's quota unit back."""

  async def _refund(job: GenerationJob) -> None:
    await gate.refund(job.requester, job_id=job.job_id, period_start=job.quota_period_start)

  return _refund
