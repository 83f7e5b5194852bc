"""Orchestration of the staged Jump generation pipeline."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Awaitable, Callable, Sequence

from jumpstudio.ai.json_recovery import recover
from jumpstudio.ai.model_client import ModelCallError, ModelClient
from jumpstudio.ai.pipeline.contracts import RecoveryTier, StageEvent, StageResult
from jumpstudio.ai.stages import STAGES, StageDescriptor
from jumpstudio.jobs.models import GenerationJob, JobStateError
from jumpstudio.jobs.progress import build_running_result, completion_percentage
from jumpstudio.services.persistence import PersistenceWriter

FailureHook = Callable[[GenerationJob], Awaitable[None]]

FOUNDATIONAL_FAILURE_MESSAGE = "We could not generate the strategic overview for this Jump. Please try again."
UNEXPECTED_FAILURE_MESSAGE = "Jump generation failed unexpectedly. Please try again."

logger = logging.getLogger(__name__)


class GenerationOrchestrator:
  """Run every stage of a job in order and emit one event per outcome.

  The stream always ends with exactly one terminal event: `complete` after the
  last stage, or `error` when the foundational stage fails or the run crashes.
  """

  def __init__(self, *, model_client: ModelClient, writer: PersistenceWriter, stages: Sequence[StageDescriptor] = STAGES, timeout_scale: float = 1.0, on_foundational_failure: FailureHook | None = None) -> None:
    if not stages:
      raise ValueError("stages must not be empty")
    self._model_client = model_client
    self._writer = writer
    self._stages = tuple(stages)
    self._timeout_scale = timeout_scale
    self._on_foundational_failure = on_foundational_failure

  @property
  def total_stages(self) -> int:
    return len(self._stages)

  async def run(self, job: GenerationJob) -> AsyncIterator[StageEvent]:
    """Drive `job` from pending to a terminal status, yielding its events."""
    if job.status != "pending":
      raise JobStateError(f"Job {job.job_id} is {job.status}; only pending jobs can run.")
    job.advance_status("running")
    self._writer.write_status(job.snapshot())
    logs: list[str] = []
    total = self.total_stages

    try:
      for descriptor in self._stages:
        result = await self._run_stage(job, descriptor, logs)
        if descriptor.foundational and result.from_fallback:
          yield await self._fail_foundational(job, descriptor, logs)
          return
        progress = completion_percentage(descriptor.index, total)
        job.record_stage(result, progress)
        self._writer.write(job.snapshot(), result)
        yield StageEvent(stage=descriptor.index, type="data", job_id=job.job_id, key=descriptor.key, data=result.value, progress=progress, fallback=result.from_fallback)

      running = build_running_result(job.results)
      job.advance_status("complete")
      self._writer.write_status(job.snapshot())
      logger.info("Job %s complete degraded_stages=%s", job.job_id, list(running.degraded_stages))
      yield StageEvent(stage=total, type="complete", job_id=job.job_id, data={"title": running.title, "degraded_stages": list(running.degraded_stages)}, progress=100)
    except Exception as exc:  # noqa: BLE001
      logs.append(f"Unexpected error at stage {job.stage_index}: {exc}")
      logger.error("Job %s crashed at stage %s: %s", job.job_id, job.stage_index, exc, exc_info=True)
      if job.is_terminal:
        raise
      job.advance_status("failed")
      self._writer.write_status(job.snapshot(), error_message=UNEXPECTED_FAILURE_MESSAGE)
      yield StageEvent(stage=job.stage_index, type="error", job_id=job.job_id, message=UNEXPECTED_FAILURE_MESSAGE)

  async def _run_stage(self, job: GenerationJob, descriptor: StageDescriptor, logs: list[str]) -> StageResult:
    """Call the model for one stage and recover a shape-valid value."""
    prior = build_running_result(job.results).content
    prompt = descriptor.prompt_builder(job.request, prior)
    budget = descriptor.time_budget * self._timeout_scale
    try:
      raw = await self._model_client.complete(prompt, time_budget=budget, system=descriptor.system_prompt, max_tokens=descriptor.max_tokens)
    except ModelCallError as exc:
      msg = f"Stage {descriptor.index} ({descriptor.key}) model call failed [{exc.reason}]: {exc}"
      logs.append(msg)
      logger.warning("Job %s %s", job.job_id, msg)
      value = descriptor.fallback_builder("").to_value()
      return StageResult(stage_index=descriptor.index, stage_key=descriptor.key, value=value, recovered_by=RecoveryTier.FALLBACK, degraded_reason=exc.reason)

    recovery = recover(raw, descriptor.shape, descriptor.fallback_builder)
    degraded_reason = None
    if recovery.from_fallback:
      degraded_reason = "unparseable"
      msg = f"Stage {descriptor.index} ({descriptor.key}) output unrecoverable: {recovery.last_error}"
      logs.append(msg)
      logger.warning("Job %s %s", job.job_id, msg)
    elif recovery.tier is not RecoveryTier.STRICT:
      logger.info("Job %s stage %s recovered via %s", job.job_id, descriptor.key, recovery.tier.value)
    return StageResult(stage_index=descriptor.index, stage_key=descriptor.key, value=recovery.value, recovered_by=recovery.tier, degraded_reason=degraded_reason)

  async def _fail_foundational(self, job: GenerationJob, descriptor: StageDescriptor, logs: list[str]) -> StageEvent:
    """Mark the job failed, persist the status and return the error event."""
    job.advance_status("failed")
    self._writer.write_status(job.snapshot(), error_message=FOUNDATIONAL_FAILURE_MESSAGE)
    logger.error("Job %s failed at foundational stage %s: %s", job.job_id, descriptor.key, " | ".join(logs))
    if self._on_foundational_failure is not None:
      try:
        await self._on_foundational_failure(job)
      except Exception as exc:  # noqa: BLE001
        logger.error("Foundational failure hook failed job_id=%s error=%s", job.job_id, exc, exc_info=True)
    return StageEvent(stage=descriptor.index, type="error", job_id=job.job_id, message=FOUNDATIONAL_FAILURE_MESSAGE)
