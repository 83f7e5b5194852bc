"""In-memory fakes and helpers shared by the pipeline tests."""

from __future__ import annotations

import asyncio
import datetime
import json
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from jumpstudio.ai.pipeline.contracts import GenerationRequest, StageResult
from jumpstudio.ai.providers.base import AIModel, SimpleModelResponse
from jumpstudio.jobs.models import GenerationJob, JobStatus, Requester
from jumpstudio.jobs.progress import build_running_result
from jumpstudio.jobs.runner import JobRunner
from jumpstudio.schema.quotas import QuotaPeriod
from jumpstudio.services.quota_buckets import period_start_date
from jumpstudio.services.quota_gate import QuotaDecision
from jumpstudio.storage.artifacts_repo import ArtifactRecord, merge_status

VALID_OUTPUTS: tuple[str, ...] = (
  json.dumps({"executive_summary": "Automate bakery ordering with an AI assistant.", "strategic_vision": "A bakery where routine orders run themselves.", "key_objectives": ["Automate orders"]}),
  json.dumps({"jump_name": "Bakery Autopilot"}),
  json.dumps({"phases": [{"title": "Pilot", "description": "Trial an order bot.", "key_actions": ["Pick a tool"]}], "success_metrics": ["Orders handled"]}),
  json.dumps({"prompts": [{"title": "Order reply", "prompt": "Reply to this order..."}]}),
  json.dumps({"workflows": [{"title": "Morning orders", "steps": ["Collect", "Confirm"]}]}),
  json.dumps({"blueprints": [{"title": "Order bot", "architecture": "Form plus assistant"}]}),
  json.dumps({"strategies": [{"title": "Start small", "tactics": ["One product line"]}]}),
  json.dumps({"tool_prompts": [{"title": "Order replies", "description": "Draft replies", "tool_name": "ChatGPT", "prompt_text": "Draft a reply to..."}]}),
)

EXPECTED_PROGRESS = [12, 25, 37, 50, 62, 75, 87, 100]


@dataclass(frozen=True)
class Stall:
  """Script step that sleeps instead of answering."""

  seconds: float


class ScriptedModel(AIModel):
  """Provider model answering each call from a script, in call order."""

  name = "scripted-model"

  def __init__(self, script: Sequence[Any] | None = None) -> None:
    self._script = list(script if script is not None else VALID_OUTPUTS)
    self.calls: list[dict[str, Any]] = []
    self.closed = False

  async def generate(self, prompt: str, *, system: str | None = None, max_tokens: int | None = None) -> SimpleModelResponse:
    index = len(self.calls)
    self.calls.append({"prompt": prompt, "system": system, "max_tokens": max_tokens})
    step = self._script[index] if index < len(self._script) else VALID_OUTPUTS[index % len(VALID_OUTPUTS)]
    if isinstance(step, BaseException):
      raise step
    if isinstance(step, Stall):
      await asyncio.sleep(step.seconds)
      return SimpleModelResponse(content="{}")
    return SimpleModelResponse(content=step)

  async def aclose(self) -> None:
    self.closed = True


def script_with(**overrides: Any) -> list[Any]:
  """VALID_OUTPUTS with selected stages replaced, e.g. script_with(stage_3="oops")."""
  script: list[Any] = list(VALID_OUTPUTS)
  for key, value in overrides.items():
    script[int(key.removeprefix("stage_"))] = value
  return script


class InMemoryArtifactsRepo:
  """Artifact repository with the same merge rules as the Postgres upserts."""

  def __init__(self) -> None:
    self.jobs: dict[str, dict[str, Any]] = {}
    self.stages: dict[str, dict[int, StageResult]] = {}
    self.fail = False
    self.calls = 0

  def _merge_job(self, *, job_id: str, subject: str, status: JobStatus, completion_percentage: int, error_message: str | None) -> None:
    row = self.jobs.get(job_id)
    if row is None:
      self.jobs[job_id] = {"subject": subject, "status": status, "completion_percentage": completion_percentage, "error_message": error_message}
      return
    row["status"] = merge_status(row["status"], status)
    row["completion_percentage"] = max(row["completion_percentage"], completion_percentage)
    row["error_message"] = row["error_message"] or error_message

  async def upsert_job(self, *, job_id: str, subject: str, status: JobStatus, completion_percentage: int, error_message: str | None = None) -> None:
    self.calls += 1
    if self.fail:
      raise RuntimeError("database unavailable")
    self._merge_job(job_id=job_id, subject=subject, status=status, completion_percentage=completion_percentage, error_message=error_message)

  async def upsert_stage(self, *, job_id: str, subject: str, status: JobStatus, completion_percentage: int, result: StageResult) -> None:
    self.calls += 1
    if self.fail:
      raise RuntimeError("database unavailable")
    self._merge_job(job_id=job_id, subject=subject, status=status, completion_percentage=completion_percentage, error_message=None)
    self.stages.setdefault(job_id, {})[result.stage_index] = result

  async def get_artifact(self, job_id: str) -> ArtifactRecord | None:
    row = self.jobs.get(job_id)
    if row is None:
      return None
    stages = [self.stages[job_id][index] for index in sorted(self.stages.get(job_id, {}))]
    running = build_running_result(stages)
    return ArtifactRecord(
      job_id=job_id,
      subject=row["subject"],
      status=row["status"],
      completion_percentage=row["completion_percentage"],
      content={key: dict(value) for key, value in running.content.items()},
      degraded_stages=list(running.degraded_stages),
      title=running.title,
      error_message=row["error_message"],
    )


class InMemoryQuotaGate:
  """Atomic check-and-debit over a dict, one lock for all subjects."""

  def __init__(self, *, user_limit: int = 5, guest_limit: int = 1) -> None:
    self._limits = {"user": user_limit, "guest": guest_limit}
    self._lock = asyncio.Lock()
    self.used: dict[str, int] = {}
    self.refunds: list[str] = []
    self.refund_periods: dict[str, datetime.date | None] = {}

  def _period(self, requester: Requester) -> str:
    return "WEEK" if requester.kind == "user" else "DAY"

  def _period_start(self, requester: Requester) -> datetime.date:
    period = QuotaPeriod.WEEK if requester.kind == "user" else QuotaPeriod.DAY
    return period_start_date(now=datetime.datetime.now(datetime.UTC), period=period)

  async def authorize_and_debit(self, requester: Requester, *, job_id: str) -> QuotaDecision:
    limit = self._limits[requester.kind]
    async with self._lock:
      used = self.used.get(requester.subject, 0)
      # Yield inside the critical section so concurrent callers really interleave.
      await asyncio.sleep(0)
      if used >= limit:
        return QuotaDecision(allowed=False, remaining=0, limit=limit, period=self._period(requester))
      self.used[requester.subject] = used + 1
      return QuotaDecision(allowed=True, remaining=limit - used - 1, limit=limit, period=self._period(requester), period_start=self._period_start(requester))

  async def refund(self, requester: Requester, *, job_id: str, period_start: datetime.date | None = None) -> None:
    async with self._lock:
      self.used[requester.subject] = max(self.used.get(requester.subject, 0) - 1, 0)
      self.refunds.append(job_id)
      self.refund_periods[job_id] = period_start

  async def remaining(self, requester: Requester) -> QuotaDecision:
    limit = self._limits[requester.kind]
    left = max(limit - self.used.get(requester.subject, 0), 0)
    return QuotaDecision(allowed=left > 0, remaining=left, limit=limit, period=self._period(requester))


def make_job(job_id: str = "job-1", *, requester: Requester | None = None) -> GenerationJob:
  request = GenerationRequest(goals="grow a bakery with AI", challenges="no budget for staff")
  return GenerationJob(job_id=job_id, requester=requester or Requester.for_guest("203.0.113.7"), request=request)


def parse_sse(body: str) -> list[dict[str, Any]]:
  """Split an SSE body into decoded `data:` payloads."""
  events = []
  for record in body.split("\n\n"):
    if record.startswith("data: "):
      events.append(json.loads(record.removeprefix("data: ")))
  return events


async def wait_for_idle(runner: JobRunner, *, timeout: float = 5.0) -> None:
  async with asyncio.timeout(timeout):
    while runner.active_jobs:
      await asyncio.sleep(0.01)
