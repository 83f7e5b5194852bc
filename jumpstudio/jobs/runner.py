"""In-process job runner that decouples generation from the HTTP consumer."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator

from jumpstudio.ai.orchestrator import UNEXPECTED_FAILURE_MESSAGE, GenerationOrchestrator
from jumpstudio.ai.pipeline.contracts import StageEvent
from jumpstudio.jobs.models import GenerationJob

logger = logging.getLogger(__name__)


class ChannelClaimedError(RuntimeError):
  """Raised when a second consumer tries to attach to a job's live stream."""


class RunnerAtCapacityError(RuntimeError):
  """Raised when the runner already holds its maximum number of jobs."""


class EventChannel:
  """Single-consumer, ordered delivery of one job's events.

  Events published after the consumer leaves are discarded; the producing job
  is never blocked or cancelled by the consumer.
  """

  def __init__(self, job_id: str) -> None:
    self.job_id = job_id
    self._queue: asyncio.Queue[StageEvent] = asyncio.Queue()
    self._claimed = False
    self._closed = False

  @property
  def closed(self) -> bool:
    return self._closed

  def publish(self, event: StageEvent) -> None:
    if self._closed:
      return
    self._queue.put_nowait(event)

  def close(self) -> None:
    if self._closed:
      return
    self._closed = True
    # Free anything the departed consumer will never read.
    while not self._queue.empty():
      self._queue.get_nowait()

  def open(self) -> AsyncIterator[StageEvent]:
    """Claim the channel and return an iterator ending at the terminal event."""
    if self._claimed:
      raise ChannelClaimedError(f"Job {self.job_id} stream already has a consumer.")
    self._claimed = True
    return self._iterate()

  async def _iterate(self) -> AsyncIterator[StageEvent]:
    try:
      while True:
        event = await self._queue.get()
        yield event
        if event.is_terminal:
          return
    finally:
      self.close()


class JobRunner:
  """Run each job's orchestrator in its own task, tracked until it finishes."""

  def __init__(self, orchestrator: GenerationOrchestrator, *, max_concurrent_jobs: int = 32) -> None:
    self._orchestrator = orchestrator
    self._max_concurrent_jobs = max_concurrent_jobs
    self._tasks: dict[str, asyncio.Task[None]] = {}

  @property
  def active_jobs(self) -> int:
    return len(self._tasks)

  def has_capacity(self) -> bool:
    return len(self._tasks) < self._max_concurrent_jobs

  def start(self, job: GenerationJob) -> EventChannel:
    """Spawn the job and return the channel its events are published on."""
    if not self.has_capacity():
      raise RunnerAtCapacityError(f"Runner is at capacity ({self._max_concurrent_jobs} jobs).")
    if job.job_id in self._tasks:
      raise ValueError(f"Job {job.job_id} is already running.")
    channel = EventChannel(job.job_id)
    task = asyncio.create_task(self._drive(job, channel), name=f"jump-job-{job.job_id}")
    self._tasks[job.job_id] = task
    task.add_done_callback(lambda _task, job_id=job.job_id: self._tasks.pop(job_id, None))
    logger.info("Job %s started active_jobs=%s", job.job_id, len(self._tasks))
    return channel

  async def _drive(self, job: GenerationJob, channel: EventChannel) -> None:
    saw_terminal = False
    try:
      async for event in self._orchestrator.run(job):
        channel.publish(event)
        saw_terminal = saw_terminal or event.is_terminal
    except Exception as exc:  # noqa: BLE001
      logger.error("Job %s task failed: %s", job.job_id, exc, exc_info=True)
    finally:
      # A live consumer must never hang on a stream without an end.
      if not saw_terminal:
        channel.publish(StageEvent(stage=job.stage_index, type="error", job_id=job.job_id, message=UNEXPECTED_FAILURE_MESSAGE))

  async def shutdown(self, timeout: float = 30.0) -> None:
    """Let running jobs finish, cancelling whatever outlives `timeout`."""
    tasks = list(self._tasks.values())
    if not tasks:
      return
    logger.info("Waiting for %s running jobs to finish", len(tasks))
    _, pending = await asyncio.wait(tasks, timeout=timeout)
    for task in pending:
      task.cancel()
    if pending:
      logger.warning("Cancelled %s jobs still running at shutdown", len(pending))
      await asyncio.gather(*pending, return_exceptions=True)
