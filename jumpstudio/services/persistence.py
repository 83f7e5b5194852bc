"""Fire-and-forget persistence of job progress off the streaming path."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from jumpstudio.ai.pipeline.contracts import StageResult
from jumpstudio.jobs.models import TERMINAL_STATUSES, JobSnapshot
from jumpstudio.storage.artifacts_repo import ArtifactsRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _WriteRequest:
  snapshot: JobSnapshot
  result: StageResult | None = None
  error_message: str | None = None


class PersistenceWriter:
  """Queue snapshot writes and apply them with a small worker pool.

  Writes are order-independent upserts, so the pool may apply them in any
  order. Stage writes and running-status writes are dropped once `queue_size`
  writes are pending; terminal status writes are always queued so the durable
  record cannot stay `running` after the job ended. A failed or dropped write
  is logged and never reaches the caller.
  """

  def __init__(self, repo: ArtifactsRepository, *, queue_size: int = 256, workers: int = 2) -> None:
    if workers < 1:
      raise ValueError("workers must be >= 1")
    if queue_size < 1:
      raise ValueError("queue_size must be >= 1")
    self._repo = repo
    self._queue_size = queue_size
    # Unbounded so terminal writes always fit; the bound is enforced in `_enqueue`.
    self._queue: asyncio.Queue[_WriteRequest] = asyncio.Queue()
    self._worker_count = workers
    self._workers: list[asyncio.Task[None]] = []
    self._closed = False

  @property
  def pending(self) -> int:
    return self._queue.qsize()

  def write(self, snapshot: JobSnapshot, result: StageResult) -> bool:
    """Enqueue one stage value plus the job progress it produced."""
    return self._enqueue(_WriteRequest(snapshot=snapshot, result=result))

  def write_status(self, snapshot: JobSnapshot, *, error_message: str | None = None) -> bool:
    """Enqueue a job-row update (status, progress and optional error)."""
    return self._enqueue(_WriteRequest(snapshot=snapshot, error_message=error_message))

  def _enqueue(self, request: _WriteRequest) -> bool:
    if self._closed:
      logger.warning("Persistence writer closed; dropping write job_id=%s", request.snapshot.job_id)
      return False
    self._ensure_workers()
    terminal = request.result is None and request.snapshot.status in TERMINAL_STATUSES
    if not terminal and self._queue.qsize() >= self._queue_size:
      # A dropped stage value stays missing from the durable record; the job itself continues.
      logger.warning("Persistence queue full; dropping write job_id=%s stage=%s", request.snapshot.job_id, request.result.stage_index if request.result else None)
      return False
    self._queue.put_nowait(request)
    return True

  def start(self) -> None:
    self._ensure_workers()

  def _ensure_workers(self) -> None:
    if self._workers:
      return
    self._workers = [asyncio.create_task(self._run_worker(n), name=f"persistence-writer-{n}") for n in range(self._worker_count)]

  async def _run_worker(self, worker_id: int) -> None:
    while True:
      request = await self._queue.get()
      try:
        await self._apply(request)
      except Exception as exc:  # noqa: BLE001
        logger.warning("Persistence write failed worker=%s job_id=%s error=%s", worker_id, request.snapshot.job_id, exc, exc_info=True)
      finally:
        self._queue.task_done()

  async def _apply(self, request: _WriteRequest) -> None:
    snapshot = request.snapshot
    if request.result is not None:
      await self._repo.upsert_stage(job_id=snapshot.job_id, subject=snapshot.subject, status=snapshot.status, completion_percentage=snapshot.completion_percentage, result=request.result)
      return
    await self._repo.upsert_job(job_id=snapshot.job_id, subject=snapshot.subject, status=snapshot.status, completion_percentage=snapshot.completion_percentage, error_message=request.error_message)

  async def drain(self) -> None:
    """Wait until every queued write has been applied or logged as failed."""
    if not self._workers:
      return
    await self._queue.join()

  async def close(self, timeout: float = 10.0) -> None:
    """Stop accepting writes, flush what is queued, then stop the workers."""
    self._closed = True
    try:
      async with asyncio.timeout(timeout):
        await self.drain()
    except TimeoutError:
      logger.warning("Persistence writer closed with %s writes still queued", self._queue.qsize())
    for task in self._workers:
      task.cancel()
    await asyncio.gather(*self._workers, return_exceptions=True)
    self._workers = []
