"""Postgres-backed repository for generation artifacts using SQLAlchemy."""

from __future__ import annotations

from typing import Any

from sqlalchemy import case, func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from jumpstudio.ai.pipeline.contracts import StageResult
from jumpstudio.core.database import get_session_factory
from jumpstudio.jobs.models import JobStatus
from jumpstudio.schema.artifacts import GenerationJobRow, StageOutputRow
from jumpstudio.storage.artifacts_repo import ArtifactRecord, ArtifactsRepository


def _status_rank(column: Any) -> Any:
  return case((column == "pending", 0), (column == "running", 1), else_=2)


class PostgresArtifactsRepository(ArtifactsRepository):
  """Persist job rows and per-stage rows with commutative upserts."""

  def __init__(self, session_factory=None) -> None:  # noqa: ANN001
    self._session_factory = session_factory or get_session_factory()
    if self._session_factory is None:
      raise RuntimeError("Database not initialized")

  async def upsert_job(self, *, job_id: str, subject: str, status: JobStatus, completion_percentage: int, error_message: str | None = None) -> None:
    async with self._session_factory() as session:
      async with session.begin():
        await self._merge_job_row(session, job_id=job_id, subject=subject, status=status, completion_percentage=completion_percentage, error_message=error_message)

  async def upsert_stage(self, *, job_id: str, subject: str, status: JobStatus, completion_percentage: int, result: StageResult) -> None:
    async with self._session_factory() as session:
      async with session.begin():
        # The job row must exist before the stage row references it.
        await self._merge_job_row(session, job_id=job_id, subject=subject, status=status, completion_percentage=completion_percentage, error_message=None)
        values = {
          "job_id": job_id,
          "stage_index": result.stage_index,
          "stage_key": result.stage_key,
          "value_json": result.value,
          "recovered_by": result.recovered_by.value,
          "from_fallback": result.from_fallback,
        }
        stmt = pg_insert(StageOutputRow).values(**values)
        stmt = stmt.on_conflict_do_update(
          index_elements=[StageOutputRow.job_id, StageOutputRow.stage_index],
          set_={
            "stage_key": stmt.excluded.stage_key,
            "value_json": stmt.excluded.value_json,
            "recovered_by": stmt.excluded.recovered_by,
            "from_fallback": stmt.excluded.from_fallback,
            "updated_at": func.now(),
          },
        )
        await session.execute(stmt)

  async def get_artifact(self, job_id: str) -> ArtifactRecord | None:
    async with self._session_factory() as session:
      row = await session.get(GenerationJobRow, job_id)
      if row is None:
        return None
      stmt = select(StageOutputRow).where(StageOutputRow.job_id == job_id).order_by(StageOutputRow.stage_index)
      stages = (await session.execute(stmt)).scalars().all()

    content = {stage.stage_key: stage.value_json for stage in stages}
    degraded = [stage.stage_index for stage in stages if stage.from_fallback]
    naming = content.get("naming") or {}
    return ArtifactRecord(
      job_id=row.job_id,
      subject=row.subject,
      status=row.status,
      completion_percentage=row.completion_percentage,
      content=content,
      degraded_stages=degraded,
      title=naming.get("jump_name"),
      error_message=row.error_message,
      created_at=row.created_at,
      updated_at=row.updated_at,
    )

  async def _merge_job_row(self, session: AsyncSession, *, job_id: str, subject: str, status: JobStatus, completion_percentage: int, error_message: str | None) -> None:
    """Insert the job row or merge into it without ever moving backwards."""
    stmt = pg_insert(GenerationJobRow).values(job_id=job_id, subject=subject, status=status, completion_percentage=completion_percentage, error_message=error_message)
    excluded = stmt.excluded
    stmt = stmt.on_conflict_do_update(
      index_elements=[GenerationJobRow.job_id],
      set_={
        "completion_percentage": func.greatest(GenerationJobRow.completion_percentage, excluded.completion_percentage),
        # Rank compare keeps pending < running < terminal; equal ranks keep the stored value.
        "status": case((_status_rank(excluded.status) > _status_rank(GenerationJobRow.status), excluded.status), else_=GenerationJobRow.status),
        "error_message": func.coalesce(GenerationJobRow.error_message, excluded.error_message),
        "updated_at": func.now(),
      },
    )
    await session.execute(stmt)
