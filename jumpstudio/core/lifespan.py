import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from jumpstudio.ai.model_client import build_model_client
from jumpstudio.ai.orchestrator import GenerationOrchestrator
from jumpstudio.core.database import dispose_db_engine
from jumpstudio.core.firebase import initialize_firebase
from jumpstudio.core.logging import _initialize_logging
from jumpstudio.jobs.runner import JobRunner
from jumpstudio.services.generations import build_refund_hook
from jumpstudio.services.persistence import PersistenceWriter
from jumpstudio.services.quota_gate import build_quota_gate
from jumpstudio.storage.factory import build_artifacts_repo


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
  """Wire the pipeline collaborators on startup and drain them on shutdown."""
  from jumpstudio.config import get_settings

  settings = get_settings()
  logger = logging.getLogger("jumpstudio.core.lifespan")

  _initialize_logging(settings)
  logger.info("Startup complete - logging verified.")
  # Guests still work without Firebase, so a failed init only disables bearer auth.
  initialize_firebase(settings)

  repo = build_artifacts_repo(settings)
  writer = PersistenceWriter(repo, queue_size=settings.persist_queue_size, workers=settings.persist_workers)
  writer.start()
  model_client = build_model_client(settings)
  gate = build_quota_gate(settings)
  orchestrator = GenerationOrchestrator(model_client=model_client, writer=writer, timeout_scale=settings.stage_timeout_scale, on_foundational_failure=build_refund_hook(gate))
  runner = JobRunner(orchestrator, max_concurrent_jobs=settings.max_concurrent_jobs)

  app.state.artifacts_repo = repo
  app.state.quota_gate = gate
  app.state.job_runner = runner
  logger.info("Generation pipeline ready max_concurrent_jobs=%s persist_workers=%s", settings.max_concurrent_jobs, settings.persist_workers)

  try:
    yield
  finally:
    # Running jobs keep persisting until done, so stop the runner before the writer.
    await runner.shutdown()
    await writer.close()
    await model_client.aclose()
    await dispose_db_engine()
    logger.info("Shutdown complete.")
