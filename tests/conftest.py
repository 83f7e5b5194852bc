"""Shared fixtures for the generation pipeline tests."""

from __future__ import annotations

import os
from typing import Any

os.environ.setdefault("JUMPSTUDIO_ALLOWED_ORIGINS", "http://localhost:3000")
os.environ.setdefault("JUMPSTUDIO_QUOTA_ENABLED", "0")

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from jumpstudio.ai.model_client import ProviderModelClient  # noqa: E402
from jumpstudio.ai.orchestrator import GenerationOrchestrator  # noqa: E402
from jumpstudio.ai.providers.base import AIModel  # noqa: E402
from jumpstudio.jobs.runner import JobRunner  # noqa: E402
from jumpstudio.main import app  # noqa: E402
from jumpstudio.services.generations import build_refund_hook  # noqa: E402
from jumpstudio.services.persistence import PersistenceWriter  # noqa: E402
from tests.fakes import InMemoryArtifactsRepo, InMemoryQuotaGate, ScriptedModel  # noqa: E402


@pytest.fixture
def anyio_backend():
  return "asyncio"


@pytest.fixture
def repo() -> InMemoryArtifactsRepo:
  return InMemoryArtifactsRepo()


@pytest.fixture
def quota_gate() -> InMemoryQuotaGate:
  return InMemoryQuotaGate()


@pytest.fixture
def model() -> ScriptedModel:
  return ScriptedModel()


@pytest.fixture
async def writer(repo):
  persistence = PersistenceWriter(repo, queue_size=64, workers=2)
  yield persistence
  await persistence.close(timeout=1.0)


@pytest.fixture
def build_orchestrator(writer, quota_gate):
  def _build(model: AIModel, **kwargs: Any) -> GenerationOrchestrator:
    client = ProviderModelClient(model, max_retries=kwargs.pop("max_retries", 0), base_delay=0)
    kwargs.setdefault("timeout_scale", 0.01)
    kwargs.setdefault("on_foundational_failure", build_refund_hook(quota_gate))
    return GenerationOrchestrator(model_client=client, writer=writer, **kwargs)

  return _build


@pytest.fixture
async def api_state(repo, quota_gate, model, build_orchestrator):
  """Install pipeline collaborators on the app the way the lifespan does."""
  runner = JobRunner(build_orchestrator(model), max_concurrent_jobs=4)
  app.state.artifacts_repo = repo
  app.state.quota_gate = quota_gate
  app.state.job_runner = runner
  yield runner
  await runner.shutdown(timeout=1.0)
  app.state.artifacts_repo = None
  app.state.quota_gate = None
  app.state.job_runner = None


@pytest.fixture
async def async_client(api_state):
  async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
    yield client
  app.dependency_overrides.clear()
