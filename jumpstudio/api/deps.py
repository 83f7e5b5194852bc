"""Shared FastAPI dependencies resolved from application state."""

from __future__ import annotations

from fastapi import HTTPException, Request, status

from jumpstudio.jobs.runner import JobRunner
from jumpstudio.services.quota_gate import QuotaGate
from jumpstudio.storage.artifacts_repo import ArtifactsRepository


def _state_attr(request: Request, name: str):  # noqa: ANN202
  value = getattr(request.app.state, name, None)
  if value is None:
    raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Service is starting up.")
  return value


def get_job_runner(request: Request) -> JobRunner:
  return _state_attr(request, "job_runner")


def get_quota_gate(request: Request) -> QuotaGate:
  return _state_attr(request, "quota_gate")


def get_artifacts_repo(request: Request) -> ArtifactsRepository:
  return _state_attr(request, "artifacts_repo")
