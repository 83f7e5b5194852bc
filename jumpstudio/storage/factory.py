"""Factories for storage backends."""

from __future__ import annotations

from jumpstudio.config import Settings
from jumpstudio.storage.artifacts_repo import ArtifactsRepository
from jumpstudio.storage.postgres_artifacts_repo import PostgresArtifactsRepository


def build_artifacts_repo(settings: Settings) -> ArtifactsRepository:
  """Return the artifact repository for the configured database."""
  if not settings.pg_dsn:
    raise RuntimeError("JUMPSTUDIO_PG_DSN must be set to persist generation artifacts.")
  return PostgresArtifactsRepository()
