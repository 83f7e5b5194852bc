"""Application configuration loaded from environment variables."""

from __future__ import annotations

import ipaddress
import os
from dataclasses import dataclass
from functools import lru_cache

from dotenv import load_dotenv

load_dotenv(override=False)

_SUPPORTED_PROVIDERS = {"openai", "gemini"}


@dataclass(frozen=True)
class Settings:
  """Typed settings for the Jump Studio service."""

  environment: str
  allowed_origins: tuple[str, ...]
  trusted_proxies: tuple[ipaddress.IPv4Network | ipaddress.IPv6Network, ...]
  debug: bool
  log_max_bytes: int
  log_backup_count: int
  log_http_4xx: bool
  pg_dsn: str | None
  pg_connect_timeout: int
  model_provider: str
  model_name: str | None
  model_api_key: str | None
  model_base_url: str | None
  model_max_retries: int
  stage_timeout_scale: float
  quota_enabled: bool
  user_jumps_per_week: int
  guest_jumps_per_day: int
  persist_queue_size: int
  persist_workers: int
  max_concurrent_jobs: int
  firebase_project_id: str | None
  firebase_service_account_json_path: str | None


@dataclass(frozen=True)
class DatabaseSettings:
  """Typed settings for database connectivity."""

  debug: bool
  pg_dsn: str | None
  pg_connect_timeout: int


def _parse_origins(raw: str | None) -> tuple[str, ...]:
  if not raw:
    raise ValueError("JUMPSTUDIO_ALLOWED_ORIGINS must be set to one or more origins.")

  origins = [origin.strip() for origin in raw.split(",") if origin.strip()]

  if not origins:
    raise ValueError("JUMPSTUDIO_ALLOWED_ORIGINS must include at least one origin.")

  if "*" in origins:
    raise ValueError("JUMPSTUDIO_ALLOWED_ORIGINS must not include wildcard origins.")

  return tuple(origins)


def _parse_trusted_proxies(raw: str | None) -> tuple[ipaddress.IPv4Network | ipaddress.IPv6Network, ...]:
  """Parse the proxies allowed to set X-Forwarded-For (IPs or CIDR ranges)."""
  if not raw:
    return ()
  networks = []
  for raw_entry in raw.split(","):
    entry = raw_entry.strip()
    if not entry:
      continue
    try:
      networks.append(ipaddress.ip_network(entry, strict=False))
    except ValueError as exc:
      raise ValueError(f"JUMPSTUDIO_TRUSTED_PROXIES has an invalid address: {entry!r}.") from exc
  return tuple(networks)


def _parse_bool(raw: str | None, *, default: bool = False) -> bool:
  """Parse a boolean-ish string from environment variables."""

  if raw is None:
    return default

  normalized = raw.strip().lower()
  return normalized in {"1", "true", "yes", "on"}


def _optional_str(raw: str | None) -> str | None:
  if raw is None:
    return None
  value = raw.strip()
  return value or None


def _parse_int(name: str, default: str, *, minimum: int) -> int:
  """Read an integer env var and enforce a lower bound."""
  raw = os.getenv(name, default)
  try:
    value = int(raw)
  except ValueError as exc:
    raise ValueError(f"{name} must be an integer.") from exc
  if value < minimum:
    raise ValueError(f"{name} must be >= {minimum}.")
  return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
  """Load settings once per process."""

  environment = os.getenv("JUMPSTUDIO_ENV", "development").lower()

  # Toggle verbose error output and diagnostics in non-production environments.
  debug = _parse_bool(os.getenv("JUMPSTUDIO_DEBUG"))

  log_max_bytes = _parse_int("JUMPSTUDIO_LOG_MAX_BYTES", "5242880", minimum=1)  # 5MB default
  log_backup_count = _parse_int("JUMPSTUDIO_LOG_BACKUP_COUNT", "10", minimum=0)
  # Allow opt-in logging of 4xx HTTPExceptions for diagnostics.
  log_http_4xx = _parse_bool(os.getenv("JUMPSTUDIO_LOG_HTTP_4XX"))

  model_provider = (os.getenv("JUMPSTUDIO_MODEL_PROVIDER") or "openai").strip().lower()
  if model_provider not in _SUPPORTED_PROVIDERS:
    raise ValueError(f"JUMPSTUDIO_MODEL_PROVIDER must be one of {sorted(_SUPPORTED_PROVIDERS)}.")

  stage_timeout_scale = float(os.getenv("JUMPSTUDIO_STAGE_TIMEOUT_SCALE", "1.0"))
  if stage_timeout_scale <= 0:
    raise ValueError("JUMPSTUDIO_STAGE_TIMEOUT_SCALE must be a positive number.")

  return Settings(
    environment=environment,
    allowed_origins=_parse_origins(os.getenv("JUMPSTUDIO_ALLOWED_ORIGINS")),
    trusted_proxies=_parse_trusted_proxies(os.getenv("JUMPSTUDIO_TRUSTED_PROXIES")),
    debug=debug,
    log_max_bytes=log_max_bytes,
    log_backup_count=log_backup_count,
    log_http_4xx=log_http_4xx,
    pg_dsn=_optional_str(os.getenv("JUMPSTUDIO_PG_DSN")),
    pg_connect_timeout=_parse_int("JUMPSTUDIO_PG_CONNECT_TIMEOUT", "10", minimum=1),
    model_provider=model_provider,
    model_name=_optional_str(os.getenv("JUMPSTUDIO_MODEL_NAME")),
    model_api_key=_optional_str(os.getenv("JUMPSTUDIO_MODEL_API_KEY")),
    model_base_url=_optional_str(os.getenv("JUMPSTUDIO_MODEL_BASE_URL")),
    model_max_retries=_parse_int("JUMPSTUDIO_MODEL_MAX_RETRIES", "3", minimum=0),
    stage_timeout_scale=stage_timeout_scale,
    quota_enabled=_parse_bool(os.getenv("JUMPSTUDIO_QUOTA_ENABLED"), default=True),
    user_jumps_per_week=_parse_int("JUMPSTUDIO_USER_JUMPS_PER_WEEK", "5", minimum=0),
    guest_jumps_per_day=_parse_int("JUMPSTUDIO_GUEST_JUMPS_PER_DAY", "1", minimum=0),
    persist_queue_size=_parse_int("JUMPSTUDIO_PERSIST_QUEUE_SIZE", "256", minimum=1),
    persist_workers=_parse_int("JUMPSTUDIO_PERSIST_WORKERS", "2", minimum=1),
    max_concurrent_jobs=_parse_int("JUMPSTUDIO_MAX_CONCURRENT_JOBS", "32", minimum=1),
    firebase_project_id=_optional_str(os.getenv("JUMPSTUDIO_FIREBASE_PROJECT_ID")),
    firebase_service_account_json_path=_optional_str(os.getenv("JUMPSTUDIO_FIREBASE_SERVICE_ACCOUNT_JSON_PATH")),
  )


def get_database_settings() -> DatabaseSettings:
  """Load database settings without requiring the full service configuration."""
  return DatabaseSettings(
    debug=_parse_bool(os.getenv("JUMPSTUDIO_DEBUG")),
    pg_dsn=_optional_str(os.getenv("JUMPSTUDIO_PG_DSN")),
    pg_connect_timeout=_parse_int("JUMPSTUDIO_PG_CONNECT_TIMEOUT", "10", minimum=1),
  )
