from __future__ import annotations

import pytest

from jumpstudio.config import get_settings


@pytest.fixture(autouse=True)
def _fresh_settings(monkeypatch):
  for name in ("JUMPSTUDIO_MODEL_PROVIDER", "JUMPSTUDIO_STAGE_TIMEOUT_SCALE", "JUMPSTUDIO_USER_JUMPS_PER_WEEK", "JUMPSTUDIO_GUEST_JUMPS_PER_DAY", "JUMPSTUDIO_PERSIST_WORKERS", "JUMPSTUDIO_TRUSTED_PROXIES"):
    monkeypatch.delenv(name, raising=False)
  monkeypatch.setenv("JUMPSTUDIO_ALLOWED_ORIGINS", "http://localhost:3000, https://studio.example.com")
  get_settings.cache_clear()
  yield
  get_settings.cache_clear()


def test_defaults() -> None:
  settings = get_settings()
  assert settings.allowed_origins == ("http://localhost:3000", "https://studio.example.com")
  assert settings.model_provider == "openai"
  assert settings.user_jumps_per_week == 5
  assert settings.guest_jumps_per_day == 1
  assert settings.stage_timeout_scale == 1.0


def test_wildcard_origin_is_rejected(monkeypatch) -> None:
  monkeypatch.setenv("JUMPSTUDIO_ALLOWED_ORIGINS", "*")
  with pytest.raises(ValueError, match="wildcard"):
    get_settings()


def test_unknown_provider_is_rejected(monkeypatch) -> None:
  monkeypatch.setenv("JUMPSTUDIO_MODEL_PROVIDER", "anthropic")
  with pytest.raises(ValueError, match="MODEL_PROVIDER"):
    get_settings()


@pytest.mark.parametrize(("name", "value"), [("JUMPSTUDIO_PERSIST_WORKERS", "0"), ("JUMPSTUDIO_GUEST_JUMPS_PER_DAY", "many"), ("JUMPSTUDIO_STAGE_TIMEOUT_SCALE", "0")])
def test_out_of_range_values_are_rejected(monkeypatch, name: str, value: str) -> None:
  monkeypatch.setenv(name, value)
  with pytest.raises(ValueError):
    get_settings()


def test_trusted_proxies_are_parsed(monkeypatch) -> None:
  monkeypatch.setenv("JUMPSTUDIO_TRUSTED_PROXIES", "10.0.0.0/8, 192.0.2.1")
  networks = [str(network) for network in get_settings().trusted_proxies]
  assert networks == ["10.0.0.0/8", "192.0.2.1/32"]


def test_invalid_trusted_proxy_is_rejected(monkeypatch) -> None:
  monkeypatch.setenv("JUMPSTUDIO_TRUSTED_PROXIES", "not-an-ip")
  with pytest.raises(ValueError, match="TRUSTED_PROXIES"):
    get_settings()
