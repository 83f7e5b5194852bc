from __future__ import annotations

import asyncio

import pytest

from jumpstudio.core import security
from jumpstudio.storage.artifacts_repo import ArtifactRecord
from tests.fakes import EXPECTED_PROGRESS, parse_sse, wait_for_idle

PAYLOAD = {"goals": "grow a bakery with AI", "challenges": "no budget for staff"}


@pytest.mark.anyio
async def test_stream_emits_every_stage_then_complete(async_client, api_state, repo, writer) -> None:
  response = await async_client.post("/v1/generations", json=PAYLOAD)
  assert response.status_code == 200
  assert response.headers["content-type"].startswith("text/event-stream")
  job_id = response.headers["x-job-id"]

  events = parse_sse(response.text)
  assert [event["progress"] for event in events[:-1]] == EXPECTED_PROGRESS
  assert all(event["job_id"] == job_id for event in events)
  assert events[-1]["type"] == "complete"
  assert events[-1]["data"]["title"] == "Bakery Autopilot"

  await wait_for_idle(api_state)
  await writer.drain()
  durable = await async_client.get(f"/v1/generations/{job_id}")
  assert durable.status_code == 200
  body = durable.json()
  assert body["status"] == "complete"
  assert body["completion_percentage"] == 100
  assert body["title"] == "Bakery Autopilot"
  assert set(body["content"]) == {"overview", "naming", "plan", "prompts", "workflows", "blueprints", "strategies", "tool_prompts"}


@pytest.mark.anyio
async def test_quota_race_admits_exactly_one(async_client, api_state, quota_gate) -> None:
  first, second = await asyncio.gather(async_client.post("/v1/generations", json=PAYLOAD), async_client.post("/v1/generations", json=PAYLOAD))
  statuses = sorted([first.status_code, second.status_code])
  assert statuses == [200, 403]
  rejected = first if first.status_code == 403 else second
  assert rejected.json()["detail"]["error"] == "QUOTA_EXCEEDED"
  assert rejected.json()["detail"]["period"] == "DAY"
  assert sum(quota_gate.used.values()) == 1
  await wait_for_idle(api_state)


@pytest.mark.anyio
async def test_guest_cannot_reset_quota_with_forwarded_header(async_client, api_state, quota_gate) -> None:
  first = await async_client.post("/v1/generations", json=PAYLOAD, headers={"X-Forwarded-For": "203.0.113.1"})
  second = await async_client.post("/v1/generations", json=PAYLOAD, headers={"X-Forwarded-For": "203.0.113.2"})
  assert first.status_code == 200
  assert second.status_code == 403
  assert len(quota_gate.used) == 1
  await wait_for_idle(api_state)


@pytest.mark.anyio
async def test_invalid_payload_is_rejected_before_quota(async_client, quota_gate) -> None:
  response = await async_client.post("/v1/generations", json={"goals": "short", "challenges": "no budget for staff"})
  assert response.status_code == 422
  body = response.json()
  assert "requestId" in body
  assert all("input" not in error for error in body["detail"])
  assert quota_gate.used == {}


@pytest.mark.anyio
async def test_capacity_is_checked_before_debit(async_client, api_state, quota_gate) -> None:
  api_state._max_concurrent_jobs = 0
  response = await async_client.post("/v1/generations", json=PAYLOAD)
  assert response.status_code == 503
  assert response.headers["retry-after"] == "5"
  assert quota_gate.used == {}


@pytest.mark.anyio
async def test_invalid_token_is_unauthorized(async_client, monkeypatch) -> None:
  monkeypatch.setattr(security, "verify_id_token", lambda token: None)
  response = await async_client.post("/v1/generations", json=PAYLOAD, headers={"Authorization": "Bearer nope"})
  assert response.status_code == 401


@pytest.mark.anyio
async def test_users_only_read_their_own_jobs(async_client, repo, monkeypatch) -> None:
  repo.jobs["job-owned"] = {"subject": "user:alice", "status": "running", "completion_percentage": 25, "error_message": None}
  monkeypatch.setattr(security, "verify_id_token", lambda token: {"uid": token})

  own = await async_client.get("/v1/generations/job-owned", headers={"Authorization": "Bearer alice"})
  assert own.status_code == 200
  assert own.json()["status"] == "running"

  other = await async_client.get("/v1/generations/job-owned", headers={"Authorization": "Bearer mallory"})
  assert other.status_code == 404

  guest = await async_client.get("/v1/generations/job-owned")
  assert guest.status_code == 200

  missing = await async_client.get("/v1/generations/nope")
  assert missing.status_code == 404


@pytest.mark.anyio
async def test_authenticated_user_gets_weekly_allowance(async_client, api_state, quota_gate, monkeypatch) -> None:
  monkeypatch.setattr(security, "verify_id_token", lambda token: {"uid": "alice"})
  headers = {"Authorization": "Bearer token"}
  response = await async_client.post("/v1/generations", json=PAYLOAD, headers=headers)
  assert response.status_code == 200
  assert quota_gate.used == {"user:alice": 1}

  quota = await async_client.get("/v1/quota", headers=headers)
  assert quota.json() == {"metric": "jump.generate", "kind": "user", "limit": 5, "remaining": 4, "period": "WEEK"}
  await wait_for_idle(api_state)


@pytest.mark.anyio
async def test_health_and_headers(async_client) -> None:
  response = await async_client.get("/health")
  assert response.json() == {"status": "ok", "version": "0.1.0"}
  assert "x-request-id" in response.headers
  assert response.headers["x-content-type-options"] == "nosniff"


def test_artifact_record_defaults() -> None:
  record = ArtifactRecord(job_id="j", subject="guest:x", status="pending", completion_percentage=0)
  assert record.content == {}
  assert record.degraded_stages == []
