from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from jumpstudio.api.deps import get_quota_gate
from jumpstudio.core.security import get_requester
from jumpstudio.jobs.models import Requester
from jumpstudio.services.quota_gate import JUMP_METRIC, QuotaGate

router = APIRouter()


@router.get("")
async def get_jump_quota(requester: Requester = Depends(get_requester), gate: QuotaGate = Depends(get_quota_gate)) -> dict[str, Any]:  # noqa: B008
  """Return how many Jumps the caller can still start in the current period."""
  decision = await gate.remaining(requester)
  return {"metric": JUMP_METRIC, "kind": requester.kind, "limit": decision.limit, "remaining": decision.remaining, "period": decision.period}
