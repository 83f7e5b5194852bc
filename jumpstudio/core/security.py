from __future__ import annotations

import ipaddress
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from starlette.concurrency import run_in_threadpool

from jumpstudio.config import get_settings
from jumpstudio.core.firebase import verify_id_token
from jumpstudio.jobs.models import Requester

# Guests call without a token, so a missing header must not short-circuit with 403.
security_scheme = HTTPBearer(auto_error=False)


def _is_trusted(address: str, trusted: tuple) -> bool:
  try:
    ip = ipaddress.ip_address(address)
  except ValueError:
    return False
  return any(ip in network for network in trusted)


def _client_ip(request: Request) -> str:
  """Client address used to key guests.

  X-Forwarded-For is only honoured when the socket peer is a configured trusted
  proxy; the hops are walked right to left and the first untrusted one wins.
  """
  peer = request.client.host if request.client and request.client.host else None
  trusted = get_settings().trusted_proxies
  if peer is None or not trusted or not _is_trusted(peer, trusted):
    return peer or "unknown"

  forwarded = request.headers.get("x-forwarded-for")
  if not forwarded:
    return peer
  hops = [hop.strip() for hop in forwarded.split(",") if hop.strip()]
  for hop in reversed(hops):
    if not _is_trusted(hop, trusted):
      return hop
  # Every hop is a proxy; the leftmost one is the closest thing to a client.
  return hops[0] if hops else peer


async def get_requester(request: Request, token: Annotated[HTTPAuthorizationCredentials | None, Depends(security_scheme)]) -> Requester:
  """Resolve the caller: a verified Firebase user, or a guest keyed by IP."""
  if token is None:
    return Requester.for_guest(_client_ip(request))

  decoded_claims = await run_in_threadpool(verify_id_token, token.credentials)
  if not decoded_claims:
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid authentication credentials", headers={"WWW-Authenticate": "Bearer"})

  firebase_uid = decoded_claims.get("uid")
  if not firebase_uid:
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token claims")
  return Requester.for_user(str(firebase_uid))
