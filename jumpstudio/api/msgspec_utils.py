"""Utility helpers for msgspec event encoding."""

from __future__ import annotations

import msgspec

from jumpstudio.ai.pipeline.contracts import StageEvent

_encoder = msgspec.json.Encoder()


def encode_sse_event(event: StageEvent) -> bytes:
  """Frame one event as a server-sent `data:` record."""
  # msgspec never emits raw newlines inside JSON, so one data line is always enough.
  return b"data: " + _encoder.encode(event) + b"\n\n"
