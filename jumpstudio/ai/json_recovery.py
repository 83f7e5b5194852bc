"""Tiered recovery of structured stage values from untrusted model text."""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError

from jumpstudio.ai.pipeline.contracts import RecoveryTier
from jumpstudio.ai.pipeline.shapes import StageShape

RAW_EXCERPT_CHARS = 500

_FENCE_RE = re.compile(r"^\s*```[ \t]*[A-Za-z0-9_+-]*[ \t]*\r?\n?(.*?)\r?\n?[ \t]*```\s*$", re.DOTALL | re.IGNORECASE)

logger = logging.getLogger(__name__)

FallbackBuilder = Callable[[str], StageShape]


@dataclass(frozen=True)
class Recovery:
  """Recovered stage value plus the tier that produced it."""

  value: dict[str, Any]
  tier: RecoveryTier
  last_error: str | None = None

  @property
  def from_fallback(self) -> bool:
    return self.tier is RecoveryTier.FALLBACK


class _ShapeMismatch(ValueError):
  """Decoded value was not acceptable for the stage shape."""


def recover(raw_text: str | None, shape: type[StageShape], fallback_builder: FallbackBuilder) -> Recovery:
  """Convert raw model text into a shape-valid value; never raises."""
  text = (raw_text or "").lstrip("\ufeff")
  last_error: str | None = None

  # Prefer strict parsing so valid output is preserved without mutation.
  value, last_error = _attempt(text, shape, last_error)
  if value is not None:
    return Recovery(value=value, tier=RecoveryTier.STRICT)

  # Drop markdown code fences the model wraps around JSON.
  unfenced = strip_code_fences(text)
  if unfenced != text:
    value, last_error = _attempt(unfenced, shape, last_error)
    if value is not None:
      return Recovery(value=value, tier=RecoveryTier.FENCE_STRIP)

  # Ignore prose before the first brace and after the last one.
  candidate = extract_outer_braces(unfenced)
  if candidate is not None and candidate != unfenced:
    value, last_error = _attempt(candidate, shape, last_error)
    if value is not None:
      return Recovery(value=value, tier=RecoveryTier.OUTER_BRACES)

  # Repair obvious syntax damage, including output truncated mid-object.
  repair_source = candidate if candidate is not None else _open_tail(unfenced)
  if repair_source is not None:
    repaired = repair_json_syntax(repair_source)
    value, last_error = _attempt(repaired, shape, last_error, allow_extra_data=True)
    if value is not None:
      return Recovery(value=value, tier=RecoveryTier.REPAIR)

  excerpt = text[:RAW_EXCERPT_CHARS]
  logger.debug("Recovery fell back for shape=%s last_error=%s", shape.__name__, last_error)
  return Recovery(value=fallback_builder(excerpt).to_value(), tier=RecoveryTier.FALLBACK, last_error=last_error)


def strip_code_fences(text: str) -> str:
  """Remove a surrounding triple-backtick fence with an optional language tag."""
  match = _FENCE_RE.match(text)
  if match:
    return match.group(1).strip()
  stripped = text.strip()
  # Truncated output often keeps the opening fence but loses the closing one.
  if stripped.startswith("```"):
    first_newline = stripped.find("\n")
    body = stripped[first_newline + 1 :] if first_newline != -1 else ""
    return body.rstrip().removesuffix("```").strip()
  return text


def extract_outer_braces(text: str) -> str | None:
  """Return the substring from the first `{` to the last `}`, if both exist."""
  start = text.find("{")
  end = text.rfind("}")
  if start == -1 or end <= start:
    return None
  return text[start : end + 1]


def _open_tail(text: str) -> str | None:
  """Return everything after the first `{` when no closing brace follows it."""
  start = text.find("{")
  if start == -1:
    return None
  return text[start:]


def repair_json_syntax(text: str) -> str:
  """Apply narrow syntactic repairs for common model output damage.

  Only structure outside string literals is changed: trailing commas before a
  closer are dropped, concatenated containers such as `}{` get a comma, and
  truncated output is closed. String contents pass through verbatim.
  """
  out: list[str] = []
  stack: list[str] = []
  in_string = False
  escape = False
  # Position in `out` of the last non-whitespace character outside a string.
  last = -1

  for char in text:
    if in_string:
      out.append(char)
      if escape:
        escape = False
      elif char == "\\":
        escape = True
      elif char == '"':
        in_string = False
        last = len(out) - 1
      continue

    if char in "}]":
      if last >= 0 and out[last] == ",":
        del out[last]
      if stack and stack[-1] == char:
        stack.pop()
    elif char in "{[":
      if last >= 0 and out[last] in "}]":
        out.insert(last + 1, ",")
      stack.append("}" if char == "{" else "]")
    elif char == '"':
      in_string = True

    out.append(char)
    if not char.isspace():
      last = len(out) - 1

  if not stack and not in_string:
    return "".join(out)

  if in_string:
    # A dangling escape would swallow the closing quote.
    if escape:
      out.pop()
    out.append('"')
    last = len(out) - 1
  if last >= 0 and out[last] == ",":
    del out[last]
  return "".join(out).rstrip() + "".join(reversed(stack))


def _reject_constant(name: str) -> Any:
  raise ValueError(f"non-finite number {name} is not allowed")


def _decode(text: str, *, allow_extra_data: bool) -> Any:
  try:
    return json.loads(text, parse_constant=_reject_constant)
  except json.JSONDecodeError as exc:
    if not allow_extra_data or exc.msg != "Extra data":
      raise
  # Keep the first complete value when repaired text still has trailing data.
  value, _end = json.JSONDecoder(parse_constant=_reject_constant).raw_decode(text.lstrip())
  return value


def _attempt(text: str, shape: type[StageShape], last_error: str | None, *, allow_extra_data: bool = False) -> tuple[dict[str, Any] | None, str | None]:
  """Decode and validate one candidate; return (value, error)."""
  if not text.strip():
    return None, last_error or "empty output"
  try:
    decoded = _decode(text, allow_extra_data=allow_extra_data)
    if not isinstance(decoded, dict):
      raise _ShapeMismatch(f"expected a JSON object, got {type(decoded).__name__}")
    return shape.model_validate(decoded).to_value(), None
  except ValidationError as exc:
    return None, f"shape: {exc.error_count()} validation error(s)"
  except (ValueError, TypeError, RecursionError) as exc:
    # JSONDecodeError and _ShapeMismatch are ValueErrors.
    return None, f"{type(exc).__name__}: {exc}"
