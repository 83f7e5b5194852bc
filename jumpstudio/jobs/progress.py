"""Progress mapping and the running-result fold over stage results."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from functools import reduce
from types import MappingProxyType
from typing import Any

from jumpstudio.ai.pipeline.contracts import StageResult


def completion_percentage(stage_index: int, total_stages: int) -> int:
  """Percent complete once `stage_index` (0-based) has produced its result.

  floor((i + 1) * 100 / N): monotonic in i and 100 only for the last stage.
  """
  if total_stages <= 0:
    raise ValueError("total_stages must be positive.")
  if stage_index < 0 or stage_index >= total_stages:
    raise ValueError(f"stage_index must be in 0..{total_stages - 1}.")
  return (stage_index + 1) * 100 // total_stages


@dataclass(frozen=True)
class RunningResult:
  """Derived view of everything a job has produced so far."""

  content: Mapping[str, Mapping[str, Any]] = field(default_factory=lambda: MappingProxyType({}))
  degraded_stages: tuple[int, ...] = ()
  title: str | None = None


def _fold(acc: RunningResult, result: StageResult) -> RunningResult:
  content = MappingProxyType({**acc.content, result.stage_key: result.value})
  degraded = (*acc.degraded_stages, result.stage_index) if result.from_fallback else acc.degraded_stages
  title = acc.title
  if result.stage_key == "naming":
    title = str(result.value.get("jump_name") or "") or acc.title
  return RunningResult(content=content, degraded_stages=degraded, title=title)


def build_running_result(results: Iterable[StageResult]) -> RunningResult:
  """Fold stage results, in order, into the running result."""
  return reduce(_fold, results, RunningResult())
