"""Static table of pipeline stages.

The table fixes stage count, order, and every per-stage contract. The
orchestrator only iterates it; nothing outside this module knows what a
particular stage produces.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from jumpstudio.ai import prompts
from jumpstudio.ai.pipeline.shapes import DEFAULT_JUMP_NAME, ComponentListShape, NamingShape, OverviewShape, PlanShape, StageShape, ToolPromptListShape

_STRATEGIST = "You are an AI transformation strategist. You write concrete, practical guidance and always answer with a single JSON object."
_TOOLS_SPECIALIST = "You are an AI tools specialist. You match people with specific AI tools and ready-to-use prompts and always answer with a single JSON object."
_OVERVIEW_UNAVAILABLE = "The overview could not be generated."


def _notice(raw_excerpt: str) -> str | None:
  excerpt = raw_excerpt.strip()
  return f"Generation output could not be parsed. Raw excerpt: {excerpt}" if excerpt else None


def _overview_fallback(raw_excerpt: str) -> StageShape:
  return OverviewShape(executive_summary=raw_excerpt.strip() or _OVERVIEW_UNAVAILABLE, notice=_notice(raw_excerpt))


def _naming_fallback(raw_excerpt: str) -> StageShape:
  return NamingShape(jump_name=DEFAULT_JUMP_NAME)


def _plan_fallback(raw_excerpt: str) -> StageShape:
  return PlanShape(phases=[], success_metrics=[], notice=_notice(raw_excerpt))


def _component_fallback(raw_excerpt: str) -> StageShape:
  return ComponentListShape(items=[], notice=_notice(raw_excerpt))


def _tool_prompts_fallback(raw_excerpt: str) -> StageShape:
  return ToolPromptListShape(items=[], notice=_notice(raw_excerpt))


@dataclass(frozen=True)
class StageDescriptor:
  """Static configuration for one stage."""

  index: int
  key: str
  name: str
  system_prompt: str
  prompt_builder: prompts.PromptBuilder
  shape: type[StageShape]
  time_budget: float
  max_tokens: int
  fallback_builder: Callable[[str], StageShape]
  foundational: bool = False


STAGES: tuple[StageDescriptor, ...] = (
  StageDescriptor(0, "overview", "Strategic Overview", _STRATEGIST, prompts.build_overview_prompt, OverviewShape, 90.0, 10000, _overview_fallback, foundational=True),
  StageDescriptor(1, "naming", "Jump Name", _STRATEGIST, prompts.build_naming_prompt, NamingShape, 20.0, 500, _naming_fallback),
  StageDescriptor(2, "plan", "Implementation Plan", _STRATEGIST, prompts.build_plan_prompt, PlanShape, 60.0, 3000, _plan_fallback),
  StageDescriptor(3, "prompts", "AI Prompts", _STRATEGIST, prompts.build_prompts_prompt, ComponentListShape, 60.0, 4000, _component_fallback),
  StageDescriptor(4, "workflows", "Workflows", _STRATEGIST, prompts.build_workflows_prompt, ComponentListShape, 60.0, 4000, _component_fallback),
  StageDescriptor(5, "blueprints", "Blueprints", _STRATEGIST, prompts.build_blueprints_prompt, ComponentListShape, 60.0, 4000, _component_fallback),
  StageDescriptor(6, "strategies", "Strategies", _STRATEGIST, prompts.build_strategies_prompt, ComponentListShape, 60.0, 4000, _component_fallback),
  StageDescriptor(7, "tool_prompts", "Tools & Prompts", _TOOLS_SPECIALIST, prompts.build_tool_prompts_prompt, ToolPromptListShape, 120.0, 15000, _tool_prompts_fallback),
)


def stage_count() -> int:
  return len(STAGES)


def for_stage(index: int) -> StageDescriptor:
  """Return the descriptor for a 0-based stage index."""
  if index < 0 or index >= len(STAGES):
    raise IndexError(f"No stage with index {index}; valid range is 0..{len(STAGES) - 1}.")
  return STAGES[index]


def _check_table() -> None:
  # Indices must be contiguous and only the first stage may be foundational.
  for position, descriptor in enumerate(STAGES):
    if descriptor.index != position:
      raise RuntimeError(f"Stage '{descriptor.key}' has index {descriptor.index}, expected {position}.")
    if descriptor.foundational and position != 0:
      raise RuntimeError(f"Only the first stage may be foundational (got '{descriptor.key}').")
  if len({descriptor.key for descriptor in STAGES}) != len(STAGES):
    raise RuntimeError("Stage keys must be unique.")


_check_table()
