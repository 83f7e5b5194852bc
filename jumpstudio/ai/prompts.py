"""Prompt builders for each pipeline stage.

Builders are pure functions of the request and the values produced by earlier
stages. Later stages quote the overview verbatim so every component stays
anchored to the same situation analysis.
"""

from __future__ import annotations

import json
from collections.abc import Callable, Mapping
from typing import Any

from jumpstudio.ai.pipeline.contracts import GenerationRequest

PriorOutputs = Mapping[str, Mapping[str, Any]]
PromptBuilder = Callable[[GenerationRequest, PriorOutputs], str]

_NOT_SPECIFIED = "Not specified"
_JSON_ONLY = "Return ONLY valid JSON. Do not wrap it in markdown and do not add commentary."


def _base_context(request: GenerationRequest) -> str:
  return "\n".join(
    [
      f"What they're trying to achieve: {request.goals}",
      f"What's preventing them: {request.challenges}",
      f"Industry: {request.industry or _NOT_SPECIFIED}",
      f"AI Experience: {request.ai_experience or _NOT_SPECIFIED}",
      f"Urgency: {request.urgency or _NOT_SPECIFIED}",
      f"Budget: {request.budget or _NOT_SPECIFIED}",
    ]
  )


def _overview_context(prior: PriorOutputs) -> str:
  overview = prior.get("overview") or {}
  summary = str(overview.get("executive_summary") or "").strip()
  vision = str(overview.get("strategic_vision") or "").strip()
  parts = [f"Overview summary:\n{summary}"] if summary else []
  if vision:
    parts.append(f"Strategic vision:\n{vision}")
  return "\n\n".join(parts)


def _plan_context(prior: PriorOutputs) -> str:
  plan = prior.get("plan") or {}
  phases = plan.get("phases") or []
  lines = [f"- {phase.get('title', '')}: {phase.get('description', '')}".rstrip(": ") for phase in phases if isinstance(phase, Mapping)]
  if not lines:
    return ""
  return "Implementation phases:\n" + "\n".join(lines)


def _jump_name(prior: PriorOutputs) -> str:
  naming = prior.get("naming") or {}
  return str(naming.get("jump_name") or "").strip()


def _with_context(request: GenerationRequest, prior: PriorOutputs, *, include_plan: bool = False) -> str:
  sections = [_base_context(request), _overview_context(prior)]
  name = _jump_name(prior)
  if name:
    sections.append(f"Jump name: {name}")
  if include_plan:
    sections.append(_plan_context(prior))
  return "\n\n".join(section for section in sections if section)


def _json_example(payload: Mapping[str, Any]) -> str:
  return json.dumps(payload, indent=2)


def build_overview_prompt(request: GenerationRequest, prior: PriorOutputs) -> str:
  example = {
    "executive_summary": "3 short paragraphs: their situation, the transformation path, and what success looks like",
    "situation_analysis": {"current_state": "...", "challenges": ["..."], "opportunities": ["..."]},
    "strategic_vision": "...",
    "key_objectives": ["..."],
    "success_metrics": ["..."],
    "risk_assessment": {"risks": ["..."], "mitigations": ["..."]},
  }
  return f"Create a strategic AI transformation overview for this person.\n\n{_base_context(request)}\n\n{_JSON_ONLY}\n{_json_example(example)}"


def build_naming_prompt(request: GenerationRequest, prior: PriorOutputs) -> str:
  example = {"jump_name": "A memorable 3-6 word name"}
  return f"Name this AI transformation journey.\n\n{_with_context(request, prior)}\n\n{_JSON_ONLY}\n{_json_example(example)}"


def build_plan_prompt(request: GenerationRequest, prior: PriorOutputs) -> str:
  example = {
    "phases": [{"title": "...", "description": "...", "duration": f"Fits urgency: {request.urgency or _NOT_SPECIFIED}", "key_actions": ["..."], "milestones": ["..."]}],
    "success_metrics": ["..."],
  }
  instructions = "Create a 3-phase implementation plan that fits their urgency and budget."
  return f"{instructions}\n\n{_with_context(request, prior)}\n\n{_JSON_ONLY}\n{_json_example(example)}"


def _component_prompt(kind: str, item_example: Mapping[str, Any], count: int) -> PromptBuilder:
  def _build(request: GenerationRequest, prior: PriorOutputs) -> str:
    example = {"items": [item_example]}
    instructions = f"Create {count} {kind} tailored to this person's goals and constraints."
    return f"{instructions}\n\n{_with_context(request, prior, include_plan=True)}\n\n{_JSON_ONLY}\n{_json_example(example)}"

  _build.__name__ = f"build_{kind.replace(' ', '_')}_prompt"
  return _build


build_prompts_prompt = _component_prompt("AI prompts", {"title": "...", "description": "...", "prompt": "...", "category": "..."}, 4)
build_workflows_prompt = _component_prompt("AI-assisted workflows", {"title": "...", "description": "...", "steps": ["..."], "tools": ["..."]}, 4)
build_blueprints_prompt = _component_prompt("solution blueprints", {"title": "...", "description": "...", "architecture": "...", "implementation_steps": ["..."]}, 3)
build_strategies_prompt = _component_prompt("adoption strategies", {"title": "...", "description": "...", "tactics": ["..."], "timeline": "..."}, 3)


def build_tool_prompts_prompt(request: GenerationRequest, prior: PriorOutputs) -> str:
  example = {"items": [{"title": "...", "description": "...", "tool_name": "...", "prompt_text": "...", "category": "...", "use_case": "..."}]}
  instructions = "Create 6 tool + prompt combinations. Each must name one concrete AI tool and a ready-to-paste prompt for it."
  return f"{instructions}\n\n{_with_context(request, prior, include_plan=True)}\n\n{_JSON_ONLY}\n{_json_example(example)}"
