"""Validated output shapes for each pipeline stage.

Every stage value passes through one of these models before it is streamed or
persisted. Models are lenient about the spelling the model chose (camelCase vs
snake_case, nested wrappers) but strict about the top-level value being an
object, and they synthesize empty lists for missing collection fields so that
downstream consumers never observe an absent field.
"""

from __future__ import annotations

import json
from typing import Annotated, Any

from pydantic import AliasChoices, BaseModel, BeforeValidator, ConfigDict, Field, field_validator, model_validator

DEFAULT_JUMP_NAME = "AI Transformation Journey"
TOOL_PROMPT_REQUIRED_FIELDS = ("title", "description", "tool_name", "prompt_text")


def _coerce_text_list(value: Any) -> Any:
  """Normalize a loosely typed list of strings."""
  if value is None:
    return []
  if isinstance(value, str):
    stripped = value.strip()
    return [stripped] if stripped else []
  if isinstance(value, list | tuple):
    items: list[str] = []
    for item in value:
      if item is None:
        continue
      if isinstance(item, str):
        if item.strip():
          items.append(item.strip())
        continue
      # Keep structured entries readable instead of rejecting the whole stage.
      items.append(json.dumps(item, ensure_ascii=False, sort_keys=True))
    return items
  return value


def _coerce_text(value: Any) -> Any:
  if value is None:
    return ""
  if isinstance(value, list | tuple):
    return "\n\n".join(str(item).strip() for item in value if item is not None)
  if isinstance(value, int | float) and not isinstance(value, bool):
    return str(value)
  if isinstance(value, str):
    return value.strip()
  return value


TextList = Annotated[list[str], BeforeValidator(_coerce_text_list)]
Text = Annotated[str, BeforeValidator(_coerce_text)]


class StageShape(BaseModel):
  """Base class for stage shapes."""

  model_config = ConfigDict(populate_by_name=True, extra="ignore")

  def to_value(self) -> dict[str, Any]:
    return self.model_dump(mode="json", exclude_none=True)


class SituationAnalysis(BaseModel):
  model_config = ConfigDict(populate_by_name=True, extra="ignore")

  current_state: Text = Field(default="", validation_alias=AliasChoices("current_state", "currentState"))
  challenges: TextList = Field(default_factory=list)
  opportunities: TextList = Field(default_factory=list)


class RiskAssessment(BaseModel):
  model_config = ConfigDict(populate_by_name=True, extra="ignore")

  risks: TextList = Field(default_factory=list)
  mitigations: TextList = Field(default_factory=list, validation_alias=AliasChoices("mitigations", "mitigation", "mitigationStrategies"))


class OverviewShape(StageShape):
  """Foundational summary quoted by every later stage."""

  executive_summary: Text = Field(min_length=1, validation_alias=AliasChoices("executive_summary", "executiveSummary", "summary"))
  situation_analysis: SituationAnalysis = Field(default_factory=SituationAnalysis, validation_alias=AliasChoices("situation_analysis", "situationAnalysis"))
  strategic_vision: Text = Field(default="", validation_alias=AliasChoices("strategic_vision", "strategicVision", "vision"))
  key_objectives: TextList = Field(default_factory=list, validation_alias=AliasChoices("key_objectives", "keyObjectives", "objectives"))
  success_metrics: TextList = Field(default_factory=list, validation_alias=AliasChoices("success_metrics", "successMetrics"))
  risk_assessment: RiskAssessment = Field(default_factory=RiskAssessment, validation_alias=AliasChoices("risk_assessment", "riskAssessment"))
  notice: str | None = None

  @field_validator("situation_analysis", "risk_assessment", mode="before")
  @classmethod
  def _none_to_empty(cls, value: Any) -> Any:
    return {} if value is None else value


class NamingShape(StageShape):
  jump_name: Text = Field(min_length=1, max_length=160, validation_alias=AliasChoices("jump_name", "jumpName", "name", "title"))


class PlanPhase(BaseModel):
  model_config = ConfigDict(populate_by_name=True, extra="ignore")

  title: Text = Field(default="", validation_alias=AliasChoices("title", "name"))
  description: Text = ""
  duration: Text = Field(default="", validation_alias=AliasChoices("duration", "timeline"))
  key_actions: TextList = Field(default_factory=list, validation_alias=AliasChoices("key_actions", "keyActions", "actions", "activities"))
  milestones: TextList = Field(default_factory=list)


class PlanShape(StageShape):
  """Phased implementation plan."""

  phases: list[PlanPhase] = Field(default_factory=list)
  success_metrics: TextList = Field(default_factory=list, validation_alias=AliasChoices("success_metrics", "successMetrics"))
  notice: str | None = None

  @model_validator(mode="before")
  @classmethod
  def _unwrap_plan(cls, data: Any) -> Any:
    if not isinstance(data, dict):
      return data
    normalized = dict(data)
    for wrapper in ("implementation_plan", "implementationPlan", "plan"):
      nested = normalized.get(wrapper)
      if isinstance(nested, dict) and "phases" not in normalized:
        normalized = {**nested, **{key: value for key, value in normalized.items() if key != wrapper}}
    # Older prompts returned `roadmap: {phase1: {...}, phase2: {...}}`.
    roadmap = normalized.get("roadmap")
    if "phases" not in normalized and isinstance(roadmap, dict):
      normalized["phases"] = [roadmap[key] for key in sorted(roadmap) if isinstance(roadmap[key], dict)]
    phases = normalized.get("phases")
    if phases is None:
      normalized["phases"] = []
    elif isinstance(phases, list):
      normalized["phases"] = [phase for phase in phases if isinstance(phase, dict)]
    return normalized

  @model_validator(mode="after")
  def _number_untitled_phases(self) -> PlanShape:
    for position, phase in enumerate(self.phases, start=1):
      if not phase.title:
        phase.title = f"Phase {position}"
    return self


def _pick_item_list(data: dict[str, Any], aliases: tuple[str, ...]) -> list[Any] | None:
  """Find the list of items under a known key, or the only list-valued field."""
  for alias in aliases:
    if alias in data:
      value = data[alias]
      if value is None:
        return []
      if isinstance(value, list):
        return value
      # A known key holding a non-list is a shape error, not a missing field.
      raise ValueError(f"'{alias}' must be a list")
  list_fields = [value for value in data.values() if isinstance(value, list)]
  if len(list_fields) == 1:
    return list_fields[0]
  return None


class ComponentListShape(StageShape):
  """Generic list of generated components (prompts, workflows, blueprints, strategies)."""

  items: list[Any] = Field(default_factory=list)
  notice: str | None = None

  @model_validator(mode="before")
  @classmethod
  def _collect_items(cls, data: Any) -> Any:
    if not isinstance(data, dict):
      return data
    items = _pick_item_list(data, ("items", "components", "prompts", "workflows", "blueprints", "strategies"))
    return {"items": items if items is not None else [], "notice": data.get("notice")}


class ToolPrompt(BaseModel):
  model_config = ConfigDict(populate_by_name=True, extra="ignore")

  title: str
  description: str
  tool_name: str
  prompt_text: str
  category: str | None = None
  use_case: str | None = None
  is_error: bool = False


_TOOL_PROMPT_ALIASES = {
  "title": ("title", "name"),
  "description": ("description", "summary"),
  "tool_name": ("tool_name", "toolName", "tool"),
  "prompt_text": ("prompt_text", "promptText", "prompt"),
  "category": ("category",),
  "use_case": ("use_case", "useCase"),
}


def _normalize_tool_prompt(entry: Any, position: int) -> dict[str, Any]:
  """Return a complete tool prompt or a numbered placeholder."""
  if isinstance(entry, dict):
    normalized: dict[str, Any] = {}
    for field_name, aliases in _TOOL_PROMPT_ALIASES.items():
      for alias in aliases:
        value = entry.get(alias)
        if isinstance(value, str) and value.strip():
          normalized[field_name] = value.strip()
          break
    if all(normalized.get(field_name) for field_name in TOOL_PROMPT_REQUIRED_FIELDS):
      return normalized
  return {
    "title": f"Error generating tool #{position}",
    "description": "This tool prompt was incomplete and could not be used.",
    "tool_name": "unknown",
    "prompt_text": "",
    "is_error": True,
  }


class ToolPromptListShape(StageShape):
  """Tool and prompt combinations; incomplete entries become placeholders."""

  items: list[ToolPrompt] = Field(default_factory=list)
  notice: str | None = None

  @model_validator(mode="before")
  @classmethod
  def _collect_items(cls, data: Any) -> Any:
    if not isinstance(data, dict):
      return data
    items = _pick_item_list(data, ("items", "tool_prompts", "toolPrompts", "tools"))
    normalized = [_normalize_tool_prompt(entry, position) for position, entry in enumerate(items or [], start=1)]
    return {"items": normalized, "notice": data.get("notice")}
