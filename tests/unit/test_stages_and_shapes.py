from __future__ import annotations

import pytest
from pydantic import ValidationError

from jumpstudio.ai.pipeline.contracts import GenerationRequest
from jumpstudio.ai.pipeline.shapes import ComponentListShape, NamingShape, OverviewShape, PlanShape, ToolPromptListShape
from jumpstudio.ai.prompts import build_plan_prompt, build_tool_prompts_prompt
from jumpstudio.ai.stages import STAGES, for_stage, stage_count


def test_stage_table_order_and_budgets() -> None:
  assert stage_count() == 8
  assert [stage.key for stage in STAGES] == ["overview", "naming", "plan", "prompts", "workflows", "blueprints", "strategies", "tool_prompts"]
  assert [stage.time_budget for stage in STAGES] == [90.0, 20.0, 60.0, 60.0, 60.0, 60.0, 60.0, 120.0]
  assert [stage.foundational for stage in STAGES] == [True] + [False] * 7


def test_for_stage_rejects_out_of_range() -> None:
  assert for_stage(7).key == "tool_prompts"
  with pytest.raises(IndexError):
    for_stage(8)
  with pytest.raises(IndexError):
    for_stage(-1)


@pytest.mark.parametrize("descriptor", STAGES, ids=lambda stage: stage.key)
def test_every_fallback_is_shape_valid(descriptor) -> None:  # noqa: ANN001
  value = descriptor.fallback_builder("raw model text").to_value()
  assert descriptor.shape.model_validate(value).to_value() == value


def test_naming_fallback_uses_default_name() -> None:
  assert for_stage(1).fallback_builder("").to_value() == {"jump_name": "AI Transformation Journey"}


def test_overview_accepts_camel_case_and_fills_lists() -> None:
  value = OverviewShape.model_validate({"executiveSummary": "Summary", "strategicVision": "Vision"}).to_value()
  assert value["executive_summary"] == "Summary"
  assert value["strategic_vision"] == "Vision"
  assert value["key_objectives"] == []
  assert value["risk_assessment"] == {"risks": [], "mitigations": []}


def test_overview_requires_summary() -> None:
  with pytest.raises(ValidationError):
    OverviewShape.model_validate({"strategic_vision": "Vision only"})


def test_naming_accepts_aliases() -> None:
  assert NamingShape.model_validate({"jumpName": "  Bakery Autopilot "}).jump_name == "Bakery Autopilot"


def test_plan_unwraps_nested_plan_and_numbers_phases() -> None:
  value = PlanShape.model_validate({"implementationPlan": {"phases": [{"description": "first"}, {"title": "Scale"}]}}).to_value()
  assert [phase["title"] for phase in value["phases"]] == ["Phase 1", "Scale"]
  assert value["success_metrics"] == []


def test_component_list_picks_known_key() -> None:
  assert ComponentListShape.model_validate({"workflows": [{"title": "a"}]}).items == [{"title": "a"}]
  assert ComponentListShape.model_validate({}).items == []
  with pytest.raises(ValidationError):
    ComponentListShape.model_validate({"items": "not a list"})


def test_tool_prompts_replace_incomplete_entries() -> None:
  shape = ToolPromptListShape.model_validate(
    {
      "tool_prompts": [
        {"title": "Replies", "description": "Draft replies", "toolName": "ChatGPT", "promptText": "Draft..."},
        {"title": "Missing the rest"},
        "not even an object",
      ]
    }
  )
  value = shape.to_value()
  assert value["items"][0]["tool_name"] == "ChatGPT"
  assert value["items"][0]["is_error"] is False
  assert value["items"][1]["title"] == "Error generating tool #2"
  assert value["items"][1]["is_error"] is True
  assert value["items"][2]["title"] == "Error generating tool #3"


def test_later_prompts_quote_overview_verbatim() -> None:
  request = GenerationRequest(goals="grow a bakery with AI", challenges="no budget for staff")
  prior = {
    "overview": {"executive_summary": "Automate bakery ordering with an AI assistant.", "strategic_vision": "A bakery where routine orders run themselves."},
    "naming": {"jump_name": "Bakery Autopilot"},
  }
  plan_prompt = build_plan_prompt(request, prior)
  assert "Automate bakery ordering with an AI assistant." in plan_prompt
  assert "A bakery where routine orders run themselves." in plan_prompt
  assert "grow a bakery with AI" in build_tool_prompts_prompt(request, prior)


def test_request_trims_and_rejects_short_goals() -> None:
  request = GenerationRequest(goals="   grow a bakery with AI  ", challenges="no budget for staff", industry="  ")
  assert request.goals == "grow a bakery with AI"
  assert request.industry is None
  with pytest.raises(ValidationError):
    GenerationRequest(goals="      short     ", challenges="no budget for staff")
  with pytest.raises(ValidationError):
    GenerationRequest(goals="grow a bakery with AI", challenges="no budget for staff", surprise="field")
