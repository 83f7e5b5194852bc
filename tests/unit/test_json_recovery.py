from __future__ import annotations

import json

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from jumpstudio.ai.json_recovery import RAW_EXCERPT_CHARS, extract_outer_braces, recover, repair_json_syntax, strip_code_fences
from jumpstudio.ai.pipeline.contracts import RecoveryTier
from jumpstudio.ai.pipeline.shapes import ComponentListShape, NamingShape, OverviewShape
from jumpstudio.ai.stages import STAGES, for_stage

COMPONENT_FALLBACK = for_stage(3).fallback_builder
NAMING_FALLBACK = for_stage(1).fallback_builder


def test_strict_json_is_kept_as_is() -> None:
  result = recover('{"items": [{"title": "a"}]}', ComponentListShape, COMPONENT_FALLBACK)
  assert result.tier is RecoveryTier.STRICT
  assert result.value == {"items": [{"title": "a"}]}
  assert not result.from_fallback


def test_fenced_json_is_unwrapped() -> None:
  result = recover('```json\n{"jump_name": "Bakery Autopilot"}\n```', NamingShape, NAMING_FALLBACK)
  assert result.tier is RecoveryTier.FENCE_STRIP
  assert result.value == {"jump_name": "Bakery Autopilot"}


def test_prose_around_object_is_dropped() -> None:
  raw = 'Sure! Here is your plan:\n{"jump_name": "Bakery Autopilot"}\nLet me know if you need more.'
  result = recover(raw, NamingShape, NAMING_FALLBACK)
  assert result.tier is RecoveryTier.OUTER_BRACES
  assert result.value["jump_name"] == "Bakery Autopilot"


def test_fenced_trailing_comma_resolves_at_repair_tier() -> None:
  result = recover('```json\n{"items": [1,2,]}\n```', ComponentListShape, COMPONENT_FALLBACK)
  assert result.tier is RecoveryTier.REPAIR
  assert result.value == {"items": [1, 2]}


def test_truncated_output_is_closed() -> None:
  raw = '{"executive_summary": "Automate orders", "key_objectives": ["Save time", "Cut wa'
  result = recover(raw, OverviewShape, for_stage(0).fallback_builder)
  assert result.tier is RecoveryTier.REPAIR
  assert result.value["executive_summary"] == "Automate orders"
  assert result.value["key_objectives"] == ["Save time", "Cut wa"]


def test_list_value_never_passes_as_object() -> None:
  result = recover("[1, 2, 3]", ComponentListShape, COMPONENT_FALLBACK)
  assert result.tier is RecoveryTier.FALLBACK
  assert isinstance(result.value, dict)
  assert result.value["items"] == []


def test_shape_mismatch_falls_through_to_fallback() -> None:
  # Decodes fine but has no jump name at all.
  result = recover('{"unrelated": true}', NamingShape, NAMING_FALLBACK)
  assert result.from_fallback
  assert result.value == {"jump_name": "AI Transformation Journey"}
  assert result.last_error is not None


def test_fallback_receives_bounded_excerpt() -> None:
  raw = "x" * (RAW_EXCERPT_CHARS * 3)
  result = recover(raw, ComponentListShape, COMPONENT_FALLBACK)
  assert result.from_fallback
  assert result.value["items"] == []
  assert "x" * RAW_EXCERPT_CHARS in result.value["notice"]
  assert "x" * (RAW_EXCERPT_CHARS + 1) not in result.value["notice"]


@pytest.mark.parametrize("raw", [None, "", "   ", "\ufeff"])
def test_empty_input_uses_fallback(raw) -> None:  # noqa: ANN001
  result = recover(raw, ComponentListShape, COMPONENT_FALLBACK)
  assert result.from_fallback
  assert "notice" not in result.value


def test_non_finite_numbers_are_rejected() -> None:
  result = recover('{"items": [NaN]}', ComponentListShape, COMPONENT_FALLBACK)
  assert result.from_fallback


def test_helpers() -> None:
  assert strip_code_fences("```\n{}\n```") == "{}"
  assert strip_code_fences('```JSON\n{"a": 1}') == '{"a": 1}'
  assert strip_code_fences("plain") == "plain"
  assert extract_outer_braces("no braces") is None
  assert extract_outer_braces('pre {"a": {"b": 1}} post') == '{"a": {"b": 1}}'
  assert json.loads(repair_json_syntax('{"a": [{"b": 1}{"c": 2},],}')) == {"a": [{"b": 1}, {"c": 2}]}
  assert json.loads(repair_json_syntax('{"a": "brace } in string", "b": [1')) == {"a": "brace } in string", "b": [1]}


def test_repair_leaves_string_contents_alone() -> None:
  raw = '{"items": [{"title": "Post", "prompt": "Write about [topic] [audience] for {brand}{suffix}", "note": "Options: a, b, ]"},]}'
  result = recover(raw, ComponentListShape, COMPONENT_FALLBACK)
  assert result.tier is RecoveryTier.REPAIR
  assert result.value == {"items": [{"title": "Post", "prompt": "Write about [topic] [audience] for {brand}{suffix}", "note": "Options: a, b, ]"}]}


def test_repair_keeps_escaped_quotes_and_closes_truncated_strings() -> None:
  assert json.loads(repair_json_syntax('{"a": "say \\"hi\\" {x}{y}", "b": [1, 2,')) == {"a": 'say "hi" {x}{y}', "b": [1, 2]}
  assert json.loads(repair_json_syntax('{"a": "ends with a backslash \\')) == {"a": "ends with a backslash "}


_JSON_VALUES = st.recursive(
  st.none() | st.booleans() | st.integers() | st.text(max_size=20),
  lambda children: st.lists(children, max_size=4) | st.dictionaries(st.text(max_size=10), children, max_size=4),
  max_leaves=12,
)
_MODEL_TEXT = st.text() | _JSON_VALUES.map(json.dumps) | st.builds(lambda value, cut: json.dumps(value)[:cut], _JSON_VALUES, st.integers(min_value=0, max_value=80))


@pytest.mark.parametrize("descriptor", STAGES, ids=lambda stage: stage.key)
@settings(max_examples=100, deadline=None)
@given(raw=_MODEL_TEXT)
def test_recover_never_raises_and_always_yields_a_shape_valid_object(descriptor, raw: str) -> None:  # noqa: ANN001
  result = recover(raw, descriptor.shape, descriptor.fallback_builder)
  assert isinstance(result.value, dict)
  assert result.tier in RecoveryTier
  descriptor.shape.model_validate(result.value)


@settings(max_examples=100, deadline=None)
@given(st.lists(st.integers(min_value=-1000, max_value=1000), max_size=20), st.sampled_from(["", "Here you go:\n", "```json\n"]))
def test_valid_items_survive_wrapping(items: list[int], prefix: str) -> None:
  payload = json.dumps({"items": items})
  suffix = "\n```" if prefix.startswith("```") else ""
  result = recover(prefix + payload + suffix, ComponentListShape, COMPONENT_FALLBACK)
  assert not result.from_fallback
  assert result.value == {"items": items}
