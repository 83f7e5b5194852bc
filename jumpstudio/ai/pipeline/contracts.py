"""Shared data contracts for the generation pipeline."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Literal

import msgspec
from pydantic import BaseModel, ConfigDict, Field, field_validator

GOAL_MIN_CHARS = 10
GOAL_MAX_CHARS = 2000
CLASSIFIER_MAX_CHARS = 200

EventType = Literal["data", "error", "complete"]


class GenerationRequest(BaseModel):
  """Inputs for a Jump generation request."""

  model_config = ConfigDict(frozen=True, extra="forbid")

  goals: str = Field(min_length=GOAL_MIN_CHARS, max_length=GOAL_MAX_CHARS)
  challenges: str = Field(min_length=GOAL_MIN_CHARS, max_length=GOAL_MAX_CHARS)
  industry: str | None = Field(default=None, max_length=CLASSIFIER_MAX_CHARS)
  ai_experience: str | None = Field(default=None, max_length=CLASSIFIER_MAX_CHARS)
  urgency: str | None = Field(default=None, max_length=CLASSIFIER_MAX_CHARS)
  budget: str | None = Field(default=None, max_length=CLASSIFIER_MAX_CHARS)

  @field_validator("goals", "challenges", mode="before")
  @classmethod
  def _strip_free_text(cls, value: Any) -> Any:
    # Trim before length checks so whitespace padding cannot satisfy the minimum.
    if isinstance(value, str):
      return value.strip()
    return value

  @field_validator("industry", "ai_experience", "urgency", "budget", mode="before")
  @classmethod
  def _blank_to_none(cls, value: Any) -> Any:
    if isinstance(value, str):
      stripped = value.strip()
      return stripped or None
    return value


class RecoveryTier(str, enum.Enum):
  """Which recovery strategy produced a stage value."""

  STRICT = "strict"
  FENCE_STRIP = "fence_strip"
  OUTER_BRACES = "outer_braces"
  REPAIR = "repair"
  FALLBACK = "fallback"


@dataclass(frozen=True)
class StageResult:
  """Shape-valid output of one stage."""

  stage_index: int
  stage_key: str
  value: dict[str, Any]
  recovered_by: RecoveryTier
  degraded_reason: str | None = None

  @property
  def from_fallback(self) -> bool:
    return self.recovered_by is RecoveryTier.FALLBACK


class StageEvent(msgspec.Struct, frozen=True):
  """One entry of a job's live event stream."""

  stage: int
  type: EventType
  job_id: str
  key: str | None = None
  data: dict[str, Any] | None = None
  progress: int | None = None
  fallback: bool = False
  message: str | None = None

  @property
  def is_terminal(self) -> bool:
    return self.type != "data"
