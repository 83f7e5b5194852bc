"""Pipeline contracts and per-stage output shapes."""

from jumpstudio.ai.pipeline.contracts import GenerationRequest, RecoveryTier, StageEvent, StageResult

__all__ = ["GenerationRequest", "RecoveryTier", "StageEvent", "StageResult"]
