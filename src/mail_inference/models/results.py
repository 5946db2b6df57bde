"""
Result models produced by the orchestration layer.

None of these are persisted: spam signals only feed the final ``is_spam`` flag
and batch snapshots exist for progress binding.
"""

from pydantic import BaseModel, ConfigDict, Field


# Sentinel for "model signal unavailable"; never blended into the ensemble
MODEL_SCORE_UNAVAILABLE = -1.0


class SpamSignal(BaseModel):
    """Deterministic rule-based spam score with the rules that fired."""
    
    model_config = ConfigDict(frozen=True)
    
    score: float = Field(..., ge=0.0, le=1.0)
    rule_hits: list[str] = Field(default_factory=list)


class SpamDecision(BaseModel):
    """Audit record of one ensemble spam decision."""
    
    model_config = ConfigDict(frozen=True)
    
    rule_score: float = Field(..., ge=0.0, le=1.0)
    model_score: float = Field(
        ...,
        description="Model probability, or -1.0 when the model signal was unavailable"
    )
    combined_score: float = Field(..., ge=0.0, le=1.0)
    is_spam: bool
    rule_hits: list[str] = Field(default_factory=list)
    
    @property
    def model_available(self) -> bool:
        return self.model_score >= 0


class BatchRunSnapshot(BaseModel):
    """Read-only view of the scheduler's progress counters."""
    
    model_config = ConfigDict(frozen=True)
    
    is_processing: bool = False
    processed_count: int = 0
    total_count: int = 0
    last_categorized_count: int = 0
    last_spam_count: int = 0
