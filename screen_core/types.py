from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Literal

# Sub-skill key used when a stimulus carries no explicit tag.
GLOBAL_SUBSKILL = "global"

SessionStatus = Literal["continue", "inconclusive", "stop"]
ScreeningOutcome = Literal["normal", "inconclusive", "recommend_professional_check"]

@dataclass(frozen=True)
class StimulusMetadata:
    difficulty: float
    subskill: Optional[str] = None
    # render-only payload, never inspected by the core
    presentation_params: Dict[str, Any] = field(default_factory=dict)

    @property
    def subskill_key(self) -> str:
        return self.subskill or GLOBAL_SUBSKILL

@dataclass(frozen=True)
class StimulusDefinition:
    test_id: str; stimulus_id: str
    metadata: StimulusMetadata

@dataclass(frozen=True)
class Response:
    correct: bool
    response_time_ms: float
    click_count: int = 0
    answer_changed: bool = False

@dataclass(frozen=True)
class ObservationRecord:
    user_id: str; session_id: str; test_id: str; stimulus_id: str
    stimulus_metadata: StimulusMetadata
    response: Response
    timestamp: float  # epoch milliseconds

@dataclass
class SubskillSnapshot:
    key: str
    mean: float
    variance: float
    fatigue: float

@dataclass
class UserSnapshot:
    subskills: List[SubskillSnapshot]
    fatigue: float
    interaction_mean_ms: float

    def to_dict(self) -> Dict[str, object]:
        return {
            "subskills": [vars(s).copy() for s in self.subskills],
            "fatigue": self.fatigue,
            "interaction_mean_ms": self.interaction_mean_ms,
        }

@dataclass(frozen=True)
class NextStimulus:
    test_id: str; stimulus_id: str
    difficulty: float

@dataclass
class NextAction:
    next_action: Optional[NextStimulus]
    confidence_vector: Dict[str, float]
    uncertainty_score: float
    session_status: SessionStatus
    screening_outcome: ScreeningOutcome

    def to_dict(self) -> Dict[str, object]:
        return {
            "next_action": vars(self.next_action).copy() if self.next_action else None,
            "confidence_vector": dict(self.confidence_vector),
            "uncertainty_score": self.uncertainty_score,
            "session_status": self.session_status,
            "screening_outcome": self.screening_outcome,
        }
