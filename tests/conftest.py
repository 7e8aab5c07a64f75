from __future__ import annotations

import pytest

from screen_core.config import EngineConfig
from screen_core.engine import AdaptiveEngine
from screen_core.types import (
    ObservationRecord,
    Response,
    StimulusDefinition,
    StimulusMetadata,
)


def make_stimulus(
    test_id: str,
    stimulus_id: str,
    difficulty: float,
    subskill: str | None = None,
    **presentation,
) -> StimulusDefinition:
    return StimulusDefinition(
        test_id=test_id,
        stimulus_id=stimulus_id,
        metadata=StimulusMetadata(
            difficulty=difficulty,
            subskill=subskill,
            presentation_params=dict(presentation),
        ),
    )


def make_record(
    stimulus: StimulusDefinition,
    *,
    correct: bool,
    user_id: str = "u1",
    session_id: str = "s1",
    response_time_ms: float = 1000.0,
    click_count: int = 1,
    answer_changed: bool = False,
    timestamp: float = 1_700_000_000_000.0,
) -> ObservationRecord:
    """Build an observation for ``stimulus`` with deterministic defaults."""

    return ObservationRecord(
        user_id=user_id,
        session_id=session_id,
        test_id=stimulus.test_id,
        stimulus_id=stimulus.stimulus_id,
        stimulus_metadata=stimulus.metadata,
        response=Response(
            correct=correct,
            response_time_ms=response_time_ms,
            click_count=click_count,
            answer_changed=answer_changed,
        ),
        timestamp=timestamp,
    )


def build_two_item_test(subskill: str = "s") -> list[StimulusDefinition]:
    return [
        make_stimulus("t", "easy", 0.2, subskill),
        make_stimulus("t", "hard", 0.8, subskill),
    ]


@pytest.fixture
def engine() -> AdaptiveEngine:
    return AdaptiveEngine(EngineConfig())
