# screen_core/policy.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple
import logging, math

from .beta import PosteriorBeta, posterior_mean, posterior_var
from .clusters import ErrorClusterer
from .config import (
    EngineConfig,
    EMPTY_UNCERTAINTY,
    TARGET_FATIGUE_WEIGHT,
    FATIGUE_PENALTY_WEIGHT,
    MIXED_HIGH,
    MIXED_LOW,
    PROFESSIONAL_CHECK_BELOW,
    HOT_CLUSTER_LIMIT,
)
from .registry import TestEntry
from .types import (
    GLOBAL_SUBSKILL,
    NextStimulus,
    ScreeningOutcome,
    SessionStatus,
    StimulusDefinition,
)
from .user_model import UserModel


log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Candidate:
    test_id: str
    stimulus: StimulusDefinition
    max_difficulty: float

    @property
    def difficulty(self) -> float:
        return float(self.stimulus.metadata.difficulty)


def confidence_vector(user: UserModel) -> Dict[str, float]:
    return {key: state.mean for key, state in user.subskills.items()}


def uncertainty_score(user: UserModel) -> float:
    variances = [state.variance for state in user.subskills.values()]
    if not variances:
        return EMPTY_UNCERTAINTY
    return sum(variances) / len(variances)


class SelectionPolicy:
    """Stop/continue rules, target choice and candidate ranking."""

    def __init__(self, config: EngineConfig):
        self.config = config

    def session_status(self, fatigue: float, uncertainty: float) -> SessionStatus:
        if fatigue > self.config.fatigue_stop:
            return "stop"
        if uncertainty < self.config.uncertainty_stop:
            return "inconclusive"
        return "continue"

    def screening_outcome(
        self, fatigue: float, uncertainty: float, confidence: Dict[str, float]
    ) -> ScreeningOutcome:
        if uncertainty < self.config.uncertainty_stop:
            return "inconclusive"
        return self.recommendation(fatigue, confidence)

    def recommendation(self, fatigue: float, confidence: Dict[str, float]) -> ScreeningOutcome:
        values = list(confidence.values())
        mixed = any(v > MIXED_HIGH for v in values) and any(v < MIXED_LOW for v in values)
        if fatigue > self.config.fatigue_stop or mixed:
            return "inconclusive"
        if any(v < PROFESSIONAL_CHECK_BELOW for v in values):
            return "recommend_professional_check"
        return "normal"

    @staticmethod
    def target_subskill(user: UserModel) -> str:
        target = GLOBAL_SUBSKILL
        best = -math.inf
        for key, state in user.subskills.items():
            score = state.variance + TARGET_FATIGUE_WEIGHT * state.fatigue_score
            if score > best:
                best = score
                target = key
        return target

    def candidate_set(
        self,
        entries: Sequence[tuple[str, TestEntry]],
        clusterer: ErrorClusterer,
        target: str,
    ) -> List[Candidate]:
        # an empty tag counts as untagged, matching GLOBAL_SUBSKILL on ingestion
        candidates = [
            Candidate(tid, stim, entry.max_difficulty)
            for tid, entry in entries
            for stim in entry.stimuli
            if not stim.metadata.subskill or stim.metadata.subskill == target
        ]
        if candidates:
            return candidates

        fallback = [
            Candidate(tid, stim, entry.max_difficulty)
            for tid, entry in entries
            for stim in entry.stimuli
        ]
        hot = next(
            (c for c in clusterer.top_mistake_buckets(HOT_CLUSTER_LIMIT) if c.subskill == target),
            None,
        )
        if hot is not None:
            anchor = hot.difficulty_bucket * clusterer.bucket_size
            fallback.sort(key=lambda c: abs(c.difficulty - anchor))
        return fallback

    def score(self, candidate: Candidate, ability: float, ability_var: float, fatigue: float) -> Tuple[float, Dict[str, float]]:
        max_d = candidate.max_difficulty
        norm = candidate.difficulty / max_d if max_d else candidate.difficulty
        gap = abs(norm - ability)
        info_gain = 1.0 - math.tanh(gap * gap)
        exploration = self.config.exploration_weight * math.sqrt(ability_var)
        penalty = fatigue * FATIGUE_PENALTY_WEIGHT
        parts = {
            "norm_difficulty": norm,
            "gap": gap,
            "info_gain": info_gain,
            "exploration": exploration,
            "fatigue_penalty": penalty,
        }
        return info_gain + exploration - penalty, parts

    def rank(
        self,
        user: UserModel,
        candidates: Sequence[Candidate],
        target: str,
    ) -> Optional[NextStimulus]:
        if not candidates:
            return None
        state = user.subskills.get(target)
        # an untracked target is scored against the prior without being created
        posterior = state.posterior if state else PosteriorBeta(self.config.prior_alpha, self.config.prior_beta)
        ability = posterior_mean(posterior)
        ability_var = posterior_var(posterior)

        best: Optional[Candidate] = None
        best_score = -math.inf
        for cand in candidates:
            s, parts = self.score(cand, ability, ability_var, user.fatigue)
            log.debug("score test=%s stimulus=%s score=%.4f parts=%s", cand.test_id, cand.stimulus.stimulus_id, s, parts)
            if s > best_score:  # strict: first candidate wins ties
                best_score = s
                best = cand
        if best is None:  # every score was NaN
            best = candidates[0]
        return NextStimulus(
            test_id=best.test_id,
            stimulus_id=best.stimulus.stimulus_id,
            difficulty=best.difficulty,
        )
