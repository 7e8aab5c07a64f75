from __future__ import annotations
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, Optional

from .beta import PosteriorBeta, posterior_mean, posterior_var
from .config import AUDIT_EVENT_LIMIT, WINDOW_CAPACITY
from .stats import RollingWindow, RunningStats


def _window() -> RollingWindow:
    return RollingWindow(WINDOW_CAPACITY)


def _audit_log() -> Deque[Dict[str, object]]:
    return deque(maxlen=AUDIT_EVENT_LIMIT)


@dataclass
class SubskillState:
    posterior: PosteriorBeta
    time_stats: RunningStats = field(default_factory=RunningStats)
    click_stats: RunningStats = field(default_factory=RunningStats)
    answer_change_rate: RollingWindow = field(default_factory=_window)
    accuracy_window: RollingWindow = field(default_factory=_window)
    fatigue_score: float = 0.0
    last_timestamp: Optional[float] = None

    @property
    def mean(self) -> float:
        return posterior_mean(self.posterior)

    @property
    def variance(self) -> float:
        return posterior_var(self.posterior)

    def to_dict(self) -> Dict[str, object]:
        """JSON-friendly representation used for persistence/debugging."""

        return {
            "alpha": self.posterior.alpha,
            "beta": self.posterior.beta,
            "mean": self.mean,
            "variance": self.variance,
            "time_stats": self.time_stats.to_dict(),
            "click_stats": self.click_stats.to_dict(),
            "answer_change_rate": self.answer_change_rate.mean(),
            "accuracy": self.accuracy_window.values_snapshot(),
            "fatigue_score": self.fatigue_score,
            "last_timestamp": self.last_timestamp,
        }


@dataclass
class TestState:
    __test__ = False

    accuracy_window: RollingWindow = field(default_factory=_window)
    response_window: RollingWindow = field(default_factory=_window)
    last_difficulty: Optional[float] = None

    def to_dict(self) -> Dict[str, object]:
        return {
            "accuracy": self.accuracy_window.values_snapshot(),
            "response_ms": self.response_window.values_snapshot(),
            "last_difficulty": self.last_difficulty,
        }


@dataclass
class UserModel:
    subskills: Dict[str, SubskillState] = field(default_factory=dict)
    tests: Dict[str, TestState] = field(default_factory=dict)
    interaction_style: RunningStats = field(default_factory=RunningStats)
    fatigue: float = 0.0
    audit_events: Deque[Dict[str, object]] = field(default_factory=_audit_log)

    def ensure_subskill(self, key: str, prior_alpha: float, prior_beta: float) -> SubskillState:
        state = self.subskills.get(key)
        if state is None:
            state = SubskillState(posterior=PosteriorBeta(prior_alpha, prior_beta))
            self.subskills[key] = state
        return state

    def ensure_test(self, test_id: str) -> TestState:
        state = self.tests.get(test_id)
        if state is None:
            state = TestState()
            self.tests[test_id] = state
        return state

    def to_dict(self) -> Dict[str, object]:
        return {
            "subskills": {k: v.to_dict() for k, v in self.subskills.items()},
            "tests": {k: v.to_dict() for k, v in self.tests.items()},
            "interaction_mean_ms": self.interaction_style.mean,
            "fatigue": self.fatigue,
        }
