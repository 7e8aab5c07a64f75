# screen_core/engine.py
from __future__ import annotations
from typing import Dict, Iterable, List, Optional, Sequence
from datetime import datetime, timezone
import logging, threading

from .beta import beta_update
from .clusters import ErrorClusterer
from .config import (
    EngineConfig,
    SLOW_RATIO,
    FATIGUE_HIGH,
    FATIGUE_BASE,
    DEBUG_TRACE,
    TRACE_FIELDS,
)
from .policy import SelectionPolicy, confidence_vector, uncertainty_score
from .registry import TestEntry, TestRegistry
from .types import (
    NextAction,
    ObservationRecord,
    Response,
    StimulusDefinition,
    SubskillSnapshot,
    UserSnapshot,
)
from .user_model import SubskillState, UserModel


log = logging.getLogger(__name__)


def _emit_trace(**values: object) -> None:
    if not DEBUG_TRACE:
        return
    ordered = []
    for key in TRACE_FIELDS:
        if key in values:
            ordered.append(f"{key}={values[key]}")
    if ordered:
        log.info("trace %s", " ".join(str(val) for val in ordered))


def _iso_from_ms(timestamp_ms: float) -> str:
    try:
        return datetime.fromtimestamp(float(timestamp_ms) / 1000.0, tz=timezone.utc).isoformat()
    except (OverflowError, OSError, ValueError):
        return ""


class AdaptiveEngine:
    """Online item-selection engine for short diagnostic screening sessions.

    Owns every piece of mutable state: the per-user models, the test registry
    and the error clusterer shared by all users. Calls for the same user are
    serialised with a per-user lock; the clusterer guards itself. Registry
    writes and the entry snapshot taken for each selection share
    ``_registry_lock``, so a selection never sees a half-applied registration.
    """

    def __init__(self, config: Optional[EngineConfig] = None):
        self.config = config or EngineConfig()
        self.registry = TestRegistry()
        self.clusterer = ErrorClusterer(self.config.difficulty_bucket_size)
        self.policy = SelectionPolicy(self.config)
        self._users: Dict[str, UserModel] = {}
        self._user_locks: Dict[str, threading.Lock] = {}
        self._users_lock = threading.Lock()
        self._registry_lock = threading.Lock()

    # ---- registration ----
    def register_test(self, test_id: str, stimuli: Sequence[StimulusDefinition]) -> Optional[TestEntry]:
        with self._registry_lock:
            return self.registry.register(test_id, list(stimuli))

    def entries(self, test_ids: Optional[Iterable[str]] = None) -> List[tuple[str, TestEntry]]:
        with self._registry_lock:
            return self.registry.entries(test_ids)

    # ---- per-user store ----
    def _ensure_user(self, user_id: str) -> tuple[UserModel, threading.Lock]:
        with self._users_lock:
            user = self._users.get(user_id)
            if user is None:
                user = UserModel()
                self._users[user_id] = user
                self._user_locks[user_id] = threading.Lock()
                log.debug("created user model user=%s", user_id)
            return user, self._user_locks[user_id]

    def user_model(self, user_id: str) -> Optional[UserModel]:
        return self._users.get(user_id)

    # ---- ingestion ----
    def _fatigue_delta(self, state: SubskillState, response: Response) -> float:
        slow = response.response_time_ms > (state.time_stats.mean or 1) * SLOW_RATIO
        high_clicks = response.click_count > (state.click_stats.mean or 1) * SLOW_RATIO
        base = FATIGUE_HIGH if (slow or high_clicks) else FATIGUE_BASE
        return base * self.config.fatigue_gain

    def ingest_observation(self, record: ObservationRecord) -> UserSnapshot:
        """Fold one response into the user's model and return a fresh snapshot.

        Every call counts as a new response; replaying a record counts it twice.
        """

        user, lock = self._ensure_user(record.user_id)
        meta = record.stimulus_metadata
        resp = record.response
        key = meta.subskill_key
        correct = 1 if resp.correct else 0

        with lock:
            state = user.ensure_subskill(key, self.config.prior_alpha, self.config.prior_beta)
            test_state = user.ensure_test(record.test_id)
            mean_before = state.mean

            beta_update(state.posterior, bool(resp.correct))

            state.time_stats.add(resp.response_time_ms)
            state.click_stats.add(resp.click_count)
            state.answer_change_rate.push(1 if resp.answer_changed else 0)
            state.accuracy_window.push(correct)
            test_state.accuracy_window.push(correct)
            test_state.response_window.push(resp.response_time_ms)
            test_state.last_difficulty = meta.difficulty

            increment = self._fatigue_delta(state, resp)
            state.fatigue_score = state.fatigue_score * self.config.fatigue_decay + increment
            user.fatigue = max(user.fatigue * self.config.fatigue_decay, state.fatigue_score)
            state.last_timestamp = record.timestamp
            user.interaction_style.add(resp.response_time_ms)

            if not resp.correct:
                self.clusterer.add(key, meta.difficulty, resp.response_time_ms)

            user.audit_events.append({
                "t": _iso_from_ms(record.timestamp),
                "session_id": record.session_id,
                "test_id": record.test_id,
                "stimulus_id": record.stimulus_id,
                "subskill": key,
                "difficulty": float(meta.difficulty),
                "correct": correct,
                "response_ms": float(resp.response_time_ms),
                "mean_before": float(mean_before),
                "mean_after": float(state.mean),
                "variance_after": float(state.variance),
                "fatigue_after": float(user.fatigue),
            })

            log.debug(
                "ingest user=%s test=%s stimulus=%s subskill=%s correct=%d mean=%.4f->%.4f "
                "fatigue_inc=%.4f subskill_fatigue=%.4f fatigue=%.4f",
                record.user_id,
                record.test_id,
                record.stimulus_id,
                key,
                correct,
                mean_before,
                state.mean,
                increment,
                state.fatigue_score,
                user.fatigue,
            )
            _emit_trace(
                user=record.user_id,
                test=record.test_id,
                stimulus=record.stimulus_id,
                subskill=key,
                correct=correct,
                mean_before=round(mean_before, 4),
                mean_after=round(state.mean, 4),
                fatigue=round(user.fatigue, 4),
            )
            return self._snapshot(user)

    # ---- decisions ----
    def select_next_action(self, user_id: str, allowed_tests: Optional[Iterable[str]] = None) -> NextAction:
        user, lock = self._ensure_user(user_id)
        entries = self.entries(allowed_tests)

        with lock:
            confidence = confidence_vector(user)
            uncertainty = uncertainty_score(user)
            status = self.policy.session_status(user.fatigue, uncertainty)
            target = self.policy.target_subskill(user)
            candidates = self.policy.candidate_set(entries, self.clusterer, target)
            nxt = self.policy.rank(user, candidates, target)
            outcome = self.policy.screening_outcome(user.fatigue, uncertainty, confidence)

        log.debug(
            "select user=%s target=%s candidates=%d next=%s uncertainty=%.4f status=%s outcome=%s",
            user_id,
            target,
            len(candidates),
            nxt.stimulus_id if nxt else None,
            uncertainty,
            status,
            outcome,
        )
        _emit_trace(user=user_id, subskill=target, status=status, outcome=outcome,
                    stimulus=nxt.stimulus_id if nxt else None)
        return NextAction(
            next_action=nxt,
            confidence_vector=confidence,
            uncertainty_score=uncertainty,
            session_status=status,
            screening_outcome=outcome,
        )

    # ---- read-only views ----
    def _snapshot(self, user: UserModel) -> UserSnapshot:
        return UserSnapshot(
            subskills=[
                SubskillSnapshot(key=k, mean=s.mean, variance=s.variance, fatigue=s.fatigue_score)
                for k, s in user.subskills.items()
            ],
            fatigue=user.fatigue,
            interaction_mean_ms=user.interaction_style.mean,
        )

    def user_snapshot(self, user_id: str) -> UserSnapshot:
        user, lock = self._ensure_user(user_id)
        with lock:
            return self._snapshot(user)

    def audit_events(self, user_id: str) -> List[Dict[str, object]]:
        with self._users_lock:
            user = self._users.get(user_id)
            lock = self._user_locks.get(user_id)
        if user is None or lock is None:
            return []
        with lock:
            return [dict(evt) for evt in user.audit_events]
