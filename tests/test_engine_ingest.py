from __future__ import annotations

import threading

import pytest

from screen_core.config import AUDIT_EVENT_LIMIT, EngineConfig
from screen_core.engine import AdaptiveEngine
from screen_core.types import GLOBAL_SUBSKILL

from tests.conftest import build_two_item_test, make_record, make_stimulus


def test_unknown_user_starts_fresh(engine):
    assert engine.user_model("new") is None

    snap = engine.user_snapshot("new")
    assert snap.fatigue == 0.0
    assert snap.subskills == []
    model = engine.user_model("new")
    assert model is not None and model.subskills == {} and model.tests == {}


def test_single_miss_updates_posterior_windows_and_test_state(engine):
    easy, _ = build_two_item_test()
    snap = engine.ingest_observation(
        make_record(easy, correct=False, response_time_ms=1500.0, answer_changed=True)
    )

    assert [s.key for s in snap.subskills] == ["s"]
    assert snap.subskills[0].mean == pytest.approx(0.4)
    assert snap.subskills[0].variance == pytest.approx(0.04)
    assert snap.interaction_mean_ms == pytest.approx(1500.0)

    model = engine.user_model("u1")
    state = model.subskills["s"]
    assert (state.posterior.alpha, state.posterior.beta) == (2, 3)
    assert state.accuracy_window.values_snapshot() == [0]
    assert state.answer_change_rate.values_snapshot() == [1]
    assert state.last_timestamp == 1_700_000_000_000.0

    test_state = model.tests["t"]
    assert test_state.accuracy_window.values_snapshot() == [0]
    assert test_state.response_window.values_snapshot() == [1500.0]
    assert test_state.last_difficulty == 0.2


def test_untagged_stimulus_uses_global_subskill(engine):
    stim = make_stimulus("amsler", "grid", 1.0)
    snap = engine.ingest_observation(make_record(stim, correct=True))

    assert [s.key for s in snap.subskills] == [GLOBAL_SUBSKILL]
    assert snap.subskills[0].mean == pytest.approx(0.6)


def test_incorrect_answers_feed_the_shared_clusterer(engine):
    easy, hard = build_two_item_test()
    engine.ingest_observation(make_record(easy, correct=True))
    assert len(engine.clusterer) == 0

    engine.ingest_observation(make_record(hard, correct=False, user_id="u1"))
    engine.ingest_observation(make_record(hard, correct=False, user_id="u2"))
    top = engine.clusterer.top_mistake_buckets()
    assert len(top) == 1
    assert (top[0].subskill, top[0].difficulty_bucket, top[0].count) == ("s", 0, 2)


def test_replaying_a_record_counts_it_twice(engine):
    """Ingestion is not idempotent: the collaborator must de-duplicate."""

    easy, _ = build_two_item_test()
    record = make_record(easy, correct=True)
    engine.ingest_observation(record)
    engine.ingest_observation(record)

    post = engine.user_model("u1").subskills["s"].posterior
    assert (post.alpha, post.beta) == (4, 2)
    assert len(engine.audit_events("u1")) == 2


def test_steady_responses_converge_to_base_fatigue_fixed_point(engine):
    easy, _ = build_two_item_test()
    for _ in range(200):
        engine.ingest_observation(make_record(easy, correct=True, response_time_ms=1000.0))

    # identical responses are never slow: increment = 0.1 * gain
    fixed_point = (0.1 * 0.12) / (1 - 0.97)
    model = engine.user_model("u1")
    assert model.subskills["s"].fatigue_score == pytest.approx(fixed_point, abs=2e-3)
    assert model.fatigue == pytest.approx(fixed_point, abs=2e-3)
    assert model.fatigue <= fixed_point


def test_slow_responses_converge_to_high_fatigue_fixed_point(engine):
    easy, _ = build_two_item_test()
    fatigue_hist = []
    for n in range(200):
        # doubling response times stay above 1.3x the running mean
        engine.ingest_observation(make_record(easy, correct=True, response_time_ms=2.0 ** n))
        fatigue_hist.append(engine.user_model("u1").fatigue)

    fixed_point = (0.5 * 0.12) / (1 - 0.97)
    assert fatigue_hist[-1] == pytest.approx(fixed_point, abs=1e-2)
    assert all(f >= 0.0 for f in fatigue_hist)
    assert max(fatigue_hist) <= fixed_point + 1e-9, "fatigue must stay bounded"


def test_high_click_counts_count_as_fatigue_signal(engine):
    easy, _ = build_two_item_test()
    engine.ingest_observation(make_record(easy, correct=True, click_count=1))
    calm = engine.user_model("u1").fatigue

    engine.ingest_observation(make_record(easy, correct=True, click_count=10))
    expected = calm * 0.97 + 0.5 * 0.12
    assert engine.user_model("u1").fatigue == pytest.approx(expected)


def test_user_fatigue_tracks_the_hottest_subskill():
    engine = AdaptiveEngine(EngineConfig(fatigue_gain=1.0))
    hot = make_stimulus("t", "hot", 1.0, "a")
    cold = make_stimulus("t", "cold", 1.0, "b")

    for n in range(10):
        engine.ingest_observation(make_record(hot, correct=True, response_time_ms=2.0 ** n))
    hot_score = engine.user_model("u1").subskills["a"].fatigue_score
    engine.ingest_observation(make_record(cold, correct=True))

    model = engine.user_model("u1")
    assert model.subskills["b"].fatigue_score == pytest.approx(0.1)
    assert model.fatigue == pytest.approx(hot_score * 0.97), "user fatigue is not an average"


def test_users_are_isolated(engine):
    easy, _ = build_two_item_test()
    engine.ingest_observation(make_record(easy, correct=False, user_id="alice"))

    assert engine.user_snapshot("bob").subskills == []
    assert engine.audit_events("bob") == []


def test_audit_trail_records_before_and_after(engine):
    easy, _ = build_two_item_test()
    engine.ingest_observation(make_record(easy, correct=False, response_time_ms=900.0))

    (event,) = engine.audit_events("u1")
    assert event["t"].startswith("2023-11-14T22:13:20")
    assert event["stimulus_id"] == "easy"
    assert event["subskill"] == "s"
    assert event["correct"] == 0
    assert event["mean_before"] == pytest.approx(0.5)
    assert event["mean_after"] == pytest.approx(0.4)
    assert event["response_ms"] == 900.0
    assert engine.audit_events("nobody") == []
    assert engine.user_model("nobody") is None, "audit lookup must not create users"


def test_audit_trail_keeps_only_newest_events(engine):
    easy, _ = build_two_item_test()
    total = AUDIT_EVENT_LIMIT + 3
    for i in range(total):
        engine.ingest_observation(make_record(easy, correct=True, session_id=f"s{i}"))

    events = engine.audit_events("u1")
    assert len(events) == AUDIT_EVENT_LIMIT
    assert events[0]["session_id"] == "s3", "oldest events are dropped first"
    assert events[-1]["session_id"] == f"s{total - 1}"
    state = engine.user_model("u1").subskills["s"]
    assert state.posterior.alpha == 2 + total, "the cap only trims the audit trail"


def test_concurrent_ingestion_loses_no_updates(engine):
    stim = make_stimulus("t", "miss", 0.5, "s")
    users = [f"u{i}" for i in range(4)]

    def worker(user_id: str) -> None:
        for _ in range(500):
            engine.ingest_observation(make_record(stim, correct=False, user_id=user_id))

    threads = [threading.Thread(target=worker, args=(users[i % 4],)) for i in range(8)]
    for th in threads:
        th.start()
    for th in threads:
        th.join()

    (cluster,) = engine.clusterer.top_mistake_buckets(5)
    assert cluster.count == 4000, "shared clusterer must not drop increments"
    for user_id in users:
        posterior = engine.user_model(user_id).subskills["s"].posterior
        assert posterior.beta == 1002, f"{user_id} lost updates"
        assert posterior.alpha == 2
