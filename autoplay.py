# autoplay.py
from __future__ import annotations
import argparse, json, logging, random, time, uuid
from typing import Dict, List, Optional
from screen_core.catalog import load_catalog, register_catalog
from screen_core.config import load_config
from screen_core.engine import AdaptiveEngine
from screen_core.types import NextAction, ObservationRecord, Response, StimulusDefinition

# per-subskill probability of a correct answer; "*" covers untagged or unlisted sub-skills
PROFILES: Dict[str, Dict[str, float]] = {
    "normal": {"*": 0.92},
    "red_green_deficit": {
        "red_green": 0.2, "protanopia": 0.25, "deutanopia": 0.3,
        "diagnostic_red_green": 0.2, "*": 0.9,
    },
    "fatigued": {"*": 0.6},
}

def _p_correct(profile: str, subskill: Optional[str]) -> float:
    table = PROFILES[profile]
    return table.get(subskill or "", table["*"])

def _response_for(stim: StimulusDefinition, profile: str, step: int, rng: random.Random) -> Response:
    correct = rng.random() < _p_correct(profile, stim.metadata.subskill)
    rt = rng.gauss(2500.0, 400.0)
    clicks = 1
    if profile == "fatigued":
        # responses slow down and get clickier as the session drags on
        rt *= 1.0 + 0.15 * step
        clicks += step // 3
    return Response(correct=correct, response_time_ms=max(rt, 200.0), click_count=clicks,
                    answer_changed=rng.random() < 0.1)

def run(profile: str, steps: int, seed: Optional[int], tests: Optional[List[str]]) -> NextAction:
    rng = random.Random(seed if seed is not None else 1234)
    engine = AdaptiveEngine(load_config()); register_catalog(engine)
    by_id = {(s.test_id, s.stimulus_id): s for rows in load_catalog().values() for s in rows}
    user_id = f"autoplay-{profile}"; session_id = str(uuid.uuid4())

    decision = engine.select_next_action(user_id, tests)
    answered = 0
    for step in range(steps):
        nxt = decision.next_action
        if nxt is None or decision.session_status == "stop": break
        stim = by_id[(nxt.test_id, nxt.stimulus_id)]
        engine.ingest_observation(ObservationRecord(
            user_id=user_id, session_id=session_id, test_id=nxt.test_id, stimulus_id=nxt.stimulus_id,
            stimulus_metadata=stim.metadata, response=_response_for(stim, profile, step, rng),
            timestamp=time.time() * 1000.0,
        ))
        answered += 1
        decision = engine.select_next_action(user_id, tests)
    if answered <= 0: raise RuntimeError("Driver answered 0 stimuli.")

    summary = {"profile": profile, "answered": answered, **decision.to_dict(),
               "snapshot": engine.user_snapshot(user_id).to_dict()}
    print(json.dumps(summary, indent=2))
    return decision

def main():
    ap = argparse.ArgumentParser()
    ap.add_argument("--profile", choices=sorted(PROFILES), default="normal")
    ap.add_argument("--steps", type=int, default=40)
    ap.add_argument("--seed", type=int, default=1337)
    ap.add_argument("--tests", nargs="*", default=None, help="restrict selection to these test ids")
    ap.add_argument("--verbose", action="store_true")
    a = ap.parse_args()
    logging.basicConfig(level=logging.DEBUG if a.verbose else logging.INFO, format="[%(levelname)s] %(message)s")
    run(a.profile, a.steps, a.seed, a.tests)

if __name__ == "__main__":
    main()
