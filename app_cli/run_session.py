from __future__ import annotations
import logging, os, time, uuid
from screen_core.catalog import load_catalog, register_catalog
from screen_core.config import load_config
from screen_core.engine import AdaptiveEngine
from screen_core.types import ObservationRecord, Response
def ask(prompt: str) -> str:
    while True:
        v = input(prompt + " [y/n] ").strip().lower()
        if v in ("y", "n"): return v
        print("Enter y or n.")
def main():
    logging.basicConfig(level=os.getenv("LOG_LEVEL", "WARNING"), format="[%(levelname)s] %(message)s")
    print("Adaptive screening session")
    engine = AdaptiveEngine(load_config()); register_catalog(engine)
    stimuli = {(s.test_id, s.stimulus_id): s for rows in load_catalog().values() for s in rows}
    user_id = os.getenv("USER_ID", "cli-user"); session_id = str(uuid.uuid4())
    decision = engine.select_next_action(user_id)
    while decision.next_action is not None:
        nxt = decision.next_action
        stim = stimuli[(nxt.test_id, nxt.stimulus_id)]
        t0 = time.perf_counter()
        v = ask(f"{nxt.test_id}/{nxt.stimulus_id} (difficulty {nxt.difficulty}): did you answer correctly?")
        rt_ms = (time.perf_counter() - t0) * 1000.0
        engine.ingest_observation(ObservationRecord(
            user_id=user_id, session_id=session_id, test_id=nxt.test_id, stimulus_id=nxt.stimulus_id,
            stimulus_metadata=stim.metadata, response=Response(correct=(v == "y"), response_time_ms=rt_ms, click_count=1),
            timestamp=time.time() * 1000.0,
        ))
        decision = engine.select_next_action(user_id)
        conf = ", ".join(f"{k}={m:.2f}" for k, m in decision.confidence_vector.items())
        print(f"  status={decision.session_status} uncertainty={decision.uncertainty_score:.4f} {conf}")
        if decision.session_status == "stop": break
        if decision.session_status == "inconclusive" and ask("Estimate has converged. Continue anyway?") == "n": break
    print(f"Done. Screening outcome: {decision.screening_outcome}")
if __name__ == "__main__": main()
