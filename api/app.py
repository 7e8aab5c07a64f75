from __future__ import annotations
from fastapi import FastAPI, HTTPException, Query, Response
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field
import logging, os, time, typing as t

# ---- Engine imports ----
from screen_core.engine import AdaptiveEngine
from screen_core.catalog import register_catalog, stimulus_from_dict
from screen_core.config import load_config, AUDIT_EXPORT_ENABLED
from screen_core.audit_export import to_json as audit_to_json, to_csv as audit_to_csv
from screen_core.types import ObservationRecord, Response as StimulusResponse, StimulusMetadata

log = logging.getLogger(__name__)

ALLOWED_ORIGINS = [
    o.strip()
    for o in os.getenv("ALLOWED_ORIGINS", "http://localhost:3000,http://localhost:5173").split(",")
    if o.strip()
]

# ---- Schemas ----
class MetadataIn(BaseModel):
    difficulty: float = Field(gt=0)
    subskill: str | None = None
    presentation_params: dict[str, t.Any] = Field(default_factory=dict)

class StimulusIn(BaseModel):
    stimulus_id: str
    difficulty: float = Field(gt=0)
    subskill: str | None = None
    presentation_params: dict[str, t.Any] = Field(default_factory=dict)

class RegisterReq(BaseModel):
    stimuli: list[StimulusIn] = Field(default_factory=list)

class ResponseIn(BaseModel):
    correct: bool
    response_time_ms: float = Field(ge=0)
    click_count: int = Field(default=0, ge=0)
    answer_changed: bool = False

class ObservationReq(BaseModel):
    user_id: str
    session_id: str
    test_id: str
    stimulus_id: str
    stimulus_metadata: MetadataIn
    response: ResponseIn
    timestamp: float | None = None  # epoch ms; server time when omitted

# ---- Helpers ----
def _to_record(req: ObservationReq) -> ObservationRecord:
    meta = StimulusMetadata(
        difficulty=req.stimulus_metadata.difficulty,
        subskill=req.stimulus_metadata.subskill or None,
        presentation_params=dict(req.stimulus_metadata.presentation_params),
    )
    resp = StimulusResponse(
        correct=req.response.correct,
        response_time_ms=req.response.response_time_ms,
        click_count=req.response.click_count,
        answer_changed=req.response.answer_changed,
    )
    ts = req.timestamp if req.timestamp is not None else time.time() * 1000.0
    return ObservationRecord(
        user_id=req.user_id,
        session_id=req.session_id,
        test_id=req.test_id,
        stimulus_id=req.stimulus_id,
        stimulus_metadata=meta,
        response=resp,
        timestamp=ts,
    )


def _default_engine() -> AdaptiveEngine:
    engine = AdaptiveEngine(load_config())
    register_catalog(engine)
    return engine


def create_app(engine: AdaptiveEngine | None = None) -> FastAPI:
    """Build the HTTP adapter around a single engine instance."""

    eng = engine if engine is not None else _default_engine()
    app = FastAPI(title="Screening Engine API")
    app.state.engine = eng
    app.add_middleware(
        CORSMiddleware,
        allow_origins=ALLOWED_ORIGINS,
        allow_methods=["*"],
        allow_headers=["*"],
        allow_credentials=False,
    )

    # ---- Health ----
    @app.get("/")
    def root():
        return {"status": "ok", "service": "screening-engine-api"}

    @app.get("/health")
    def health():
        return {
            "status": "ok",
            "tests_registered": len(eng.registry),
            "config": eng.config.to_dict(),
            "audit_export_enabled": AUDIT_EXPORT_ENABLED,
        }

    # ---- Catalog ----
    @app.get("/tests")
    def list_tests():
        out = []
        for tid, entry in eng.entries():
            item = {"test_id": tid}
            item.update(entry.to_dict())
            out.append(item)
        return {"tests": out}

    @app.get("/tests/{test_id}")
    def get_test(test_id: str):
        entry = eng.registry.get(test_id)
        if entry is None:
            raise HTTPException(404, "test not found")
        return {
            "test_id": test_id,
            "max_difficulty": entry.max_difficulty,
            "stimuli": [
                {
                    "stimulus_id": s.stimulus_id,
                    "difficulty": s.metadata.difficulty,
                    "subskill": s.metadata.subskill,
                    "presentation_params": s.metadata.presentation_params,
                }
                for s in entry.stimuli
            ],
        }

    @app.post("/tests/{test_id}")
    def register_test(test_id: str, req: RegisterReq):
        stimuli = [stimulus_from_dict(test_id, s.model_dump()) for s in req.stimuli]
        entry = eng.register_test(test_id, stimuli)
        if entry is None:
            log.info("register_test test=%s ignored: no stimuli", test_id)
            return {"ok": True, "registered": False, "test_id": test_id}
        return {"ok": True, "registered": True, "test_id": test_id, **entry.to_dict()}

    # ---- Observation / decision loop ----
    @app.post("/observations")
    def ingest(req: ObservationReq):
        snapshot = eng.ingest_observation(_to_record(req))
        return snapshot.to_dict()

    @app.get("/users/{user_id}/next")
    def next_action(user_id: str, allowed_tests: list[str] | None = Query(None)):
        decision = eng.select_next_action(user_id, allowed_tests)
        return decision.to_dict()

    @app.get("/users/{user_id}/snapshot")
    def snapshot(user_id: str):
        return eng.user_snapshot(user_id).to_dict()

    # ---- Audit ----
    @app.get("/users/{user_id}/audit.json")
    def audit_json(user_id: str):
        if not AUDIT_EXPORT_ENABLED:
            raise HTTPException(404, "audit export disabled")
        return audit_to_json(eng.audit_events(user_id), user_id=user_id)

    @app.get("/users/{user_id}/audit.csv")
    def audit_csv(user_id: str):
        if not AUDIT_EXPORT_ENABLED:
            raise HTTPException(404, "audit export disabled")
        body = audit_to_csv(eng.audit_events(user_id))
        return Response(
            content=body,
            media_type="text/csv",
            headers={"Content-Disposition": f"attachment; filename=\"{user_id}_audit.csv\""},
        )

    return app


app = create_app()
