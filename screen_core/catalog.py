from __future__ import annotations
import json, importlib.resources as ir
from typing import Any, Dict, List, Mapping
from .types import StimulusDefinition, StimulusMetadata
from .engine import AdaptiveEngine
def stimulus_from_dict(test_id: str, raw: Mapping[str, Any]) -> StimulusDefinition:
    meta = StimulusMetadata(
        difficulty=float(raw["difficulty"]),
        subskill=raw.get("subskill") or None,
        presentation_params=dict(raw.get("presentation_params") or {}),
    )
    return StimulusDefinition(test_id=test_id, stimulus_id=str(raw["stimulus_id"]), metadata=meta)
def load_catalog() -> Dict[str, List[StimulusDefinition]]:
    data = ir.files(__package__).joinpath("data/catalog.json").read_text(encoding="utf-8")
    raw = json.loads(data)
    return {tid: [stimulus_from_dict(tid, r) for r in rows] for tid, rows in raw.items()}
def register_catalog(engine: AdaptiveEngine) -> List[str]:
    catalog = load_catalog()
    for tid, stimuli in catalog.items():
        engine.register_test(tid, stimuli)
    return list(catalog)
