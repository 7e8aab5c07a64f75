from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence

from .types import StimulusDefinition

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class TestEntry:
    __test__ = False

    stimuli: tuple[StimulusDefinition, ...]
    max_difficulty: float

    def to_dict(self) -> Dict[str, object]:
        return {"stimulus_count": len(self.stimuli), "max_difficulty": self.max_difficulty}


class TestRegistry:
    """Static stimulus catalog keyed by test id, in registration order."""

    __test__ = False

    def __init__(self) -> None:
        self._tests: Dict[str, TestEntry] = {}

    def register(self, test_id: str, stimuli: Sequence[StimulusDefinition]) -> Optional[TestEntry]:
        if not stimuli:
            log.debug("ignoring empty registration for test=%s", test_id)
            return None
        # floor of 1 keeps the normalisation away from a zero divisor
        max_difficulty = max([0.0] + [float(s.metadata.difficulty) for s in stimuli]) or 1.0
        entry = TestEntry(stimuli=tuple(stimuli), max_difficulty=max_difficulty)
        self._tests[test_id] = entry
        log.info("registered test=%s stimuli=%d max_difficulty=%.3f", test_id, len(stimuli), max_difficulty)
        return entry

    def get(self, test_id: str) -> Optional[TestEntry]:
        return self._tests.get(test_id)

    def test_ids(self) -> List[str]:
        return list(self._tests.keys())

    def entries(self, test_ids: Optional[Iterable[str]] = None) -> List[tuple[str, TestEntry]]:
        """Return ``(test_id, entry)`` pairs for known ids, skipping unknown ones."""
        ids = self.test_ids() if test_ids is None else list(test_ids)
        out: List[tuple[str, TestEntry]] = []
        for tid in ids:
            entry = self._tests.get(tid)
            if entry is not None:
                out.append((tid, entry))
        return out

    def __len__(self) -> int:
        return len(self._tests)
