from __future__ import annotations

import math
import threading
from dataclasses import dataclass
from typing import Dict, List, Tuple


@dataclass
class ClusterStats:
    subskill: str
    difficulty_bucket: int
    count: int
    avg_response_ms: float


class ErrorClusterer:
    """Buckets incorrect responses by (sub-skill, difficulty bucket).

    Shared across every user of an engine. Increments are guarded by a lock so
    concurrent ingestion for different users cannot lose counts.
    """

    def __init__(self, bucket_size: float = 1.0):
        self.bucket_size = bucket_size
        self._clusters: Dict[Tuple[str, int], ClusterStats] = {}
        self._lock = threading.Lock()

    def bucket_for(self, difficulty: float) -> int:
        return int(math.floor(difficulty / self.bucket_size))

    def add(self, subskill: str, difficulty: float, response_ms: float) -> ClusterStats:
        bucket = self.bucket_for(difficulty)
        key = (subskill, bucket)
        with self._lock:
            existing = self._clusters.get(key)
            if existing is None:
                existing = ClusterStats(subskill, bucket, count=1, avg_response_ms=float(response_ms))
                self._clusters[key] = existing
                return existing
            existing.count += 1
            existing.avg_response_ms += (response_ms - existing.avg_response_ms) / existing.count
            return existing

    def top_mistake_buckets(self, limit: int = 3) -> List[ClusterStats]:
        # sorted() is stable: equal counts keep first-insertion order
        with self._lock:
            ranked = sorted(self._clusters.values(), key=lambda c: c.count, reverse=True)
            return [ClusterStats(**vars(c)) for c in ranked[: max(limit, 0)]]

    def __len__(self) -> int:
        return len(self._clusters)
