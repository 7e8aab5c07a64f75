from __future__ import annotations
import os, json, math, pathlib
from dataclasses import dataclass, fields
from typing import Any, Dict


class ConfigError(ValueError):
    """Raised when an engine configuration is rejected at construction time."""


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw.strip())
    except ValueError:
        return default


WINDOW_CAPACITY: int = 20
# user models live for the whole process; only the newest audit events are kept
AUDIT_EVENT_LIMIT: int = 500

SLOW_RATIO: float = 1.3
FATIGUE_HIGH: float = 0.5
FATIGUE_BASE: float = 0.1

TARGET_FATIGUE_WEIGHT: float = 0.2
FATIGUE_PENALTY_WEIGHT: float = 0.2

MIXED_HIGH: float = 0.8
MIXED_LOW: float = 0.5
PROFESSIONAL_CHECK_BELOW: float = 0.4

HOT_CLUSTER_LIMIT: int = 3

# maximally uncertain by convention when nothing has been observed
EMPTY_UNCERTAINTY: float = 1.0

DEBUG_TRACE: bool = False
TRACE_FIELDS: tuple[str, ...] = (
    "user",
    "test",
    "stimulus",
    "subskill",
    "correct",
    "mean_before",
    "mean_after",
    "fatigue",
    "status",
    "outcome",
)
AUDIT_EXPORT_ENABLED: bool = True
# // env overrides for staging/ops
DEBUG_TRACE = _env_bool("DEBUG_TRACE", False)
AUDIT_EXPORT_ENABLED = _env_bool("AUDIT_EXPORT_ENABLED", AUDIT_EXPORT_ENABLED)


@dataclass(frozen=True)
class EngineConfig:
    prior_alpha: float = 2.0
    prior_beta: float = 2.0
    fatigue_decay: float = 0.97
    fatigue_gain: float = 0.12
    uncertainty_stop: float = 0.04
    fatigue_stop: float = 0.7
    exploration_weight: float = 0.5
    difficulty_bucket_size: float = 1.0

    def __post_init__(self) -> None:
        for f in fields(self):
            val = getattr(self, f.name)
            if isinstance(val, bool) or not isinstance(val, (int, float)):
                raise ConfigError(f"{f.name} must be a number, got {val!r}")
            if not math.isfinite(val):
                raise ConfigError(f"{f.name} must be finite, got {val!r}")
        if self.prior_alpha <= 0 or self.prior_beta <= 0:
            raise ConfigError(
                f"priors must be positive (prior_alpha={self.prior_alpha}, prior_beta={self.prior_beta})"
            )
        if not 0.0 < self.fatigue_decay <= 1.0:
            raise ConfigError(f"fatigue_decay must lie in (0, 1], got {self.fatigue_decay}")
        if self.fatigue_gain < 0:
            raise ConfigError(f"fatigue_gain must be non-negative, got {self.fatigue_gain}")
        if self.uncertainty_stop <= 0:
            raise ConfigError(f"uncertainty_stop must be positive, got {self.uncertainty_stop}")
        if self.fatigue_stop <= 0:
            raise ConfigError(f"fatigue_stop must be positive, got {self.fatigue_stop}")
        if self.exploration_weight < 0:
            raise ConfigError(f"exploration_weight must be non-negative, got {self.exploration_weight}")
        if self.difficulty_bucket_size <= 0:
            raise ConfigError(
                f"difficulty_bucket_size must be positive, got {self.difficulty_bucket_size}"
            )

    def to_dict(self) -> Dict[str, float]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


_ENV_KEYS: Dict[str, str] = {
    "prior_alpha": "SCREEN_PRIOR_ALPHA",
    "prior_beta": "SCREEN_PRIOR_BETA",
    "fatigue_decay": "SCREEN_FATIGUE_DECAY",
    "fatigue_gain": "SCREEN_FATIGUE_GAIN",
    "uncertainty_stop": "SCREEN_UNCERTAINTY_STOP",
    "fatigue_stop": "SCREEN_FATIGUE_STOP",
    "exploration_weight": "SCREEN_EXPLORATION_WEIGHT",
    "difficulty_bucket_size": "SCREEN_BUCKET_SIZE",
}


def _read_config_file(path: pathlib.Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return {}
    return raw if isinstance(raw, dict) else {}


def load_config(path: str | os.PathLike[str] = "config.json") -> EngineConfig:
    """Build the engine configuration from ``config.json`` plus ``SCREEN_*`` env overrides."""
    base = EngineConfig()
    file_cfg = _read_config_file(pathlib.Path(path))
    values: Dict[str, Any] = {}
    for name, env_key in _ENV_KEYS.items():
        default = file_cfg.get(name, getattr(base, name))
        values[name] = _env_float(env_key, default)
    return EngineConfig(**values)
