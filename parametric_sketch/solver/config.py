"""Configuration helpers for solver components."""

from __future__ import annotations

import copy
import threading
from dataclasses import dataclass, replace

DEFAULT_PRECISION = 1e-12
DEFAULT_MAX_ITERATIONS = 100
DEFAULT_FAST_PRECISION = 1e-6
DEFAULT_FAST_MAX_ITERATIONS = 8


@dataclass(frozen=True)
class SolverSettings:
    """Convergence knobs captured by a session when it compiles a data set.

    ``precision`` and ``max_iterations`` drive the precise mode used by
    ``evaluate``; ``fast_precision`` and ``fast_max_iterations`` drive
    ``evaluate_fast``. The fast tolerance never drops below ``precision``.
    """

    precision: float = DEFAULT_PRECISION
    max_iterations: int = DEFAULT_MAX_ITERATIONS
    fast_precision: float = DEFAULT_FAST_PRECISION
    fast_max_iterations: int = DEFAULT_FAST_MAX_ITERATIONS
    min_damping: float = 1.0 / 1024.0

    def __post_init__(self) -> None:
        if not self.precision > 0.0:
            raise ValueError(f"precision must be positive, got {self.precision}")
        if not self.fast_precision > 0.0:
            raise ValueError(f"fast_precision must be positive, got {self.fast_precision}")
        if self.max_iterations < 1 or self.fast_max_iterations < 1:
            raise ValueError("iteration caps must be at least 1")
        if not 0.0 < self.min_damping <= 1.0:
            raise ValueError(f"min_damping must lie in (0, 1], got {self.min_damping}")

    @property
    def fast_tolerance(self) -> float:
        return max(self.fast_precision, self.precision)

    def with_precision(self, precision: float) -> "SolverSettings":
        return replace(self, precision=precision)


_DEFAULT_SETTINGS = SolverSettings()
_LOCK = threading.Lock()


def get_default_settings() -> SolverSettings:
    with _LOCK:
        return copy.deepcopy(_DEFAULT_SETTINGS)


def set_default_settings(settings: SolverSettings) -> None:
    """Replace the process-wide defaults; sessions already initialized keep theirs."""

    global _DEFAULT_SETTINGS
    with _LOCK:
        _DEFAULT_SETTINGS = copy.deepcopy(settings)


def set_default_precision(precision: float) -> None:
    global _DEFAULT_SETTINGS
    with _LOCK:
        _DEFAULT_SETTINGS = _DEFAULT_SETTINGS.with_precision(precision)


__all__ = [
    "DEFAULT_FAST_MAX_ITERATIONS",
    "DEFAULT_FAST_PRECISION",
    "DEFAULT_MAX_ITERATIONS",
    "DEFAULT_PRECISION",
    "SolverSettings",
    "get_default_settings",
    "set_default_precision",
    "set_default_settings",
]
