"""Compilation and numeric solving of sketch data sets."""

from __future__ import annotations

from .backends import (
    NewtonSolver,
    ScipyLeastSquaresSolver,
    SolverBackend,
    SolverFactory,
    get_backend_factory,
)
from .compiler import compile_dataset, pair_drags
from .config import (
    DEFAULT_PRECISION,
    SolverSettings,
    get_default_settings,
    set_default_precision,
    set_default_settings,
)
from .model import (
    CompiledSystem,
    DragRequest,
    DragSpec,
    Outcome,
    ResidualSpec,
    SessionState,
    SolveResult,
)
from .session import ParametricSession

__all__ = [
    "CompiledSystem",
    "DEFAULT_PRECISION",
    "DragRequest",
    "DragSpec",
    "NewtonSolver",
    "Outcome",
    "ParametricSession",
    "ResidualSpec",
    "ScipyLeastSquaresSolver",
    "SessionState",
    "SolveResult",
    "SolverBackend",
    "SolverFactory",
    "SolverSettings",
    "compile_dataset",
    "get_backend_factory",
    "get_default_settings",
    "pair_drags",
    "set_default_precision",
    "set_default_settings",
]
