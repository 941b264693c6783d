"""Core data structures for the solver pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, NamedTuple, Optional, Sequence, Tuple

import numpy as np

from ..constraints import Constraint, EquationBlock
from ..errors import SketchError
from ..geometry import Curve, Point2D
from ..references import ValueReference
from .config import SolverSettings


class DragRequest(NamedTuple):
    """A dragged curve, the point the user holds, and optionally the grip to hold it by."""

    curve_id: int
    point: Point2D
    ref: Optional[ValueReference] = None


@dataclass
class ResidualSpec:
    """Rows of the residual vector produced by one equation block."""

    key: str
    kind: str
    block: EquationBlock
    rows: slice
    columns: Tuple[slice, ...]
    source: Optional[Constraint] = None

    @property
    def size(self) -> int:
        return self.block.size


@dataclass
class DragSpec:
    """Compiled drag: either two driven parameters or a pinning equation pair."""

    index: int
    curve_id: int
    ref: ValueReference
    target: np.ndarray
    driven: Optional[Tuple[int, int]] = None

    @property
    def is_direct(self) -> bool:
        return self.driven is not None

    def request(self) -> DragRequest:
        return DragRequest(self.curve_id, (float(self.target[0]), float(self.target[1])), self.ref)


@dataclass(repr=False)
class CompiledSystem:
    """Flattened parameter vector plus residual and Jacobian callbacks.

    ``x_initial`` holds every curve parameter in data set order. Only the
    entries listed in ``free_index`` are handed to the numeric backend; the
    rest are driven by drag targets and re-applied by :meth:`full_vector`.
    """

    curves: List[Curve]
    offsets: Dict[int, slice]
    x_initial: np.ndarray
    free_index: np.ndarray
    residuals: List[ResidualSpec]
    drags: List[DragSpec]
    equation_count: int
    settings: SolverSettings

    def __repr__(self) -> str:
        return (
            f"CompiledSystem(curves={len(self.curves)}, parameters={self.parameter_count}, "
            f"free={self.free_count}, equations={self.equation_count}, drags={len(self.drags)})"
        )

    @property
    def parameter_count(self) -> int:
        return int(self.x_initial.size)

    @property
    def free_count(self) -> int:
        return int(self.free_index.size)

    @property
    def drag_targets(self) -> List[Point2D]:
        return [(float(d.target[0]), float(d.target[1])) for d in self.drags]

    def drag_requests(self) -> List[DragRequest]:
        return [drag.request() for drag in self.drags]

    def set_drag_target(self, index: int, point: Sequence[float]) -> None:
        if not 0 <= index < len(self.drags):
            raise IndexError(f"drag index {index} out of range ({len(self.drags)} drag(s))")
        target = np.asarray(point, dtype=float)
        if target.shape != (2,) or not np.all(np.isfinite(target)):
            raise ValueError(f"drag target must be a finite 2-D point, got {point!r}")
        self.drags[index].target[:] = target

    # ------------------------------------------------------------------
    # Vector plumbing

    def full_vector(self, x_free: np.ndarray, base: Optional[np.ndarray] = None) -> np.ndarray:
        full = np.array(self.x_initial if base is None else base, dtype=float, copy=True)
        full[self.free_index] = x_free
        for drag in self.drags:
            if drag.driven is not None:
                full[drag.driven[0]] = drag.target[0]
                full[drag.driven[1]] = drag.target[1]
        return full

    def free_vector(self, x_full: np.ndarray) -> np.ndarray:
        return np.array(x_full, dtype=float)[self.free_index]

    def initial_free(self) -> np.ndarray:
        return self.free_vector(self.x_initial)

    def _curve_params(self, full: np.ndarray, spec: ResidualSpec) -> List[np.ndarray]:
        return [full[columns] for columns in spec.columns]

    # ------------------------------------------------------------------
    # Callbacks

    def residual(self, x_free: np.ndarray) -> np.ndarray:
        full = self.full_vector(x_free)
        values = np.zeros(self.equation_count, dtype=float)
        with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
            for spec in self.residuals:
                block_values, _ = spec.block.evaluate(*self._curve_params(full, spec))
                values[spec.rows] = block_values
        return values

    def jacobian(self, x_free: np.ndarray) -> np.ndarray:
        full = self.full_vector(x_free)
        jac = np.zeros((self.equation_count, self.parameter_count), dtype=float)
        with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
            for spec in self.residuals:
                _, blocks = spec.block.evaluate(*self._curve_params(full, spec))
                # += because both bindings may address the same curve
                for block, columns in zip(blocks, spec.columns):
                    jac[spec.rows, columns] += block
        return jac[:, self.free_index]

    def residual_breakdown(self, x_free: Optional[np.ndarray] = None) -> List[Dict[str, object]]:
        """Per-block residual report at ``x_free`` (the initial guess by default)."""

        values = self.residual(self.initial_free() if x_free is None else x_free)
        breakdown: List[Dict[str, object]] = []
        for spec in self.residuals:
            block_values = values[spec.rows]
            breakdown.append(
                {
                    "key": spec.key,
                    "kind": spec.kind,
                    "values": block_values.tolist(),
                    "max_abs": float(np.max(np.abs(block_values))) if block_values.size else 0.0,
                    "source_kind": spec.source.kind if spec.source else None,
                }
            )
        return breakdown

    # ------------------------------------------------------------------
    # Results

    def curves_from(self, x_full: np.ndarray) -> List[Curve]:
        return [curve.with_parameters(x_full[self.offsets[curve.id]]) for curve in self.curves]

    def degeneracies(self, x_full: np.ndarray) -> List[str]:
        problems: List[str] = []
        for curve in self.curves_from(x_full):
            problem = curve.degeneracy()
            if problem is not None:
                problems.append(problem)
        return problems


@dataclass
class SolveResult:
    """Backend result; ``least_squares`` marks a nonzero minimum of an inconsistent system."""

    x: np.ndarray
    converged: bool
    iterations: int
    max_residual: float
    message: str = ""
    least_squares: bool = False


class SessionState(str, Enum):
    UNINITIALIZED = "uninitialized"
    COMPILED = "compiled"
    SOLVED = "solved"
    CLEARED = "cleared"


@dataclass
class Outcome:
    """Result of a session lifecycle call; truthy on success."""

    success: bool
    state: SessionState
    error: Optional[SketchError] = None
    iterations: int = 0
    max_residual: float = 0.0
    warnings: List[str] = field(default_factory=list)

    def __bool__(self) -> bool:
        return self.success

    def raise_for_error(self) -> "Outcome":
        if self.error is not None:
            raise self.error
        return self


__all__ = [
    "CompiledSystem",
    "DragRequest",
    "DragSpec",
    "Outcome",
    "ResidualSpec",
    "SessionState",
    "SolveResult",
]
