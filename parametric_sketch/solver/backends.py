"""Numeric backends solving ``R(x) = 0`` from residual and Jacobian callbacks.

Backends know nothing about curves or constraints: they receive two callables
and an initial guess and return a :class:`SolveResult`. A session obtains its
backend from a factory called with the session's :class:`SolverSettings`, so
any callable with that shape can stand in for the built-in ones.
"""

from __future__ import annotations

import logging
import math
from dataclasses import replace
from typing import Callable, Dict, Optional, Protocol

import numpy as np
from scipy.optimize import least_squares

from ..logging_utils import apply_debug_logging
from .config import SolverSettings, get_default_settings
from .model import SolveResult

logger = logging.getLogger(__name__)

ResidualFunc = Callable[[np.ndarray], np.ndarray]
JacobianFunc = Callable[[np.ndarray], np.ndarray]

_EPS = float(np.finfo(float).eps)


class SolverBackend(Protocol):
    def solve(
        self,
        residual: ResidualFunc,
        jacobian: JacobianFunc,
        x0: np.ndarray,
        *,
        tolerance: float,
        max_iterations: int,
    ) -> SolveResult: ...


SolverFactory = Callable[[SolverSettings], SolverBackend]


def _max_abs(values: np.ndarray) -> float:
    return float(np.max(np.abs(values))) if values.size else 0.0


def _finite(values: np.ndarray) -> bool:
    return bool(np.all(np.isfinite(values)))


def noise_floor(x: np.ndarray) -> float:
    """Residual level below which rounding dominates for parameters of this magnitude.

    Constraint equations multiply coordinates pairwise, so the floor scales with
    the square of the largest parameter.
    """

    scale = max(1.0, _max_abs(x))
    return 64.0 * _EPS * scale * scale


def _stationary(x: np.ndarray, r: np.ndarray, jac: np.ndarray, step: np.ndarray, tolerance: float) -> bool:
    """True at a least-squares minimum the linearised system cannot push below ``tolerance``."""

    if float(np.linalg.norm(step)) > tolerance * (1.0 + float(np.linalg.norm(x))):
        return False
    return _max_abs(r + jac @ step) > tolerance and _max_abs(r) > noise_floor(x)


def _least_squares_result(x: np.ndarray, iterations: int, max_res: float) -> SolveResult:
    return SolveResult(
        x,
        True,
        iterations,
        max_res,
        f"least-squares minimum with residual {max_res:.3e}",
        least_squares=True,
    )


class NewtonSolver:
    """Damped Gauss-Newton iteration with a backtracking line search.

    Each step solves ``J dx = -R`` in the least-squares sense with
    :func:`numpy.linalg.lstsq`, which yields the minimum-norm step for
    under-determined systems and stays well defined when ``J`` is rank
    deficient. The step is halved until ``|R|^2`` decreases or the damping
    drops below ``min_damping``.

    When the step shrinks below ``tolerance`` while the linearised residual
    stays above it, the iterate is a least-squares minimum of an inconsistent
    or over-determined system; it is returned as converged with
    ``least_squares=True``.
    """

    def __init__(self, settings: Optional[SolverSettings] = None) -> None:
        settings = settings or get_default_settings()
        self.min_damping = settings.min_damping

    def solve(
        self,
        residual: ResidualFunc,
        jacobian: JacobianFunc,
        x0: np.ndarray,
        *,
        tolerance: float,
        max_iterations: int,
    ) -> SolveResult:
        x = np.array(x0, dtype=float, copy=True)
        r = residual(x)
        if not _finite(r):
            return SolveResult(x, False, 0, math.inf, "residual is not finite at the initial guess")
        max_res = _max_abs(r)
        iterations = 0

        while True:
            if max_res <= tolerance:
                return SolveResult(x, True, iterations, max_res, "converged")
            if iterations >= max_iterations:
                return SolveResult(
                    x,
                    False,
                    iterations,
                    max_res,
                    f"iteration cap {max_iterations} reached with residual {max_res:.3e}",
                )
            if x.size == 0:
                return SolveResult(x, False, iterations, max_res, "no free parameters left to adjust")

            jac = jacobian(x)
            if not _finite(jac):
                return SolveResult(x, False, iterations, max_res, "jacobian is not finite")
            step, *_ = np.linalg.lstsq(jac, -r, rcond=None)
            iterations += 1

            if _stationary(x, r, jac, step, tolerance):
                return _least_squares_result(x, iterations, max_res)
            step_norm = float(np.linalg.norm(step))
            if step_norm <= _EPS * (1.0 + float(np.linalg.norm(x))):
                return self._stalled(x, iterations, max_res, "step vanished")

            current = float(r @ r)
            damping = 1.0
            accepted = False
            while damping >= self.min_damping:
                trial = x + damping * step
                r_trial = residual(trial)
                if _finite(r_trial) and float(r_trial @ r_trial) < current:
                    accepted = True
                    break
                damping *= 0.5
            if not accepted:
                return self._stalled(x, iterations, max_res, "line search failed")

            x, r = trial, r_trial
            max_res = _max_abs(r)
            logger.debug(
                "newton: iteration=%d damping=%.4g step=%.3e max_res=%.3e",
                iterations,
                damping,
                damping * step_norm,
                max_res,
            )

    @staticmethod
    def _stalled(x: np.ndarray, iterations: int, max_res: float, reason: str) -> SolveResult:
        floor = noise_floor(x)
        if max_res <= floor:
            return SolveResult(
                x, True, iterations, max_res, f"{reason} at rounding level {max_res:.3e}"
            )
        return SolveResult(
            x, False, iterations, max_res, f"{reason} with residual {max_res:.3e}"
        )


class ScipyLeastSquaresSolver:
    """Trust-region reflective least squares from :func:`scipy.optimize.least_squares`.

    ``least_squares`` stops on relative ``ftol``/``xtol``/``gtol`` tests, which
    can fire while ``max|R|`` is still above an absolute tolerance of 1e-12.
    Its result is finished with at most ``polish_steps`` damped Gauss-Newton
    steps, counted in the reported iterations.
    """

    polish_steps = 10

    def __init__(self, settings: Optional[SolverSettings] = None, *, method: str = "trf") -> None:
        self.settings = settings or get_default_settings()
        self.method = method
        self._polisher = NewtonSolver(self.settings)

    def solve(
        self,
        residual: ResidualFunc,
        jacobian: JacobianFunc,
        x0: np.ndarray,
        *,
        tolerance: float,
        max_iterations: int,
    ) -> SolveResult:
        x = np.array(x0, dtype=float, copy=True)
        r = residual(x)
        if not _finite(r):
            return SolveResult(x, False, 0, math.inf, "residual is not finite at the initial guess")
        max_res = _max_abs(r)
        if max_res <= tolerance:
            return SolveResult(x, True, 0, max_res, "converged")
        if x.size == 0:
            return SolveResult(x, False, 0, max_res, "no free parameters left to adjust")

        tol = max(tolerance, _EPS)
        result = least_squares(
            residual,
            x,
            jac=jacobian,
            method=self.method,
            ftol=tol,
            xtol=tol,
            gtol=tol,
            max_nfev=max_iterations,
        )
        polished = self._polisher.solve(
            residual,
            jacobian,
            np.asarray(result.x, dtype=float),
            tolerance=tolerance,
            max_iterations=self.polish_steps,
        )
        message = polished.message
        if not polished.converged:
            message = f"{result.message} Polishing: {polished.message}"
        return replace(polished, iterations=int(result.nfev) + polished.iterations, message=message)


_BACKENDS: Dict[str, SolverFactory] = {
    "newton": NewtonSolver,
    "scipy": ScipyLeastSquaresSolver,
}


def get_backend_factory(name: str) -> SolverFactory:
    try:
        return _BACKENDS[name]
    except KeyError as exc:
        raise ValueError(
            f"unknown solver backend {name!r}; expected one of {sorted(_BACKENDS)}"
        ) from exc


apply_debug_logging(
    globals(),
    logger=logger,
    skip={"SolverBackend", "noise_floor", "_max_abs", "_finite", "_stationary", "_least_squares_result"},
)


__all__ = [
    "JacobianFunc",
    "NewtonSolver",
    "ResidualFunc",
    "ScipyLeastSquaresSolver",
    "SolverBackend",
    "SolverFactory",
    "get_backend_factory",
    "noise_floor",
]
