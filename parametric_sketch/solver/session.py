"""Parametric session: compile once, solve repeatedly, apply results, clear."""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence, Union

import numpy as np

from ..dataset import DataSet
from ..errors import ModelCompilationError, NonConvergenceError, SessionStateError, SketchError
from ..geometry import Curve, Point2D
from .backends import NewtonSolver, SolverBackend, SolverFactory
from .compiler import compile_dataset, pair_drags
from .config import SolverSettings, get_default_settings
from .model import CompiledSystem, Outcome, SessionState

logger = logging.getLogger(__name__)


class ParametricSession:
    """Solve a :class:`DataSet` through the ``init`` ... ``clear_solver`` lifecycle.

    The session snapshots the data set at :meth:`init`; the data set's curves
    are touched again only by ``get_solution(apply_to_original=True)``. While
    dragging, the compiled system's drag targets and the last solved vector
    are the only state that changes between solves.

    Failed evaluations never disturb the last good solution: the outcome
    carries the error and the session keeps its previous state, so a drag loop
    can simply skip the rejected position.
    """

    def __init__(
        self,
        solver_factory: SolverFactory = NewtonSolver,
        settings: Optional[SolverSettings] = None,
    ) -> None:
        self._solver_factory = solver_factory
        self._settings_override = settings
        self._settings: Optional[SolverSettings] = None
        self._solver: Optional[SolverBackend] = None
        self._dataset: Optional[DataSet] = None
        self._system: Optional[CompiledSystem] = None
        self._solution: Optional[np.ndarray] = None
        self._state = SessionState.UNINITIALIZED

    # ------------------------------------------------------------------
    # Introspection

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def settings(self) -> Optional[SolverSettings]:
        return self._settings

    @property
    def system(self) -> Optional[CompiledSystem]:
        return self._system

    @property
    def drag_targets(self) -> List[Point2D]:
        return self._system.drag_targets if self._system is not None else []

    def __repr__(self) -> str:
        return f"ParametricSession(state={self._state.value})"

    # ------------------------------------------------------------------
    # Lifecycle

    def init(
        self,
        dataset: DataSet,
        dragged_primitives: Optional[Sequence[Union[Curve, int]]] = None,
        dragged_points: Optional[Sequence[Sequence[float]]] = None,
    ) -> Outcome:
        """Compile ``dataset``; prior compiled state is discarded first."""

        self._release()
        self._state = SessionState.UNINITIALIZED
        settings = self._settings_override or get_default_settings()
        try:
            drags = pair_drags(dragged_primitives, dragged_points)
            system = compile_dataset(dataset, drags, settings=settings)
        except ModelCompilationError as exc:
            logger.warning("Session init failed: %s", exc)
            return Outcome(False, self._state, error=exc)

        self._settings = settings
        self._solver = self._solver_factory(settings)
        self._dataset = dataset
        self._system = system
        self._state = SessionState.COMPILED
        logger.info(
            "Session initialized: %d equations over %d free parameters",
            system.equation_count,
            system.free_count,
        )
        return Outcome(True, self._state, warnings=self._shape_warnings(system))

    def evaluate(self, recompile: bool = True) -> Outcome:
        """Solve in precise mode.

        With ``recompile`` the system is rebuilt from the data set's current
        values (drag targets are kept); otherwise the last solution, when
        there is one, is the initial guess.
        """

        return self._evaluate(recompile=recompile, fast=False)

    def evaluate_fast(self) -> Outcome:
        """Warm-started solve with the relaxed tolerance and small iteration cap."""

        return self._evaluate(recompile=False, fast=True)

    def move_drag_point(self, point: Sequence[float], index: int = 0) -> None:
        self._require(SessionState.COMPILED, SessionState.SOLVED, action="move a drag point")
        assert self._system is not None
        self._system.set_drag_target(index, point)

    def get_solution(self, apply_to_original: bool = False) -> List[Curve]:
        """Copies of every curve carrying the solved values.

        With ``apply_to_original`` the data set's curves are overwritten by id.
        """

        self._require(SessionState.SOLVED, action="read a solution")
        assert self._system is not None and self._solution is not None
        curves = self._system.curves_from(self._solution)
        if apply_to_original and self._dataset is not None:
            updated = self._dataset.fill_from(curves)
            logger.info("Applied solution to %d curve(s)", len(updated))
        return curves

    def clear_solver(self) -> None:
        self._release()
        self._state = SessionState.CLEARED
        logger.debug("Session cleared")

    # ------------------------------------------------------------------
    # Internals

    def _release(self) -> None:
        self._settings = None
        self._solver = None
        self._dataset = None
        self._system = None
        self._solution = None

    def _require(self, *states: SessionState, action: str) -> None:
        if self._state not in states:
            allowed = ", ".join(state.value for state in states)
            raise SessionStateError(
                f"cannot {action} while the session is {self._state.value} (needs {allowed})"
            )

    @staticmethod
    def _shape_warnings(system: CompiledSystem) -> List[str]:
        if system.equation_count > system.free_count:
            return [
                f"{system.equation_count} equations for {system.free_count} free parameters; "
                "the system is over-determined"
            ]
        return []

    def _failure(self, error: SketchError, iterations: int = 0, max_residual: float = 0.0) -> Outcome:
        logger.warning("Evaluation failed, keeping %s state: %s", self._state.value, error)
        return Outcome(
            False,
            self._state,
            error=error,
            iterations=iterations,
            max_residual=max_residual,
        )

    def _evaluate(self, *, recompile: bool, fast: bool) -> Outcome:
        self._require(SessionState.COMPILED, SessionState.SOLVED, action="evaluate")
        assert self._system is not None and self._settings is not None and self._solver is not None
        settings = self._settings
        system = self._system

        if recompile:
            assert self._dataset is not None
            try:
                system = compile_dataset(self._dataset, system.drag_requests(), settings=settings)
            except ModelCompilationError as exc:
                return self._failure(exc)
            x0 = system.initial_free()
        elif self._solution is not None:
            x0 = system.free_vector(self._solution)
        else:
            x0 = system.initial_free()

        if fast:
            tolerance = settings.fast_tolerance
            max_iterations = settings.fast_max_iterations
        else:
            tolerance = settings.precision
            max_iterations = settings.max_iterations

        result = self._solver.solve(
            system.residual,
            system.jacobian,
            x0,
            tolerance=tolerance,
            max_iterations=max_iterations,
        )
        if not result.converged:
            error = NonConvergenceError(
                f"solver did not converge: {result.message}",
                iterations=result.iterations,
                max_residual=result.max_residual,
            )
            return self._failure(error, result.iterations, result.max_residual)

        x_full = system.full_vector(result.x)
        problems = system.degeneracies(x_full)
        if problems:
            error = NonConvergenceError(
                "solution is degenerate: " + "; ".join(problems),
                iterations=result.iterations,
                max_residual=result.max_residual,
            )
            return self._failure(error, result.iterations, result.max_residual)

        self._system = system
        self._solution = x_full
        self._state = SessionState.SOLVED
        warnings = self._shape_warnings(system)
        if result.least_squares:
            warnings.append(
                f"constraints are inconsistent; least-squares solution with max residual "
                f"{result.max_residual:.3e}"
            )
        elif result.max_residual > tolerance:
            warnings.append(
                f"accepted residual {result.max_residual:.3e} above tolerance {tolerance:.1e} "
                "(rounding level)"
            )
        logger.log(
            logging.DEBUG if fast else logging.INFO,
            "Solved in %d iteration(s), max residual %.3e",
            result.iterations,
            result.max_residual,
        )
        return Outcome(
            True,
            self._state,
            iterations=result.iterations,
            max_residual=result.max_residual,
            warnings=warnings,
        )


__all__ = ["ParametricSession"]
