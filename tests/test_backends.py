import numpy as np
import pytest

from parametric_sketch.solver import (
    NewtonSolver,
    ScipyLeastSquaresSolver,
    SolverSettings,
    get_backend_factory,
)
from parametric_sketch.solver.backends import noise_floor


def _circle_line():
    # x^2 + y^2 = 4 and x = y
    def residual(x):
        return np.array([x[0] ** 2 + x[1] ** 2 - 4.0, x[0] - x[1]])

    def jacobian(x):
        return np.array([[2 * x[0], 2 * x[1]], [1.0, -1.0]])

    return residual, jacobian


BACKENDS = [NewtonSolver, ScipyLeastSquaresSolver]


@pytest.mark.parametrize("factory", BACKENDS)
def test_solves_square_system(factory):
    residual, jacobian = _circle_line()
    solver = factory(SolverSettings())
    result = solver.solve(residual, jacobian, np.array([3.0, 0.5]), tolerance=1e-12, max_iterations=100)
    assert result.converged
    assert result.x == pytest.approx([2 ** 0.5, 2 ** 0.5], abs=1e-9)
    assert result.max_residual <= 1e-12


@pytest.mark.parametrize("factory", BACKENDS)
def test_already_solved_takes_no_iterations(factory):
    residual, jacobian = _circle_line()
    x0 = np.array([2 ** 0.5, 2 ** 0.5])
    result = factory(SolverSettings()).solve(residual, jacobian, x0, tolerance=1e-9, max_iterations=5)
    assert result.converged
    assert result.iterations == 0


def test_newton_underdetermined_step_is_minimum_norm():
    # one equation x + y = 2 from (0, 0): the closest solution is (1, 1)
    def residual(x):
        return np.array([x[0] + x[1] - 2.0])

    def jacobian(x):
        return np.array([[1.0, 1.0]])

    result = NewtonSolver().solve(residual, jacobian, np.zeros(2), tolerance=1e-12, max_iterations=10)
    assert result.converged
    assert result.iterations == 1
    assert result.x == pytest.approx([1.0, 1.0])


def test_newton_reports_iteration_cap():
    residual, jacobian = _circle_line()
    result = NewtonSolver().solve(residual, jacobian, np.array([30.0, -1.0]), tolerance=1e-12, max_iterations=1)
    assert not result.converged
    assert result.iterations == 1
    assert "iteration cap" in result.message


@pytest.mark.parametrize("factory", BACKENDS)
def test_inconsistent_system_returns_least_squares_minimum(factory):
    # x = 1 and x = 2 cannot both hold
    def residual(x):
        return np.array([x[0] - 1.0, x[0] - 2.0])

    def jacobian(x):
        return np.array([[1.0], [1.0]])

    result = factory(SolverSettings()).solve(residual, jacobian, np.zeros(1), tolerance=1e-12, max_iterations=50)
    assert result.converged
    assert result.least_squares
    assert result.x == pytest.approx([1.5])
    assert result.max_residual == pytest.approx(0.5)
    assert "least-squares" in result.message


def test_newton_line_search_failure_away_from_minimum():
    # the Jacobian points the wrong way, so no damped step reduces |R|
    result = NewtonSolver().solve(
        lambda x: np.array([x[0] - 1.0]),
        lambda x: np.array([[-1.0]]),
        np.zeros(1),
        tolerance=1e-12,
        max_iterations=50,
    )
    assert not result.converged
    assert not result.least_squares
    assert "line search failed" in result.message


def test_scipy_polishes_below_relative_stopping_tests():
    # relative stopping tests are loose at this scale
    def residual(x):
        return np.array([x[0] * x[1] - 1.0e6, x[0] - x[1]])

    def jacobian(x):
        return np.array([[x[1], x[0]], [1.0, -1.0]])

    result = ScipyLeastSquaresSolver(SolverSettings()).solve(
        residual, jacobian, np.array([1500.0, 700.0]), tolerance=1e-12, max_iterations=100
    )
    assert result.converged
    assert not result.least_squares
    assert result.max_residual <= 1e-12 or "rounding level" in result.message
    assert result.x == pytest.approx([1000.0, 1000.0])


def test_newton_without_free_parameters():
    result = NewtonSolver().solve(
        lambda x: np.array([1.0]),
        lambda x: np.zeros((1, 0)),
        np.zeros(0),
        tolerance=1e-12,
        max_iterations=10,
    )
    assert not result.converged
    assert result.iterations == 0


def test_newton_rejects_non_finite_start():
    result = NewtonSolver().solve(
        lambda x: np.array([np.nan]),
        lambda x: np.ones((1, 1)),
        np.zeros(1),
        tolerance=1e-12,
        max_iterations=10,
    )
    assert not result.converged
    assert result.max_residual == float("inf")


def test_noise_floor_scales_with_magnitude():
    small = noise_floor(np.array([0.5]))
    large = noise_floor(np.array([1000.0]))
    assert small == pytest.approx(64 * np.finfo(float).eps)
    assert large == pytest.approx(small * 1e6)


def test_get_backend_factory():
    assert get_backend_factory("newton") is NewtonSolver
    assert get_backend_factory("scipy") is ScipyLeastSquaresSolver
    with pytest.raises(ValueError):
        get_backend_factory("simplex")
