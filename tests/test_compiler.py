import math

import numpy as np
import pytest

from parametric_sketch.dataset import DataSet
from parametric_sketch.errors import ModelCompilationError
from parametric_sketch.references import ValueReference
from parametric_sketch.solver import DragRequest, SolverSettings, compile_dataset, pair_drags


def _corner():
    ds = DataSet()
    a = ds.add_line(0, 0, 10, 1)
    b = ds.add_line(10, 0, 10, 11)
    ds.add_coincidence(a, ValueReference.LINE_END, b, ValueReference.LINE_START)
    ds.add_perpendicular(a, b)
    return ds, a, b


def test_flattens_parameters_in_insertion_order():
    ds, a, b = _corner()
    system = compile_dataset(ds)
    assert system.parameter_count == 8
    assert system.free_count == 8
    assert system.equation_count == 3
    assert system.x_initial.tolist() == [0, 0, 10, 1, 10, 0, 10, 11]
    assert system.offsets[b.id] == slice(4, 8)


def test_residual_and_jacobian_at_initial_guess():
    ds, a, b = _corner()
    system = compile_dataset(ds)
    x0 = system.initial_free()
    residual = system.residual(x0)
    assert residual.tolist() == pytest.approx([0.0, 1.0, 10 * 0 + 1 * 11])
    jac = system.jacobian(x0)
    assert jac.shape == (3, 8)

    step = 1e-7
    numeric = np.zeros_like(jac)
    for i in range(x0.size):
        shifted = x0.copy()
        shifted[i] += step
        numeric[:, i] = (system.residual(shifted) - residual) / step
    assert np.allclose(jac, numeric, atol=1e-5)


def test_compilation_snapshots_the_dataset():
    ds, a, b = _corner()
    system = compile_dataset(ds)
    a.assign_parameters([5, 5, 6, 6])
    assert system.x_initial[:4].tolist() == [0, 0, 10, 1]


def test_settings_are_captured():
    ds, _, _ = _corner()
    settings = SolverSettings(precision=1e-10)
    assert compile_dataset(ds, settings=settings).settings is settings


def test_direct_drag_drives_parameters():
    ds, a, b = _corner()
    system = compile_dataset(ds, [(b.id, (10.5, 11.5))])
    drag = system.drags[0]
    assert drag.ref is ValueReference.LINE_END
    assert drag.driven == (6, 7)
    assert system.free_count == 6
    assert system.equation_count == 3
    full = system.full_vector(system.initial_free())
    assert full[6:8].tolist() == [10.5, 11.5]

    system.set_drag_target(0, (12.0, 13.0))
    full = system.full_vector(system.initial_free())
    assert full[6:8].tolist() == [12.0, 13.0]
    assert system.drag_targets == [(12.0, 13.0)]


def test_arc_endpoint_drag_adds_pinning_equations():
    ds = DataSet()
    arc = ds.add_arc((0, 0), 0.0, math.pi / 2, 2.0)
    system = compile_dataset(ds, [DragRequest(arc.id, (0.1, 2.2))])
    assert system.drags[0].ref is ValueReference.ARC_END
    assert system.drags[0].driven is None
    assert system.free_count == 5
    assert system.equation_count == 2
    residual = system.residual(system.initial_free())
    assert residual == pytest.approx([-0.1, -0.2])
    assert system.residual_breakdown()[0]["kind"] == "drag"


def test_drag_requests_keep_grip_for_recompilation():
    ds, a, b = _corner()
    system = compile_dataset(ds, [(a.id, (1.0, 0.5))])
    request = system.drag_requests()[0]
    assert request.ref is ValueReference.LINE_START
    # the grip is kept even if the target wanders nearer the other end
    system.set_drag_target(0, (9.0, 1.0))
    again = compile_dataset(ds, system.drag_requests())
    assert again.drags[0].ref is ValueReference.LINE_START


def test_residual_breakdown_reports_each_constraint():
    ds, a, b = _corner()
    breakdown = compile_dataset(ds).residual_breakdown()
    assert [entry["kind"] for entry in breakdown] == ["coincidence", "perpendicular"]
    assert breakdown[0]["max_abs"] == pytest.approx(1.0)
    assert breakdown[1]["source_kind"] == "perpendicular"


@pytest.mark.parametrize(
    "build",
    [
        lambda ds: ds.add_line(1, 1, 1, 1),
        lambda ds: ds.add_arc((0, 0), 0.0, 1.0, 0.0),
        lambda ds: ds.add_point(float("nan"), 0.0),
    ],
)
def test_degenerate_geometry_fails(build):
    ds = DataSet()
    build(ds)
    with pytest.raises(ModelCompilationError):
        compile_dataset(ds)


def test_equation_undefined_at_initial_guess_fails():
    ds = DataSet()
    arc = ds.add_arc((0, 0), 0.0, 1.0, 1.0)
    point = ds.add_point(0, 0)
    ds.add_point_on_curve(point, ValueReference.POINT, arc)
    with pytest.raises(ModelCompilationError):
        compile_dataset(ds)


def test_invalid_drags_fail():
    ds, a, b = _corner()
    with pytest.raises(ModelCompilationError):
        compile_dataset(ds, [(123456789, (0, 0))])
    with pytest.raises(ModelCompilationError):
        compile_dataset(ds, [(a.id, (0, 0)), (a.id, (0.1, 0.1))])
    with pytest.raises(ModelCompilationError):
        compile_dataset(ds, [(a.id, (0, 0), ValueReference.ARC_CENTER)])
    with pytest.raises(ModelCompilationError):
        pair_drags([a], [])
    with pytest.raises(ModelCompilationError):
        pair_drags([a], [(1.0, 2.0, 3.0)])


def test_empty_dataset_compiles():
    system = compile_dataset(DataSet())
    assert system.parameter_count == 0
    assert system.equation_count == 0
    assert system.residual(system.initial_free()).size == 0
