import math
from typing import List

import numpy as np
import pytest

from parametric_sketch.constraints import (
    Coincidence,
    Equal,
    Parallel,
    Perpendicular,
    PointOnCurve,
    Tangent,
    constraint_from_dict,
)
from parametric_sketch.dataset import DataSet
from parametric_sketch.errors import InvalidReferenceError
from parametric_sketch.references import ValueReference, scalar_synthesis


def _sample_dataset():
    ds = DataSet()
    line_a = ds.add_line(0.2, 0.1, 4.0, 1.3)
    line_b = ds.add_line(4.5, 0.7, 3.9, 5.2)
    arc = ds.add_arc((2.0, 2.5), 0.3, 2.2, 1.7)
    arc_b = ds.add_arc((-1.0, 0.5), -1.0, 1.4, 0.8)
    point = ds.add_point(1.1, 3.3)
    return ds, line_a, line_b, arc, arc_b, point


def _numeric_jacobians(block, params: List[np.ndarray], step: float = 1e-7):
    base, _ = block.evaluate(*params)
    result = []
    for k, p in enumerate(params):
        jac = np.zeros((block.size, p.size))
        for i in range(p.size):
            shifted = [q.copy() for q in params]
            shifted[k][i] += step
            jac[:, i] = (block.evaluate(*shifted)[0] - base) / step
        result.append(jac)
    return result


def _build_cases():
    ds, line_a, line_b, arc, arc_b, point = _sample_dataset()
    constraints = [
        Coincidence(line_a.id, ValueReference.LINE_END, arc.id, ValueReference.ARC_START),
        Coincidence(arc.id, ValueReference.ARC_END, arc_b.id, ValueReference.ARC_CENTER),
        Coincidence(point.id, ValueReference.POINT, line_b.id, ValueReference.LINE_START),
        Perpendicular(line_a.id, line_b.id),
        Parallel(line_a.id, line_b.id),
        Equal(arc.id, arc_b.id),
        Equal(line_a.id, line_b.id),
        Tangent(arc.id, line_a.id, ValueReference.ARC_END),
        PointOnCurve(point.id, ValueReference.POINT, line_a.id),
        PointOnCurve(line_b.id, ValueReference.LINE_END, arc.id),
        PointOnCurve(arc_b.id, ValueReference.ARC_START, line_b.id),
    ]
    return ds, constraints


@pytest.mark.parametrize("index", range(11))
def test_analytic_jacobians_match_finite_differences(index):
    ds, constraints = _build_cases()
    constraint = constraints[index]
    ds.add_constraint(constraint)
    block = constraint.build(ds)
    params = [np.array(ds.curve(cid).parameters(), dtype=float) for cid in block.curves]
    values, jacs = block.evaluate(*params)
    assert values.shape == (block.size,)
    numeric = _numeric_jacobians(block, params)
    for analytic, approx in zip(jacs, numeric):
        assert analytic.shape == approx.shape
        assert np.allclose(analytic, approx, atol=1e-5, rtol=1e-5)


def test_residual_values_are_zero_when_satisfied():
    ds = DataSet()
    horizontal = ds.add_line(0, 0, 4, 0)
    vertical = ds.add_line(4, 0, 4, 3)
    arc = ds.add_arc((0, 1), -math.pi / 2, 0.0, 1.0)
    blocks = [
        Perpendicular(horizontal.id, vertical.id),
        Coincidence(horizontal.id, ValueReference.LINE_END, vertical.id, ValueReference.LINE_START),
        Tangent(arc.id, horizontal.id, ValueReference.ARC_START),
        PointOnCurve(horizontal.id, ValueReference.LINE_START, arc.id),
    ]
    for constraint in blocks:
        ds.add_constraint(constraint)
        block = constraint.build(ds)
        params = [np.array(ds.curve(cid).parameters()) for cid in block.curves]
        values, _ = block.evaluate(*params)
        assert np.max(np.abs(values)) == pytest.approx(0.0, abs=1e-12)


def test_equal_arcs_compare_radius_values():
    ds, _, _, arc, arc_b, _ = _sample_dataset()
    constraint = ds.add_equal(arc, arc_b)
    block = constraint.build(ds)
    values, (ja, jb) = block.evaluate(np.array(arc.parameters()), np.array(arc_b.parameters()))
    assert values[0] == pytest.approx(1.7 - 0.8)
    _, radius_grad = scalar_synthesis("arc", ValueReference.ARC_RADIUS, np.array(arc.parameters()))
    assert ja[0].tolist() == radius_grad.tolist()
    assert jb[0].tolist() == (-radius_grad).tolist()


def test_point_on_line_is_signed_distance():
    ds = DataSet()
    line = ds.add_line(0, 0, 10, 0)
    point = ds.add_point(3, 2)
    constraint = ds.add_point_on_curve(point, ValueReference.POINT, line)
    block = constraint.build(ds)
    values, _ = block.evaluate(np.array(point.parameters()), np.array(line.parameters()))
    assert values[0] == pytest.approx(2.0)


@pytest.mark.parametrize(
    "factory",
    [
        lambda line, arc, point: Perpendicular(line.id, arc.id),
        lambda line, arc, point: Parallel(line.id, line.id),
        lambda line, arc, point: Equal(line.id, arc.id),
        lambda line, arc, point: Tangent(line.id, arc.id),
        lambda line, arc, point: Tangent(arc.id, line.id, ValueReference.ARC_CENTER),
        lambda line, arc, point: Coincidence(line.id, ValueReference.ARC_START, arc.id, ValueReference.ARC_END),
        lambda line, arc, point: Coincidence(line.id, ValueReference.LINE_END, line.id, ValueReference.LINE_END),
        lambda line, arc, point: PointOnCurve(line.id, ValueReference.LINE_END, point.id),
        lambda line, arc, point: PointOnCurve(line.id, ValueReference.LINE_END, line.id),
        lambda line, arc, point: PointOnCurve(arc.id, ValueReference.ARC_RADIUS, line.id),
    ],
)
def test_invalid_bindings_are_rejected(factory):
    ds = DataSet()
    line = ds.add_line(0, 0, 1, 0)
    arc = ds.add_arc((0, 0), 0.0, 1.0, 1.0)
    point = ds.add_point(2, 2)
    with pytest.raises(InvalidReferenceError):
        factory(line, arc, point).validate(ds)


def test_tangent_connection_prefers_explicit_then_coincidence_then_nearest():
    ds = DataSet()
    arc = ds.add_arc((0, 0), 0.0, math.pi / 2, 1.0)
    line = ds.add_line(1.0, -0.1, 1.0, -3.0)

    nearest = Tangent(arc.id, line.id)
    assert nearest.resolve_connection(ds) is ValueReference.ARC_START

    ds.add_coincidence(arc, ValueReference.ARC_END, line, ValueReference.LINE_START)
    assert nearest.resolve_connection(ds) is ValueReference.ARC_END

    explicit = Tangent(arc.id, line.id, ValueReference.ARC_START)
    assert explicit.resolve_connection(ds) is ValueReference.ARC_START


@pytest.mark.parametrize("index", range(11))
def test_dict_round_trip_keeps_bindings(index):
    _, constraints = _build_cases()
    constraint = constraints[index]
    clone = constraint_from_dict(constraint.to_dict())
    assert type(clone) is type(constraint)
    assert clone.id == constraint.id
    assert clone.bindings() == constraint.bindings()


def test_constraint_from_dict_rejects_unknown_kind_and_arity():
    with pytest.raises(ValueError):
        constraint_from_dict({"kind": "symmetric", "bindings": []})
    with pytest.raises(ValueError):
        constraint_from_dict({"kind": "parallel", "bindings": [{"curve": 1, "ref": None}]})
