import pytest

from parametric_sketch.constraints import Parallel, Tangent
from parametric_sketch.dataset import DataSet
from parametric_sketch.errors import InvalidReferenceError
from parametric_sketch.geometry import CircularArc, LineSegment, Point
from parametric_sketch.references import ValueReference


def test_add_primitive_from_kind_and_geometry():
    ds = DataSet()
    curve_id = ds.add_primitive("line", {"x1": 0, "y1": 0, "x2": 3, "y2": 4})
    line = ds.curve(curve_id)
    assert isinstance(line, LineSegment)
    assert line.length == pytest.approx(5.0)
    assert len(ds) == 1


def test_add_primitive_is_idempotent_for_same_object():
    ds = DataSet()
    point = Point(1, 2)
    assert ds.add_primitive(point) == point.id
    assert ds.add_primitive(point) == point.id
    assert ds.curves == [point]
    with pytest.raises(ValueError):
        ds.add_primitive(Point(5, 5, id=point.id))


def test_curves_keep_insertion_order():
    ds = DataSet()
    arc = ds.add_arc((0, 0), 0.0, 1.0, 1.0)
    line = ds.add_line(0, 0, 1, 1)
    point = ds.add_point(2, 2)
    assert [c.id for c in ds.curves] == [arc.id, line.id, point.id]
    assert list(ds) == [arc, line, point]


def test_constraint_adders_accept_objects_and_ids():
    ds = DataSet()
    a = ds.add_line(0, 0, 1, 0)
    b = ds.add_line(1, 0, 1, 1)
    c1 = ds.add_perpendicular(a, b.id)
    c2 = ds.add_coincidence(a.id, "LineEnd", b, ValueReference.LINE_START)
    assert ds.constraints == [c1, c2]
    assert c2.ref_a is ValueReference.LINE_END
    assert ds.constraint(c1.id) is c1


def test_invalid_constraint_leaves_graph_unchanged():
    ds = DataSet()
    line = ds.add_line(0, 0, 1, 0)
    arc = ds.add_arc((0, 0), 0.0, 1.0, 1.0)
    ds.add_parallel(line, ds.add_line(0, 1, 1, 1))
    before = list(ds.constraints)
    with pytest.raises(InvalidReferenceError):
        ds.add_coincidence(line, ValueReference.ARC_END, arc, ValueReference.ARC_START)
    with pytest.raises(InvalidReferenceError):
        ds.add_equal(line, arc)
    with pytest.raises(InvalidReferenceError):
        ds.add_perpendicular(line, 987654321)
    assert ds.constraints == before


def test_add_tangent_accepts_either_order():
    ds = DataSet()
    line = ds.add_line(1, 0, 1, -2)
    arc = ds.add_arc((0, 0), 0.0, 1.0, 1.0)
    tangent = ds.add_tangent(line, arc)
    assert isinstance(tangent, Tangent)
    assert (tangent.arc, tangent.line) == (arc.id, line.id)


def test_remove_primitive_cascades_to_constraints():
    ds = DataSet()
    a = ds.add_line(0, 0, 1, 0)
    b = ds.add_line(0, 1, 1, 1)
    c = ds.add_line(0, 2, 1, 2)
    p1 = ds.add_parallel(a, b)
    p2 = ds.add_parallel(b, c)
    dropped = ds.remove_primitive(a)
    assert dropped == [p1]
    assert ds.constraints == [p2]
    assert a not in ds
    with pytest.raises(KeyError):
        ds.remove_primitive(a.id)


def test_remove_constraint():
    ds = DataSet()
    a = ds.add_line(0, 0, 1, 0)
    b = ds.add_line(0, 1, 1, 1)
    parallel = ds.add_parallel(a, b)
    assert ds.remove_constraint(parallel.id) is parallel
    assert ds.constraints == []
    with pytest.raises(KeyError):
        ds.remove_constraint(parallel)


def test_constraints_for_lists_dependent_constraints():
    ds = DataSet()
    a = ds.add_line(0, 0, 1, 0)
    b = ds.add_line(0, 1, 1, 1)
    arc = ds.add_arc((0, 0), 0.0, 1.0, 1.0)
    parallel = ds.add_parallel(a, b)
    assert ds.constraints_for(a) == [parallel]
    assert ds.constraints_for(arc.id) == []


def test_snapshot_copies_curves():
    ds = DataSet()
    line = ds.add_line(0, 0, 1, 0)
    snap = ds.snapshot()
    snap.curve(line.id).assign_parameters([5, 5, 6, 6])
    assert line.parameters() == (0.0, 0.0, 1.0, 0.0)
    assert snap.curve(line.id) is not line


def test_dict_round_trip_preserves_everything():
    ds = DataSet()
    a = ds.add_line(0.1, 0.2, 3.3, 0.4)
    arc = ds.add_arc((1.0 / 3.0, 2.0), -0.5, 1.25, 0.7)
    ds.add_coincidence(a, "LineEnd", arc, "ArcStart")
    ds.add_tangent(arc, a)
    clone = DataSet.from_dict(ds.to_dict())
    assert [c.id for c in clone.curves] == [a.id, arc.id]
    assert clone.curve(arc.id).parameters() == arc.parameters()
    assert [c.to_dict() for c in clone.constraints] == [c.to_dict() for c in ds.constraints]


def test_from_dict_rejects_foreign_format():
    with pytest.raises(ValueError):
        DataSet.from_dict({"format": "something-else", "curves": []})
    with pytest.raises(ValueError):
        DataSet.from_dict({"format": "parametric-sketch", "version": 99})


def test_fill_from_updates_matching_ids_only():
    ds = DataSet()
    arc = ds.add_arc((0, 0), 0.0, 1.0, 1.0)
    solved = [arc.with_parameters([1, 1, 2, 0.5, 1.5]), CircularArc((9, 9), 0.0, 1.0, 1.0)]
    assert ds.fill_from(solved) == [arc.id]
    assert arc.radius == 2.0


def test_parallel_constraint_object_can_be_added_directly():
    ds = DataSet()
    a = ds.add_line(0, 0, 1, 0)
    b = ds.add_line(0, 1, 1, 1)
    constraint = Parallel(a.id, b.id)
    assert ds.add_constraint(constraint) is constraint
    assert ds.add_constraint(constraint) is constraint
    assert ds.constraints == [constraint]
