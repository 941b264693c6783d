"""The model graph: curves, constraints and their identifiers."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Union

from .constraints import (
    Coincidence,
    Constraint,
    Equal,
    Parallel,
    Perpendicular,
    PointOnCurve,
    Tangent,
    constraint_from_dict,
)
from .errors import InvalidReferenceError
from .geometry import CircularArc, Curve, LineSegment, Point, Point2D, curve_from_dict, curve_type
from .references import ValueReference

logger = logging.getLogger(__name__)

CurveRef = Union[Curve, int]
ConstraintRef = Union[Constraint, int]

FORMAT_NAME = "parametric-sketch"
FORMAT_VERSION = 1


def _curve_id(curve: CurveRef) -> int:
    if isinstance(curve, Curve):
        return curve.id
    if isinstance(curve, bool) or not isinstance(curve, int):
        raise InvalidReferenceError(f"expected a curve or a curve id, got {curve!r}")
    return curve


class DataSet:
    """Owns curves and constraints; the unit of persistence and snapshotting.

    The data set never stores solved values. A solve session compiles a
    snapshot of the current geometry and writes results back only when asked.
    """

    def __init__(self) -> None:
        self._curves: Dict[int, Curve] = {}
        self._constraints: Dict[int, Constraint] = {}

    # ------------------------------------------------------------------
    # Enumeration

    @property
    def curves(self) -> List[Curve]:
        return list(self._curves.values())

    @property
    def constraints(self) -> List[Constraint]:
        return list(self._constraints.values())

    def curve(self, curve_id: int) -> Curve:
        try:
            return self._curves[curve_id]
        except KeyError as exc:
            raise InvalidReferenceError(f"curve {curve_id} is not part of the data set") from exc

    def constraint(self, constraint_id: int) -> Constraint:
        try:
            return self._constraints[constraint_id]
        except KeyError as exc:
            raise InvalidReferenceError(
                f"constraint {constraint_id} is not part of the data set"
            ) from exc

    def constraints_for(self, curve: CurveRef) -> List[Constraint]:
        curve_id = _curve_id(curve)
        return [c for c in self._constraints.values() if curve_id in c.curve_ids()]

    def __contains__(self, item: object) -> bool:
        if isinstance(item, Curve):
            return self._curves.get(item.id) is item
        if isinstance(item, Constraint):
            return self._constraints.get(item.id) is item
        return False

    def __iter__(self) -> Iterator[Curve]:
        return iter(self.curves)

    def __len__(self) -> int:
        return len(self._curves)

    def __repr__(self) -> str:
        return f"DataSet(curves={len(self._curves)}, constraints={len(self._constraints)})"

    # ------------------------------------------------------------------
    # Curves

    def add_primitive(
        self, curve: Union[Curve, str], geometry: Optional[Mapping[str, Any]] = None
    ) -> int:
        """Register a curve object, or build one from ``kind`` and named parameters."""

        if not isinstance(curve, Curve):
            cls = curve_type(str(curve))
            data = dict(geometry or {})
            data["kind"] = cls.kind
            curve = curve_from_dict(data)
        elif geometry is not None:
            raise ValueError("geometry is only accepted together with a curve kind")

        existing = self._curves.get(curve.id)
        if existing is curve:
            return curve.id
        if existing is not None:
            raise ValueError(f"curve id {curve.id} is already used in the data set")
        if curve.id in self._constraints:
            raise ValueError(f"id {curve.id} is already used by a constraint")
        self._curves[curve.id] = curve
        logger.debug("Added %s", curve)
        return curve.id

    def add_point(self, x: float, y: float) -> Point:
        point = Point(x, y)
        self.add_primitive(point)
        return point

    def add_line(self, x1: float, y1: float, x2: float, y2: float) -> LineSegment:
        line = LineSegment((x1, y1), (x2, y2))
        self.add_primitive(line)
        return line

    def add_arc(
        self, center: Point2D, start_angle: float, end_angle: float, radius: float
    ) -> CircularArc:
        arc = CircularArc(center, start_angle, end_angle, radius)
        self.add_primitive(arc)
        return arc

    def remove_primitive(self, curve: CurveRef) -> List[Constraint]:
        """Remove a curve together with every constraint binding it."""

        curve_id = _curve_id(curve)
        if curve_id not in self._curves:
            raise KeyError(f"curve {curve_id} is not part of the data set")
        dropped = self.constraints_for(curve_id)
        for constraint in dropped:
            del self._constraints[constraint.id]
        del self._curves[curve_id]
        logger.debug("Removed curve %d and %d dependent constraint(s)", curve_id, len(dropped))
        return dropped

    # ------------------------------------------------------------------
    # Constraints

    def add_constraint(self, constraint: Constraint) -> Constraint:
        """Validate and register ``constraint``; the graph is untouched on failure."""

        if constraint.id in self._constraints or constraint.id in self._curves:
            if self._constraints.get(constraint.id) is constraint:
                return constraint
            raise ValueError(f"id {constraint.id} is already used in the data set")
        constraint.validate(self)
        self._constraints[constraint.id] = constraint
        logger.debug("Added constraint %s", constraint.describe())
        return constraint

    def add_coincidence(
        self,
        curve_a: CurveRef,
        ref_a: Union[ValueReference, str],
        curve_b: CurveRef,
        ref_b: Union[ValueReference, str],
    ) -> Coincidence:
        constraint = Coincidence(_curve_id(curve_a), ref_a, _curve_id(curve_b), ref_b)  # type: ignore[arg-type]
        self.add_constraint(constraint)
        return constraint

    def add_perpendicular(self, line_a: CurveRef, line_b: CurveRef) -> Perpendicular:
        constraint = Perpendicular(_curve_id(line_a), _curve_id(line_b))
        self.add_constraint(constraint)
        return constraint

    def add_parallel(self, line_a: CurveRef, line_b: CurveRef) -> Parallel:
        constraint = Parallel(_curve_id(line_a), _curve_id(line_b))
        self.add_constraint(constraint)
        return constraint

    def add_equal(self, curve_a: CurveRef, curve_b: CurveRef) -> Equal:
        constraint = Equal(_curve_id(curve_a), _curve_id(curve_b))
        self.add_constraint(constraint)
        return constraint

    def add_tangent(
        self,
        curve_a: CurveRef,
        curve_b: CurveRef,
        connection: Union[ValueReference, str, None] = None,
    ) -> Tangent:
        """Add a tangency between an arc and a line, given in either order."""

        a = self.curve(_curve_id(curve_a))
        b = self.curve(_curve_id(curve_b))
        if isinstance(b, CircularArc) and not isinstance(a, CircularArc):
            a, b = b, a
        constraint = Tangent(a.id, b.id, connection)  # type: ignore[arg-type]
        self.add_constraint(constraint)
        return constraint

    def add_point_on_curve(
        self, curve: CurveRef, ref: Union[ValueReference, str], target: CurveRef
    ) -> PointOnCurve:
        constraint = PointOnCurve(_curve_id(curve), ref, _curve_id(target))  # type: ignore[arg-type]
        self.add_constraint(constraint)
        return constraint

    def remove_constraint(self, constraint: ConstraintRef) -> Constraint:
        constraint_id = constraint.id if isinstance(constraint, Constraint) else int(constraint)
        try:
            removed = self._constraints.pop(constraint_id)
        except KeyError as exc:
            raise KeyError(f"constraint {constraint_id} is not part of the data set") from exc
        logger.debug("Removed constraint %s", removed.describe())
        return removed

    # ------------------------------------------------------------------
    # Snapshots and persistence

    def snapshot(self) -> "DataSet":
        """Independent copy: curves are copied, constraints are shared (they are never mutated)."""

        clone = DataSet()
        for curve in self._curves.values():
            clone._curves[curve.id] = curve.copy()
        clone._constraints = dict(self._constraints)
        return clone

    def to_dict(self) -> Dict[str, Any]:
        return {
            "format": FORMAT_NAME,
            "version": FORMAT_VERSION,
            "curves": [curve.to_dict() for curve in self._curves.values()],
            "constraints": [constraint.to_dict() for constraint in self._constraints.values()],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "DataSet":
        fmt = data.get("format", FORMAT_NAME)
        if fmt != FORMAT_NAME:
            raise ValueError(f"unsupported data set format {fmt!r}")
        version = int(data.get("version", FORMAT_VERSION))
        if version > FORMAT_VERSION:
            raise ValueError(f"data set version {version} is newer than supported {FORMAT_VERSION}")
        dataset = cls()
        for entry in data.get("curves", []):
            dataset.add_primitive(curve_from_dict(entry))
        for entry in data.get("constraints", []):
            dataset.add_constraint(constraint_from_dict(entry))
        logger.info(
            "Loaded data set with %d curves and %d constraints",
            len(dataset._curves),
            len(dataset._constraints),
        )
        return dataset

    def save(self, path: Union[str, Path]) -> Path:
        from .persistence import save_dataset

        return save_dataset(self, path)

    @classmethod
    def load(cls, path: Union[str, Path]) -> "DataSet":
        from .persistence import load_dataset

        return load_dataset(path)

    def fill_from(self, curves: Sequence[Curve]) -> List[int]:
        """Overwrite geometry of curves with matching ids; returns the updated ids."""

        updated: List[int] = []
        for source in curves:
            target = self._curves.get(source.id)
            if target is None:
                continue
            target.fill_from(source)
            updated.append(source.id)
        return updated


__all__ = [
    "ConstraintRef",
    "CurveRef",
    "DataSet",
    "FORMAT_NAME",
    "FORMAT_VERSION",
]
