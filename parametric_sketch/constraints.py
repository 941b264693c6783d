"""Constraint catalog: declarative relations and the equations they contribute.

Each constraint binds curve identifiers (plus value references where a
sub-value is addressed) and, once the referenced curves are known, builds an
:class:`EquationBlock`. The block evaluates the residual values together with
their exact partial derivatives with respect to every referenced curve's
parameter array, so the compiler never falls back to numeric differencing.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import (
    Any,
    Callable,
    ClassVar,
    Dict,
    Mapping,
    Optional,
    Protocol,
    Sequence,
    Tuple,
    Type,
)

import numpy as np

from .errors import InvalidReferenceError
from .geometry import CircularArc, Curve, LineSegment, Point, allocate_id, reserve_ids
from .references import (
    ValueReference,
    arc_angle_index,
    check_reference,
    parse_reference,
    point_synthesis,
    reference_value,
    scalar_synthesis,
)

Binding = Tuple[int, Optional[ValueReference]]
EquationFunc = Callable[..., Tuple[np.ndarray, Tuple[np.ndarray, ...]]]

_ARC_ENDS = (ValueReference.ARC_START, ValueReference.ARC_END)


class CurveLookup(Protocol):
    """What a constraint needs from its owning graph."""

    @property
    def constraints(self) -> Sequence["Constraint"]: ...

    def curve(self, curve_id: int) -> Curve: ...


@dataclass
class EquationBlock:
    """Scalar equations contributed by a single constraint.

    ``evaluate`` receives one parameter array per entry of ``curves`` and
    returns ``(values, jacobians)`` where ``jacobians[i]`` has shape
    ``(size, len(params_i))``.
    """

    key: str
    kind: str
    size: int
    curves: Tuple[int, ...]
    evaluate: EquationFunc
    source: Optional["Constraint"] = None


def _require_kind(curve: Curve, expected: Type[Curve], role: str) -> None:
    if not isinstance(curve, expected):
        raise InvalidReferenceError(
            f"{role} must be a {expected.kind}, got {curve.kind} {curve.id}"
        )


def _line_direction(params: np.ndarray) -> np.ndarray:
    return np.array([params[2] - params[0], params[3] - params[1]], dtype=float)


def _direction_jacobian(vec: np.ndarray) -> np.ndarray:
    """Row gradient of ``vec . d`` w.r.t. the line parameters ``(x1, y1, x2, y2)``."""

    return np.array([[-vec[0], -vec[1], vec[0], vec[1]]], dtype=float)


@dataclass(eq=False)
class Constraint:
    """Base class of every constraint variant."""

    id: int = field(default_factory=allocate_id, kw_only=True)

    kind: ClassVar[str] = "constraint"
    arity: ClassVar[int] = 2

    def bindings(self) -> Tuple[Binding, ...]:
        raise NotImplementedError

    @classmethod
    def from_bindings(cls, bindings: Sequence[Binding], *, id: Optional[int] = None) -> "Constraint":
        raise NotImplementedError

    def curve_ids(self) -> Tuple[int, ...]:
        return tuple(curve_id for curve_id, _ in self.bindings())

    def validate(self, lookup: CurveLookup) -> None:
        raise NotImplementedError

    def build(self, lookup: CurveLookup) -> EquationBlock:
        raise NotImplementedError

    def describe(self) -> str:
        parts = []
        for curve_id, ref in self.bindings():
            parts.append(f"{curve_id}.{ref.value}" if ref is not None else str(curve_id))
        return f"{self.kind}({','.join(parts)})"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind,
            "bindings": [
                {"curve": curve_id, "ref": ref.value if ref is not None else None}
                for curve_id, ref in self.bindings()
            ],
        }

    @classmethod
    def _unpack(cls, bindings: Sequence[Binding]) -> Sequence[Binding]:
        if len(bindings) != cls.arity:
            raise ValueError(f"{cls.kind} expects {cls.arity} bindings, got {len(bindings)}")
        return bindings

    @staticmethod
    def _make(cls_: Type["Constraint"], args: Sequence[Any], id: Optional[int]) -> "Constraint":
        if id is None:
            return cls_(*args)
        return cls_(*args, id=id)


@dataclass(eq=False)
class Coincidence(Constraint):
    """Two points are equal: ``p_a - p_b = 0`` (2 equations)."""

    curve_a: int
    ref_a: ValueReference
    curve_b: int
    ref_b: ValueReference

    kind: ClassVar[str] = "coincidence"

    def __post_init__(self) -> None:
        self.ref_a = parse_reference(self.ref_a)
        self.ref_b = parse_reference(self.ref_b)

    def bindings(self) -> Tuple[Binding, ...]:
        return (self.curve_a, self.ref_a), (self.curve_b, self.ref_b)

    @classmethod
    def from_bindings(cls, bindings: Sequence[Binding], *, id: Optional[int] = None) -> "Coincidence":
        (a, ref_a), (b, ref_b) = cls._unpack(bindings)
        if ref_a is None or ref_b is None:
            raise ValueError("coincidence needs a value reference on both sides")
        return cls._make(cls, (a, ref_a, b, ref_b), id)  # type: ignore[return-value]

    def validate(self, lookup: CurveLookup) -> None:
        check_reference(lookup.curve(self.curve_a), self.ref_a)
        check_reference(lookup.curve(self.curve_b), self.ref_b)
        if self.curve_a == self.curve_b and self.ref_a is self.ref_b:
            raise InvalidReferenceError(f"coincidence binds {self.curve_a}.{self.ref_a} to itself")

    def build(self, lookup: CurveLookup) -> EquationBlock:
        kind_a = lookup.curve(self.curve_a).kind
        kind_b = lookup.curve(self.curve_b).kind
        ref_a, ref_b = self.ref_a, self.ref_b

        def evaluate(pa: np.ndarray, pb: np.ndarray) -> Tuple[np.ndarray, Tuple[np.ndarray, ...]]:
            va, ja = point_synthesis(kind_a, ref_a, pa)
            vb, jb = point_synthesis(kind_b, ref_b, pb)
            return va - vb, (ja, -jb)

        return EquationBlock(
            key=self.describe(),
            kind=self.kind,
            size=2,
            curves=(self.curve_a, self.curve_b),
            evaluate=evaluate,
            source=self,
        )


@dataclass(eq=False)
class _LinePair(Constraint):
    line_a: int
    line_b: int

    def bindings(self) -> Tuple[Binding, ...]:
        return (self.line_a, None), (self.line_b, None)

    @classmethod
    def from_bindings(cls, bindings: Sequence[Binding], *, id: Optional[int] = None) -> "_LinePair":
        (a, _), (b, _) = cls._unpack(bindings)
        return cls._make(cls, (a, b), id)  # type: ignore[return-value]

    def validate(self, lookup: CurveLookup) -> None:
        _require_kind(lookup.curve(self.line_a), LineSegment, f"{self.kind} first curve")
        _require_kind(lookup.curve(self.line_b), LineSegment, f"{self.kind} second curve")
        if self.line_a == self.line_b:
            raise InvalidReferenceError(f"{self.kind} needs two distinct lines")

    def _block(self, evaluate: EquationFunc) -> EquationBlock:
        return EquationBlock(
            key=self.describe(),
            kind=self.kind,
            size=1,
            curves=(self.line_a, self.line_b),
            evaluate=evaluate,
            source=self,
        )


@dataclass(eq=False)
class Perpendicular(_LinePair):
    """Line directions are orthogonal: ``d_a . d_b = 0``."""

    kind: ClassVar[str] = "perpendicular"

    def build(self, lookup: CurveLookup) -> EquationBlock:
        def evaluate(pa: np.ndarray, pb: np.ndarray) -> Tuple[np.ndarray, Tuple[np.ndarray, ...]]:
            da = _line_direction(pa)
            db = _line_direction(pb)
            value = float(np.dot(da, db))
            return np.array([value]), (_direction_jacobian(db), _direction_jacobian(da))

        return self._block(evaluate)


@dataclass(eq=False)
class Parallel(_LinePair):
    """Line directions are collinear: ``d_a x d_b = 0``."""

    kind: ClassVar[str] = "parallel"

    def build(self, lookup: CurveLookup) -> EquationBlock:
        def evaluate(pa: np.ndarray, pb: np.ndarray) -> Tuple[np.ndarray, Tuple[np.ndarray, ...]]:
            da = _line_direction(pa)
            db = _line_direction(pb)
            value = float(da[0] * db[1] - da[1] * db[0])
            # d(cross)/d(da) = (db_y, -db_x); d(cross)/d(db) = (-da_y, da_x)
            ja = _direction_jacobian(np.array([db[1], -db[0]]))
            jb = _direction_jacobian(np.array([-da[1], da[0]]))
            return np.array([value]), (ja, jb)

        return self._block(evaluate)


@dataclass(eq=False)
class Equal(Constraint):
    """Equal radii for two arcs, or equal lengths for two lines."""

    curve_a: int
    curve_b: int

    kind: ClassVar[str] = "equal"

    def bindings(self) -> Tuple[Binding, ...]:
        return (self.curve_a, None), (self.curve_b, None)

    @classmethod
    def from_bindings(cls, bindings: Sequence[Binding], *, id: Optional[int] = None) -> "Equal":
        (a, _), (b, _) = cls._unpack(bindings)
        return cls._make(cls, (a, b), id)  # type: ignore[return-value]

    def validate(self, lookup: CurveLookup) -> None:
        a = lookup.curve(self.curve_a)
        b = lookup.curve(self.curve_b)
        if self.curve_a == self.curve_b:
            raise InvalidReferenceError("equal needs two distinct curves")
        if isinstance(a, CircularArc) and isinstance(b, CircularArc):
            return
        if isinstance(a, LineSegment) and isinstance(b, LineSegment):
            return
        raise InvalidReferenceError(
            f"equal needs two arcs or two lines, got {a.kind} {a.id} and {b.kind} {b.id}"
        )

    def build(self, lookup: CurveLookup) -> EquationBlock:
        if isinstance(lookup.curve(self.curve_a), CircularArc):
            evaluate = _equal_radius
        else:
            evaluate = _equal_length
        return EquationBlock(
            key=self.describe(),
            kind=self.kind,
            size=1,
            curves=(self.curve_a, self.curve_b),
            evaluate=evaluate,
            source=self,
        )


def _equal_radius(pa: np.ndarray, pb: np.ndarray) -> Tuple[np.ndarray, Tuple[np.ndarray, ...]]:
    ra, grad_a = scalar_synthesis(CircularArc.kind, ValueReference.ARC_RADIUS, pa)
    rb, grad_b = scalar_synthesis(CircularArc.kind, ValueReference.ARC_RADIUS, pb)
    return np.array([ra - rb], dtype=float), (grad_a[np.newaxis, :], -grad_b[np.newaxis, :])


def _equal_length(pa: np.ndarray, pb: np.ndarray) -> Tuple[np.ndarray, Tuple[np.ndarray, ...]]:
    da = _line_direction(pa)
    db = _line_direction(pb)
    la = math.hypot(da[0], da[1])
    lb = math.hypot(db[0], db[1])
    return np.array([la - lb]), (_direction_jacobian(da / la), -_direction_jacobian(db / lb))


@dataclass(eq=False)
class Tangent(Constraint):
    """The line runs along the arc's tangent at their connection end.

    The equation keeps the line direction orthogonal to the radius direction
    ``(cos t, sin t)`` at the connecting arc angle ``t``.
    """

    arc: int
    line: int
    connection: Optional[ValueReference] = None

    kind: ClassVar[str] = "tangent"

    def __post_init__(self) -> None:
        if self.connection is not None:
            self.connection = parse_reference(self.connection)

    def bindings(self) -> Tuple[Binding, ...]:
        return (self.arc, self.connection), (self.line, None)

    @classmethod
    def from_bindings(cls, bindings: Sequence[Binding], *, id: Optional[int] = None) -> "Tangent":
        (arc, connection), (line, _) = cls._unpack(bindings)
        return cls._make(cls, (arc, line, connection), id)  # type: ignore[return-value]

    def validate(self, lookup: CurveLookup) -> None:
        _require_kind(lookup.curve(self.arc), CircularArc, "tangent arc")
        _require_kind(lookup.curve(self.line), LineSegment, "tangent line")
        if self.connection is not None and self.connection not in _ARC_ENDS:
            raise InvalidReferenceError(
                f"tangent connection must be ArcStart or ArcEnd, got {self.connection.value}"
            )

    def resolve_connection(self, lookup: CurveLookup) -> ValueReference:
        """Pick the arc end touching the line.

        An explicit ``connection`` wins, then a coincidence joining an arc end
        to this line, then the arc end closest to either line endpoint.
        """

        if self.connection is not None:
            return self.connection
        for other in lookup.constraints:
            if not isinstance(other, Coincidence):
                continue
            sides = (
                (other.curve_a, other.ref_a, other.curve_b),
                (other.curve_b, other.ref_b, other.curve_a),
            )
            for curve_id, ref, partner in sides:
                if curve_id == self.arc and partner == self.line and ref in _ARC_ENDS:
                    return ref
        arc = lookup.curve(self.arc)
        line = lookup.curve(self.line)
        best = _ARC_ENDS[0]
        best_dist = math.inf
        for ref in _ARC_ENDS:
            px, py = reference_value(arc, ref)  # type: ignore[misc]
            for qx, qy in (line.start, line.end):  # type: ignore[attr-defined]
                dist = math.hypot(px - qx, py - qy)
                if dist < best_dist:
                    best, best_dist = ref, dist
        return best

    def build(self, lookup: CurveLookup) -> EquationBlock:
        connection = self.resolve_connection(lookup)
        index = arc_angle_index(connection)

        def evaluate(pa: np.ndarray, pl: np.ndarray) -> Tuple[np.ndarray, Tuple[np.ndarray, ...]]:
            angle = pa[index]
            cos_a = math.cos(angle)
            sin_a = math.sin(angle)
            d = _line_direction(pl)
            value = d[0] * cos_a + d[1] * sin_a
            ja = np.zeros((1, pa.size))
            ja[0, index] = -d[0] * sin_a + d[1] * cos_a
            jl = _direction_jacobian(np.array([cos_a, sin_a]))
            return np.array([value], dtype=float), (ja, jl)

        return EquationBlock(
            key=f"tangent({self.arc}.{connection.value},{self.line})",
            kind=self.kind,
            size=1,
            curves=(self.arc, self.line),
            evaluate=evaluate,
            source=self,
        )


@dataclass(eq=False)
class PointOnCurve(Constraint):
    """A point of ``curve`` lies on ``target`` (infinite line or full circle)."""

    curve: int
    ref: ValueReference
    target: int

    kind: ClassVar[str] = "point_on_curve"

    def __post_init__(self) -> None:
        self.ref = parse_reference(self.ref)

    def bindings(self) -> Tuple[Binding, ...]:
        return (self.curve, self.ref), (self.target, None)

    @classmethod
    def from_bindings(cls, bindings: Sequence[Binding], *, id: Optional[int] = None) -> "PointOnCurve":
        (curve, ref), (target, _) = cls._unpack(bindings)
        if ref is None:
            raise ValueError("point_on_curve needs a value reference for the point")
        return cls._make(cls, (curve, ref, target), id)  # type: ignore[return-value]

    def validate(self, lookup: CurveLookup) -> None:
        check_reference(lookup.curve(self.curve), self.ref)
        target = lookup.curve(self.target)
        if isinstance(target, Point):
            raise InvalidReferenceError(f"point_on_curve target {target.id} is a point, not a curve")
        if self.curve == self.target:
            raise InvalidReferenceError("point_on_curve cannot target the point's own curve")

    def build(self, lookup: CurveLookup) -> EquationBlock:
        kind = lookup.curve(self.curve).kind
        ref = self.ref
        target = lookup.curve(self.target)

        if isinstance(target, LineSegment):
            def evaluate(pp: np.ndarray, pl: np.ndarray) -> Tuple[np.ndarray, Tuple[np.ndarray, ...]]:
                point, jp = point_synthesis(kind, ref, pp)
                anchor = pl[0:2]
                d = _line_direction(pl)
                w = point - anchor
                length = math.hypot(d[0], d[1])
                cross = d[0] * w[1] - d[1] * w[0]
                df_dw = np.array([-d[1], d[0]]) / length
                df_dd = np.array([w[1], -w[0]]) / length - cross * d / length**3
                j_point = (df_dw @ jp).reshape(1, -1)
                j_line = np.concatenate([-df_dw - df_dd, df_dd]).reshape(1, 4)
                return np.array([cross / length], dtype=float), (j_point, j_line)
        else:
            def evaluate(pp: np.ndarray, pa: np.ndarray) -> Tuple[np.ndarray, Tuple[np.ndarray, ...]]:
                point, jp = point_synthesis(kind, ref, pp)
                q = point - pa[0:2]
                dist = math.hypot(q[0], q[1])
                unit = q / dist
                j_point = (unit @ jp).reshape(1, -1)
                j_arc = np.zeros((1, pa.size))
                j_arc[0, 0:2] = -unit
                j_arc[0, 2] = -1.0
                return np.array([dist - pa[2]], dtype=float), (j_point, j_arc)

        return EquationBlock(
            key=self.describe(),
            kind=self.kind,
            size=1,
            curves=(self.curve, self.target),
            evaluate=evaluate,
            source=self,
        )


CONSTRAINT_TYPES: Dict[str, Type[Constraint]] = {
    cls.kind: cls
    for cls in (Coincidence, Perpendicular, Parallel, Equal, Tangent, PointOnCurve)
}


def constraint_from_dict(data: Mapping[str, Any]) -> Constraint:
    """Rebuild a constraint from :meth:`Constraint.to_dict` output."""

    kind = data.get("kind")
    cls = CONSTRAINT_TYPES.get(str(kind))
    if cls is None:
        raise ValueError(f"Unknown constraint kind: {kind}")
    bindings = []
    for entry in data.get("bindings", []):
        ref = entry.get("ref")
        bindings.append((int(entry["curve"]), parse_reference(ref) if ref else None))
    raw_id = data.get("id")
    if raw_id is None:
        return cls.from_bindings(bindings)
    constraint_id = int(raw_id)
    reserve_ids(constraint_id)
    return cls.from_bindings(bindings, id=constraint_id)


__all__ = [
    "Binding",
    "CONSTRAINT_TYPES",
    "Coincidence",
    "Constraint",
    "CurveLookup",
    "Equal",
    "EquationBlock",
    "Parallel",
    "Perpendicular",
    "PointOnCurve",
    "Tangent",
    "constraint_from_dict",
]
