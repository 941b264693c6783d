"""Geometric primitives handled by the sketch solver.

Every primitive stores its free parameters directly so the compiler can
flatten a data set into a single vector:

* :class:`Point` -- ``(x, y)``
* :class:`LineSegment` -- ``(x1, y1, x2, y2)``
* :class:`CircularArc` -- ``(cx, cy, radius, start_angle, end_angle)``; the arc
  runs counter-clockwise from ``start_angle`` to ``end_angle``.
"""

from __future__ import annotations

import dataclasses
import math
import threading
from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, Mapping, Optional, Sequence, Tuple, Type

Point2D = Tuple[float, float]

_DEGENERATE_LENGTH = 1e-12

_ID_LOCK = threading.Lock()
_NEXT_ID = 1


def allocate_id() -> int:
    """Return a new process-unique identifier."""

    global _NEXT_ID
    with _ID_LOCK:
        value = _NEXT_ID
        _NEXT_ID += 1
    return value


def reserve_ids(upto: int) -> None:
    """Make sure identifiers up to ``upto`` are never handed out again."""

    global _NEXT_ID
    with _ID_LOCK:
        if upto >= _NEXT_ID:
            _NEXT_ID = upto + 1


def _as_point(value: Sequence[float]) -> Point2D:
    if len(value) != 2:
        raise ValueError(f"expected a 2-D point, got {value!r}")
    return float(value[0]), float(value[1])


@dataclass(eq=False)
class Curve:
    """Base class of all sketch primitives."""

    id: int = field(default_factory=allocate_id, kw_only=True)

    kind: ClassVar[str] = "curve"
    PARAMETER_NAMES: ClassVar[Tuple[str, ...]] = ()

    @classmethod
    def parameter_count(cls) -> int:
        return len(cls.PARAMETER_NAMES)

    def parameters(self) -> Tuple[float, ...]:
        raise NotImplementedError

    def assign_parameters(self, values: Sequence[float]) -> None:
        raise NotImplementedError

    @classmethod
    def from_parameters(cls, values: Sequence[float], *, id: Optional[int] = None) -> "Curve":
        raise NotImplementedError

    def _check_count(self, values: Sequence[float]) -> None:
        if len(values) != self.parameter_count():
            raise ValueError(
                f"{self.kind} expects {self.parameter_count()} parameters, got {len(values)}"
            )

    def with_parameters(self, values: Sequence[float]) -> "Curve":
        """Return a copy carrying ``values`` and the same identifier."""

        clone = self.copy()
        clone.assign_parameters(values)
        return clone

    def copy(self) -> "Curve":
        return dataclasses.replace(self)

    def fill_from(self, other: "Curve") -> None:
        """Overwrite this curve's geometry with the geometry of ``other``."""

        if type(other) is not type(self):
            raise TypeError(f"cannot fill {self.kind} from {other.kind}")
        self.assign_parameters(other.parameters())

    def degeneracy(self) -> Optional[str]:
        """Describe why the geometry is degenerate, or return ``None``."""

        return None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"id": self.id, "kind": self.kind}
        data.update(zip(self.PARAMETER_NAMES, self.parameters()))
        return data

    def __repr__(self) -> str:
        params = ", ".join(
            f"{name}={value:.6g}" for name, value in zip(self.PARAMETER_NAMES, self.parameters())
        )
        return f"{type(self).__name__}(id={self.id}, {params})"


@dataclass(eq=False, repr=False)
class Point(Curve):
    x: float
    y: float

    kind: ClassVar[str] = "point"
    PARAMETER_NAMES: ClassVar[Tuple[str, ...]] = ("x", "y")

    def __post_init__(self) -> None:
        self.x = float(self.x)
        self.y = float(self.y)

    @property
    def position(self) -> Point2D:
        return self.x, self.y

    def parameters(self) -> Tuple[float, ...]:
        return self.x, self.y

    def assign_parameters(self, values: Sequence[float]) -> None:
        self._check_count(values)
        self.x, self.y = float(values[0]), float(values[1])

    @classmethod
    def from_parameters(cls, values: Sequence[float], *, id: Optional[int] = None) -> "Point":
        if id is None:
            return cls(values[0], values[1])
        return cls(values[0], values[1], id=id)


@dataclass(eq=False, repr=False)
class LineSegment(Curve):
    start: Point2D
    end: Point2D

    kind: ClassVar[str] = "line"
    PARAMETER_NAMES: ClassVar[Tuple[str, ...]] = ("x1", "y1", "x2", "y2")

    def __post_init__(self) -> None:
        self.start = _as_point(self.start)
        self.end = _as_point(self.end)

    @classmethod
    def from_coords(cls, x1: float, y1: float, x2: float, y2: float, **kwargs: Any) -> "LineSegment":
        return cls((x1, y1), (x2, y2), **kwargs)

    @property
    def direction(self) -> Point2D:
        return self.end[0] - self.start[0], self.end[1] - self.start[1]

    @property
    def length(self) -> float:
        dx, dy = self.direction
        return math.hypot(dx, dy)

    @property
    def polar_angle(self) -> float:
        dx, dy = self.direction
        return math.atan2(dy, dx)

    def parameters(self) -> Tuple[float, ...]:
        return self.start[0], self.start[1], self.end[0], self.end[1]

    def assign_parameters(self, values: Sequence[float]) -> None:
        self._check_count(values)
        self.start = (float(values[0]), float(values[1]))
        self.end = (float(values[2]), float(values[3]))

    @classmethod
    def from_parameters(cls, values: Sequence[float], *, id: Optional[int] = None) -> "LineSegment":
        if id is None:
            return cls.from_coords(*values)
        return cls.from_coords(*values, id=id)

    def degeneracy(self) -> Optional[str]:
        if self.length <= _DEGENERATE_LENGTH:
            return f"line {self.id} has zero length"
        return None


@dataclass(eq=False, repr=False)
class CircularArc(Curve):
    center: Point2D
    start_angle: float
    end_angle: float
    radius: float

    kind: ClassVar[str] = "arc"
    PARAMETER_NAMES: ClassVar[Tuple[str, ...]] = ("cx", "cy", "radius", "start_angle", "end_angle")

    def __post_init__(self) -> None:
        self.center = _as_point(self.center)
        self.start_angle = float(self.start_angle)
        self.end_angle = float(self.end_angle)
        self.radius = float(self.radius)

    def point_at(self, angle: float) -> Point2D:
        return (
            self.center[0] + self.radius * math.cos(angle),
            self.center[1] + self.radius * math.sin(angle),
        )

    @property
    def start_point(self) -> Point2D:
        return self.point_at(self.start_angle)

    @property
    def end_point(self) -> Point2D:
        return self.point_at(self.end_angle)

    @property
    def start_tangent_angle(self) -> float:
        return self.start_angle + 0.5 * math.pi

    @property
    def end_tangent_angle(self) -> float:
        return self.end_angle + 0.5 * math.pi

    @property
    def sweep(self) -> float:
        """Counter-clockwise angular span in ``[0, 2*pi)``."""

        return (self.end_angle - self.start_angle) % (2.0 * math.pi)

    def parameters(self) -> Tuple[float, ...]:
        return self.center[0], self.center[1], self.radius, self.start_angle, self.end_angle

    def assign_parameters(self, values: Sequence[float]) -> None:
        self._check_count(values)
        self.center = (float(values[0]), float(values[1]))
        self.radius = float(values[2])
        self.start_angle = float(values[3])
        self.end_angle = float(values[4])

    @classmethod
    def from_parameters(cls, values: Sequence[float], *, id: Optional[int] = None) -> "CircularArc":
        cx, cy, radius, start_angle, end_angle = values
        if id is None:
            return cls((cx, cy), start_angle, end_angle, radius)
        return cls((cx, cy), start_angle, end_angle, radius, id=id)

    def degeneracy(self) -> Optional[str]:
        if not self.radius > 0.0:
            return f"arc {self.id} has non-positive radius {self.radius:.6g}"
        return None


CURVE_TYPES: Dict[str, Type[Curve]] = {
    Point.kind: Point,
    LineSegment.kind: LineSegment,
    CircularArc.kind: CircularArc,
}


def curve_type(kind: str) -> Type[Curve]:
    try:
        return CURVE_TYPES[kind]
    except KeyError as exc:
        raise ValueError(f"Unknown curve kind: {kind}") from exc


def curve_from_dict(data: Mapping[str, Any]) -> Curve:
    """Rebuild a curve from :meth:`Curve.to_dict` output."""

    cls = curve_type(str(data.get("kind")))
    try:
        values = [float(data[name]) for name in cls.PARAMETER_NAMES]
    except KeyError as exc:
        raise ValueError(f"{cls.kind} is missing parameter {exc.args[0]!r}") from exc
    raw_id = data.get("id")
    if raw_id is None:
        return cls.from_parameters(values)
    curve_id = int(raw_id)
    reserve_ids(curve_id)
    return cls.from_parameters(values, id=curve_id)


__all__ = [
    "CURVE_TYPES",
    "CircularArc",
    "Curve",
    "LineSegment",
    "Point",
    "Point2D",
    "allocate_id",
    "curve_from_dict",
    "curve_type",
    "reserve_ids",
]
