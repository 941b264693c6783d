"""Value references: addressing the point or scalar sub-values of a curve.

A reference resolves either to the current value stored on a curve object or,
inside the compiled system, to a synthesis formula over the curve's own
parameter array together with its exact partial derivatives.
"""

from __future__ import annotations

import math
from enum import Enum
from typing import Dict, Optional, Tuple, Union

import numpy as np

from .errors import InvalidReferenceError
from .geometry import CircularArc, Curve, LineSegment, Point

Point2D = Tuple[float, float]


class ValueReference(str, Enum):
    LINE_START = "LineStart"
    LINE_END = "LineEnd"
    ARC_START = "ArcStart"
    ARC_END = "ArcEnd"
    ARC_CENTER = "ArcCenter"
    ARC_RADIUS = "ArcRadius"
    POINT = "Point"

    def __str__(self) -> str:
        return self.value


_OWNER_KIND: Dict[ValueReference, str] = {
    ValueReference.LINE_START: LineSegment.kind,
    ValueReference.LINE_END: LineSegment.kind,
    ValueReference.ARC_START: CircularArc.kind,
    ValueReference.ARC_END: CircularArc.kind,
    ValueReference.ARC_CENTER: CircularArc.kind,
    ValueReference.ARC_RADIUS: CircularArc.kind,
    ValueReference.POINT: Point.kind,
}

_SCALAR_REFERENCES = frozenset({ValueReference.ARC_RADIUS})

# Local parameter indices of points stored directly on the curve.
_DIRECT_INDICES: Dict[ValueReference, Tuple[int, int]] = {
    ValueReference.LINE_START: (0, 1),
    ValueReference.LINE_END: (2, 3),
    ValueReference.ARC_CENTER: (0, 1),
    ValueReference.POINT: (0, 1),
}

# Arc parameter index of the angle that places a synthesized endpoint.
_ARC_ANGLE_INDEX: Dict[ValueReference, int] = {
    ValueReference.ARC_START: 3,
    ValueReference.ARC_END: 4,
}

_RADIUS_INDEX = 2


def parse_reference(value: Union[str, ValueReference]) -> ValueReference:
    """Accept a :class:`ValueReference`, its value (``"LineEnd"``) or its name (``"LINE_END"``)."""

    if isinstance(value, ValueReference):
        return value
    if isinstance(value, str):
        try:
            return ValueReference(value)
        except ValueError:
            pass
        try:
            return ValueReference[value.upper()]
        except KeyError:
            pass
    raise InvalidReferenceError(f"unknown value reference {value!r}")


def is_point_reference(ref: ValueReference) -> bool:
    return ref not in _SCALAR_REFERENCES


def point_references(kind: str) -> Tuple[ValueReference, ...]:
    """Point-valued references available on a curve of ``kind``, in declaration order."""

    return tuple(
        ref for ref in ValueReference if _OWNER_KIND[ref] == kind and is_point_reference(ref)
    )


def check_reference(curve: Curve, ref: ValueReference, *, point: bool = True) -> None:
    """Raise :class:`InvalidReferenceError` unless ``ref`` addresses a value of ``curve``."""

    if _OWNER_KIND[ref] != curve.kind:
        raise InvalidReferenceError(
            f"value reference {ref.value} is not valid for {curve.kind} {curve.id}"
        )
    if point and not is_point_reference(ref):
        raise InvalidReferenceError(f"value reference {ref.value} is not a point")
    if not point and is_point_reference(ref):
        raise InvalidReferenceError(f"value reference {ref.value} is not a scalar")


def reference_value(curve: Curve, ref: ValueReference) -> Union[Point2D, float]:
    """Current value addressed by ``ref`` on ``curve``."""

    check_reference(curve, ref, point=is_point_reference(ref))
    if ref is ValueReference.LINE_START:
        return curve.start  # type: ignore[attr-defined]
    if ref is ValueReference.LINE_END:
        return curve.end  # type: ignore[attr-defined]
    if ref is ValueReference.ARC_START:
        return curve.start_point  # type: ignore[attr-defined]
    if ref is ValueReference.ARC_END:
        return curve.end_point  # type: ignore[attr-defined]
    if ref is ValueReference.ARC_CENTER:
        return curve.center  # type: ignore[attr-defined]
    if ref is ValueReference.ARC_RADIUS:
        return curve.radius  # type: ignore[attr-defined]
    return curve.position  # type: ignore[attr-defined]


def direct_indices(ref: ValueReference) -> Optional[Tuple[int, int]]:
    """Local indices of a point stored verbatim in the parameter array, else ``None``."""

    return _DIRECT_INDICES.get(ref)


def point_synthesis(kind: str, ref: ValueReference, params: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Return the point addressed by ``ref`` and its 2 x n Jacobian w.r.t. ``params``."""

    if _OWNER_KIND[ref] != kind or not is_point_reference(ref):
        raise InvalidReferenceError(f"value reference {ref.value} is not a point of {kind}")
    jac = np.zeros((2, params.size), dtype=float)
    direct = _DIRECT_INDICES.get(ref)
    if direct is not None:
        ix, iy = direct
        jac[0, ix] = 1.0
        jac[1, iy] = 1.0
        return np.array([params[ix], params[iy]], dtype=float), jac

    angle_index = _ARC_ANGLE_INDEX[ref]
    radius = params[_RADIUS_INDEX]
    angle = params[angle_index]
    cos_a = math.cos(angle)
    sin_a = math.sin(angle)
    value = np.array([params[0] + radius * cos_a, params[1] + radius * sin_a], dtype=float)
    jac[0, 0] = 1.0
    jac[1, 1] = 1.0
    jac[0, _RADIUS_INDEX] = cos_a
    jac[1, _RADIUS_INDEX] = sin_a
    jac[0, angle_index] = -radius * sin_a
    jac[1, angle_index] = radius * cos_a
    return value, jac


def scalar_synthesis(kind: str, ref: ValueReference, params: np.ndarray) -> Tuple[float, np.ndarray]:
    """Return the scalar addressed by ``ref`` and its gradient w.r.t. ``params``."""

    if _OWNER_KIND[ref] != kind or is_point_reference(ref):
        raise InvalidReferenceError(f"value reference {ref.value} is not a scalar of {kind}")
    grad = np.zeros(params.size, dtype=float)
    grad[_RADIUS_INDEX] = 1.0
    return float(params[_RADIUS_INDEX]), grad


def arc_angle_index(ref: ValueReference) -> int:
    """Parameter index of the angle locating an arc endpoint reference."""

    try:
        return _ARC_ANGLE_INDEX[ref]
    except KeyError as exc:
        raise InvalidReferenceError(f"value reference {ref.value} is not an arc endpoint") from exc


def nearest_point_reference(curve: Curve, target: Point2D) -> ValueReference:
    """Point reference of ``curve`` closest to ``target`` (ties go to declaration order)."""

    best: Optional[ValueReference] = None
    best_dist = math.inf
    for ref in point_references(curve.kind):
        px, py = reference_value(curve, ref)  # type: ignore[misc]
        dist = math.hypot(px - target[0], py - target[1])
        if dist < best_dist:
            best = ref
            best_dist = dist
    assert best is not None
    return best


__all__ = [
    "ValueReference",
    "arc_angle_index",
    "check_reference",
    "direct_indices",
    "is_point_reference",
    "nearest_point_reference",
    "parse_reference",
    "point_references",
    "point_synthesis",
    "reference_value",
    "scalar_synthesis",
]
