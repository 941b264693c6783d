"""Translate a :class:`DataSet` snapshot into a :class:`CompiledSystem`."""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Sequence, Set, Tuple, Union

import numpy as np

from ..constraints import EquationBlock
from ..dataset import DataSet
from ..errors import InvalidReferenceError, ModelCompilationError
from ..geometry import Curve, Point
from ..logging_utils import apply_debug_logging
from ..references import (
    ValueReference,
    check_reference,
    direct_indices,
    nearest_point_reference,
    parse_reference,
    point_synthesis,
)
from .config import SolverSettings, get_default_settings
from .model import CompiledSystem, DragRequest, DragSpec, ResidualSpec

logger = logging.getLogger(__name__)

DragLike = Union[DragRequest, Tuple[int, Sequence[float]], Tuple[int, Sequence[float], Optional[ValueReference]]]


def _as_request(item: DragLike) -> DragRequest:
    if isinstance(item, DragRequest):
        return item
    if len(item) == 2:
        curve_id, point = item  # type: ignore[misc]
        ref = None
    elif len(item) == 3:
        curve_id, point, ref = item  # type: ignore[misc]
    else:
        raise ModelCompilationError(f"cannot interpret drag {item!r}")
    if isinstance(curve_id, Curve):
        curve_id = curve_id.id
    if isinstance(point, Point):
        point = point.position
    try:
        if len(point) != 2:
            raise ValueError(point)
        target = (float(point[0]), float(point[1]))
    except (TypeError, ValueError) as exc:
        raise ModelCompilationError(f"drag point must be a 2-D point, got {point!r}") from exc
    return DragRequest(int(curve_id), target, parse_reference(ref) if ref is not None else None)


def pair_drags(
    dragged_primitives: Optional[Sequence[Union[Curve, int]]],
    dragged_points: Optional[Sequence[Sequence[float]]],
) -> List[DragRequest]:
    """Zip the two parallel drag lists accepted by the session API."""

    primitives = list(dragged_primitives or [])
    points = list(dragged_points or [])
    if len(primitives) != len(points):
        raise ModelCompilationError(
            f"{len(primitives)} dragged primitive(s) but {len(points)} drag point(s)"
        )
    return [
        _as_request((curve.id if isinstance(curve, Curve) else curve, point))
        for curve, point in zip(primitives, points)
    ]


def _pin_block(curve: Curve, drag: DragSpec) -> EquationBlock:
    kind = curve.kind
    ref = drag.ref

    def evaluate(params: np.ndarray):
        value, jac = point_synthesis(kind, ref, params)
        return value - drag.target, (jac,)

    return EquationBlock(
        key=f"drag({curve.id}.{ref.value})",
        kind="drag",
        size=2,
        curves=(curve.id,),
        evaluate=evaluate,
    )


def compile_dataset(
    dataset: DataSet,
    drags: Iterable[DragLike] = (),
    *,
    settings: Optional[SolverSettings] = None,
) -> CompiledSystem:
    """Flatten ``dataset`` into a residual system ready for a solver backend.

    The data set is snapshotted first, so later edits to its curves never leak
    into the compiled system. Raises :class:`ModelCompilationError` when the
    geometry is degenerate, a binding is structurally invalid, a drag is
    malformed, or an equation is undefined at the initial guess.
    """

    settings = settings or get_default_settings()
    snapshot = dataset.snapshot()
    curves = snapshot.curves

    offsets = {}
    values: List[float] = []
    for curve in curves:
        problem = curve.degeneracy()
        if problem is not None:
            raise ModelCompilationError(f"degenerate geometry: {problem}")
        start = len(values)
        values.extend(curve.parameters())
        offsets[curve.id] = slice(start, len(values))
    x_initial = np.array(values, dtype=float)
    if not np.all(np.isfinite(x_initial)):
        raise ModelCompilationError("initial geometry contains non-finite values")

    residuals: List[ResidualSpec] = []
    row = 0

    def add_block(block: EquationBlock, source=None) -> None:
        nonlocal row
        residuals.append(
            ResidualSpec(
                key=block.key,
                kind=block.kind,
                block=block,
                rows=slice(row, row + block.size),
                columns=tuple(offsets[curve_id] for curve_id in block.curves),
                source=source,
            )
        )
        row += block.size

    for constraint in snapshot.constraints:
        try:
            constraint.validate(snapshot)
            block = constraint.build(snapshot)
        except InvalidReferenceError as exc:
            raise ModelCompilationError(
                f"constraint {constraint.describe()} cannot be compiled: {exc}"
            ) from exc
        add_block(block, constraint)

    drag_specs: List[DragSpec] = []
    driven: Set[int] = set()
    grips: Set[Tuple[int, ValueReference]] = set()
    for index, item in enumerate(drags):
        request = _as_request(item)
        try:
            curve = snapshot.curve(request.curve_id)
        except InvalidReferenceError as exc:
            raise ModelCompilationError(
                f"dragged curve {request.curve_id} is not part of the data set"
            ) from exc
        ref = request.ref or nearest_point_reference(curve, request.point)
        try:
            check_reference(curve, ref)
        except InvalidReferenceError as exc:
            raise ModelCompilationError(f"cannot drag {curve.kind} {curve.id}: {exc}") from exc
        if (curve.id, ref) in grips:
            raise ModelCompilationError(f"two drags hold {curve.id}.{ref.value}")
        grips.add((curve.id, ref))

        target = np.array(request.point, dtype=float)
        if not np.all(np.isfinite(target)):
            raise ModelCompilationError(f"drag point {request.point!r} is not finite")
        local = direct_indices(ref)
        if local is not None:
            base = offsets[curve.id].start
            columns = (base + local[0], base + local[1])
            driven.update(columns)
            drag_specs.append(DragSpec(index, curve.id, ref, target, driven=columns))
        else:
            drag = DragSpec(index, curve.id, ref, target)
            drag_specs.append(drag)
            add_block(_pin_block(curve, drag))

    free_index = np.array(
        [i for i in range(x_initial.size) if i not in driven], dtype=int
    )
    system = CompiledSystem(
        curves=curves,
        offsets=offsets,
        x_initial=x_initial,
        free_index=free_index,
        residuals=residuals,
        drags=drag_specs,
        equation_count=row,
        settings=settings,
    )

    x0 = system.initial_free()
    residual = system.residual(x0)
    jacobian = system.jacobian(x0)
    if not (np.all(np.isfinite(residual)) and np.all(np.isfinite(jacobian))):
        bad = [
            spec.key
            for spec in residuals
            if not np.all(np.isfinite(residual[spec.rows]))
            or not np.all(np.isfinite(jacobian[spec.rows]))
        ]
        raise ModelCompilationError(
            "equations undefined at the initial guess: " + ", ".join(bad or ["<unknown>"])
        )

    logger.info(
        "Compiled %d curves into %d parameters (%d free) and %d equations, %d drag(s)",
        len(curves),
        system.parameter_count,
        system.free_count,
        system.equation_count,
        len(drag_specs),
    )
    return system


apply_debug_logging(globals(), logger=logger)


__all__ = [
    "DragLike",
    "compile_dataset",
    "pair_drags",
]
