from .errors import (
    InvalidReferenceError,
    ModelCompilationError,
    NonConvergenceError,
    SessionStateError,
    SketchError,
)
from .geometry import CircularArc, Curve, LineSegment, Point, curve_from_dict
from .references import ValueReference, reference_value
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
from .dataset import DataSet
from .persistence import load_dataset, save_dataset
from .solver import (
    DEFAULT_PRECISION,
    CompiledSystem,
    NewtonSolver,
    Outcome,
    ParametricSession,
    ScipyLeastSquaresSolver,
    SessionState,
    SolverSettings,
    compile_dataset,
    get_backend_factory,
    get_default_settings,
    set_default_precision,
    set_default_settings,
)

__all__ = [
    'SketchError',
    'InvalidReferenceError',
    'ModelCompilationError',
    'NonConvergenceError',
    'SessionStateError',
    'Curve',
    'Point',
    'LineSegment',
    'CircularArc',
    'curve_from_dict',
    'ValueReference',
    'reference_value',
    'Constraint',
    'Coincidence',
    'Perpendicular',
    'Parallel',
    'Equal',
    'Tangent',
    'PointOnCurve',
    'constraint_from_dict',
    'DataSet',
    'load_dataset',
    'save_dataset',
    'DEFAULT_PRECISION',
    'CompiledSystem',
    'NewtonSolver',
    'ScipyLeastSquaresSolver',
    'Outcome',
    'ParametricSession',
    'SessionState',
    'SolverSettings',
    'compile_dataset',
    'get_backend_factory',
    'get_default_settings',
    'set_default_precision',
    'set_default_settings',
]
