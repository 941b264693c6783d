"""Error taxonomy shared by the data set, compiler and session layers."""

from __future__ import annotations


class SketchError(Exception):
    """Base class for every failure reported by the sketch solver."""


class InvalidReferenceError(SketchError, ValueError):
    """Raised when a constraint binds a curve or value reference that cannot exist."""


class ModelCompilationError(SketchError):
    """Raised when a data set cannot be turned into a system of equations."""


class NonConvergenceError(SketchError):
    """Reported when the numeric core fails to reach the requested precision."""

    def __init__(self, message: str, *, iterations: int = 0, max_residual: float = float("inf")):
        super().__init__(message)
        self.iterations = iterations
        self.max_residual = max_residual


class SessionStateError(SketchError, RuntimeError):
    """Raised when a session operation is invoked in the wrong lifecycle state."""


__all__ = [
    "InvalidReferenceError",
    "ModelCompilationError",
    "NonConvergenceError",
    "SessionStateError",
    "SketchError",
]
