"""DEBUG call tracing for the compiler and the solver backends.

Tracing costs a single ``isEnabledFor`` check per call while DEBUG is off.
When it is on, every wrapped call logs its arguments, its result and the time
spent. Residual vectors and Jacobians are reduced to shape, max-abs and
non-finite counts so a solve of a large sketch stays readable.
"""

from __future__ import annotations

import inspect
import logging
import time
from functools import wraps
from typing import Any, Callable, Iterable, Mapping, MutableMapping, Optional, Set, TypeVar, cast

import numpy as np

F = TypeVar("F", bound=Callable[..., Any])

_WRAPPED_FLAG = "_sketch_traced"
_MAX_ITEMS = 6
_MAX_LENGTH = 240


def describe_array(value: np.ndarray) -> str:
    """``array[3x4] max|.|=0.5`` style summary of a residual vector or Jacobian."""

    shape = "x".join(str(dim) for dim in value.shape) or "scalar"
    if value.size == 0:
        return f"array[{shape}] empty"
    if not np.issubdtype(value.dtype, np.number):
        return f"array[{shape}] dtype={value.dtype}"
    if value.size <= _MAX_ITEMS and value.ndim == 1:
        return f"array[{shape}] " + "[" + ", ".join(f"{float(item):.6g}" for item in value) + "]"
    mask = np.isfinite(value)
    text = f"array[{shape}]"
    if mask.any():
        text += f" max|.|={float(np.max(np.abs(value[mask]))):.3e}"
    missing = int(value.size - np.count_nonzero(mask))
    if missing:
        text += f" non_finite={missing}"
    return text


def describe(value: Any) -> str:
    """Short single-line rendering used in trace records."""

    if isinstance(value, np.ndarray):
        return describe_array(value)
    if isinstance(value, Mapping):
        shown = [f"{describe(key)}: {describe(item)}" for key, item in list(value.items())[:_MAX_ITEMS]]
        if len(value) > _MAX_ITEMS:
            shown.append(f"+{len(value) - _MAX_ITEMS} more")
        return "{" + ", ".join(shown) + "}"
    if isinstance(value, (list, tuple)):
        shown = [describe(item) for item in value[:_MAX_ITEMS]]
        if len(value) > _MAX_ITEMS:
            shown.append(f"+{len(value) - _MAX_ITEMS} more")
        body = ", ".join(shown)
        return f"({body})" if isinstance(value, tuple) else f"[{body}]"
    if isinstance(value, float):
        return f"{value:.6g}"
    if callable(value) and hasattr(value, "__qualname__"):
        return f"<{value.__qualname__}>"
    text = repr(value)
    if len(text) > _MAX_LENGTH:
        text = text[:_MAX_LENGTH] + "..."
    return text


def debug_log_call(
    logger: logging.Logger, *, name: Optional[str] = None, log_result: bool = True
) -> Callable[[F], F]:
    """Decorator tracing calls of the wrapped function at DEBUG level."""

    def decorator(func: F) -> F:
        if getattr(func, _WRAPPED_FLAG, False):
            return func
        label = name or func.__qualname__

        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any):
            if not logger.isEnabledFor(logging.DEBUG):
                return func(*args, **kwargs)
            rendered = [describe(arg) for arg in args]
            rendered.extend(f"{key}={describe(item)}" for key, item in kwargs.items())
            logger.debug("-> %s(%s)", label, ", ".join(rendered))
            started = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception as exc:
                logger.debug("<- %s raised %s: %s", label, type(exc).__name__, exc)
                raise
            elapsed = (time.perf_counter() - started) * 1000.0
            if log_result:
                logger.debug("<- %s = %s [%.2f ms]", label, describe(result), elapsed)
            else:
                logger.debug("<- %s [%.2f ms]", label, elapsed)
            return result

        setattr(wrapper, _WRAPPED_FLAG, True)
        return cast(F, wrapper)

    return decorator


def _trace_class(cls: type, logger: logging.Logger, skip: Set[str]) -> None:
    for attr, member in list(vars(cls).items()):
        qualified = f"{cls.__name__}.{attr}"
        if attr.startswith("__") or attr in skip or qualified in skip:
            continue
        wrapper_type = type(member) if isinstance(member, (staticmethod, classmethod)) else None
        func = member.__func__ if wrapper_type else member
        if not inspect.isfunction(func) or func.__module__ != cls.__module__:
            continue
        traced = debug_log_call(logger, name=qualified)(func)
        setattr(cls, attr, wrapper_type(traced) if wrapper_type else traced)


def apply_debug_logging(
    namespace: MutableMapping[str, Any],
    *,
    logger: Optional[logging.Logger] = None,
    skip: Optional[Iterable[str]] = None,
) -> None:
    """Trace the functions and class methods defined in ``namespace``.

    Meant to be called as ``apply_debug_logging(globals(), logger=logger)`` at
    the bottom of a module. Names listed in ``skip`` (plain or ``Class.method``)
    are left untouched; protocols and hot helpers belong there.
    """

    module = namespace.get("__name__")
    logger = logger or logging.getLogger(module if isinstance(module, str) else __name__)
    skip_set = set(skip or ())
    for name, value in list(namespace.items()):
        if name in skip_set or getattr(value, "__module__", None) != module:
            continue
        if inspect.isfunction(value):
            namespace[name] = debug_log_call(logger, name=name)(value)
        elif inspect.isclass(value):
            _trace_class(value, logger, skip_set)


__all__ = ["apply_debug_logging", "debug_log_call", "describe", "describe_array"]
