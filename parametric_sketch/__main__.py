import argparse
import logging
import sys
from typing import Optional, Sequence

from parametric_sketch import (
    DataSet,
    ParametricSession,
    SolverSettings,
    get_backend_factory,
    get_default_settings,
    load_dataset,
    save_dataset,
)

logger = logging.getLogger(__name__)


def _configure_logging(level: str) -> None:
    log_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=log_level,
        format="%(levelname)s:%(name)s:%(message)s",
    )


def _settings(precision: Optional[float]) -> SolverSettings:
    settings = get_default_settings()
    if precision is None:
        return settings
    return settings.with_precision(precision)


def main(argv: Optional[Sequence[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Solve a parametric sketch data set")
    parser.add_argument("path", help="Path to a data set file (.json or .xml)")
    parser.add_argument(
        "--precision",
        type=float,
        help="Convergence tolerance for the precise solve (default: 1e-12)",
    )
    parser.add_argument(
        "--backend",
        choices=["newton", "scipy"],
        default="newton",
        help="Numeric backend (default: newton)",
    )
    parser.add_argument(
        "--output",
        help="Write the solved data set to this path (.json or .xml)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Logging level (default: INFO)",
    )
    args = parser.parse_args(argv)

    _configure_logging(args.log_level)

    try:
        settings = _settings(args.precision)
    except ValueError as exc:
        logger.error("Invalid settings: %s", exc)
        raise SystemExit(1)

    logger.info("Loading data set from %s", args.path)
    try:
        dataset: DataSet = load_dataset(args.path)
    except (OSError, KeyError, ValueError) as exc:
        logger.error("Cannot load %s: %s", args.path, exc)
        raise SystemExit(1)

    session = ParametricSession(get_backend_factory(args.backend), settings)
    outcome = session.init(dataset)
    if not outcome:
        logger.error("Compilation failed: %s", outcome.error)
        raise SystemExit(1)
    for warning in outcome.warnings:
        logger.warning("%s", warning)

    outcome = session.evaluate()
    if not outcome:
        logger.error("Solve failed: %s", outcome.error)
        raise SystemExit(1)
    logger.info(
        "Solved in %d iteration(s), max residual %.3e",
        outcome.iterations,
        outcome.max_residual,
    )
    for warning in outcome.warnings:
        logger.warning("%s", warning)

    curves = session.get_solution(apply_to_original=True)
    session.clear_solver()

    print("Solved curves:")
    for curve in curves:
        print(f"  {curve!r}")

    if args.output:
        target = save_dataset(dataset, args.output)
        print(f"Solved data set written to {target}")


if __name__ == "__main__":
    main(sys.argv[1:])
