"""Example: four loose lines pulled into a rectangle by coincidence and angle constraints."""

import math

from parametric_sketch import DataSet, ParametricSession, SolverSettings, ValueReference


def is_divisible(dividend: float, divider: float, precision: float) -> bool:
    quotient = round(dividend / divider)
    return abs(quotient * divider - dividend) < precision


def main() -> None:
    dataset = DataSet()
    line1 = dataset.add_line(0, 0, 10, 1)
    line2 = dataset.add_line(10, 0, 10, 11)
    line3 = dataset.add_line(10, 10, 1, 10)
    line4 = dataset.add_line(0, 10, 1, 1)

    dataset.add_coincidence(line1, ValueReference.LINE_END, line2, ValueReference.LINE_START)
    dataset.add_coincidence(line2, ValueReference.LINE_END, line3, ValueReference.LINE_START)
    dataset.add_coincidence(line3, ValueReference.LINE_END, line4, ValueReference.LINE_START)
    dataset.add_coincidence(line4, ValueReference.LINE_END, line1, ValueReference.LINE_START)
    dataset.add_perpendicular(line1, line2)
    dataset.add_perpendicular(line2, line3)
    dataset.add_parallel(line2, line4)

    precision = 1e-14
    session = ParametricSession(settings=SolverSettings(precision=precision))
    session.init(dataset).raise_for_error()
    outcome = session.evaluate().raise_for_error()
    print("Iterations:", outcome.iterations)
    print("Max residual:", outcome.max_residual)

    solved = {curve.id: curve for curve in session.get_solution(apply_to_original=True)}
    for line in (line1, line2, line3, line4):
        print(solved[line.id])

    check = max(precision, outcome.max_residual) * 10
    print(
        "Right angle 1-2:",
        is_divisible(line1.polar_angle - line2.polar_angle, math.pi / 2, check),
    )
    print("Parallel 2-4:", is_divisible(line2.polar_angle - line4.polar_angle, math.pi, check))


if __name__ == "__main__":
    main()
