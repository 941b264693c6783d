"""Example: lines and fillet arcs joined into a rectangle with equal rounded corners."""

import math

from parametric_sketch import DataSet, ParametricSession, SolverSettings, ValueReference


def main() -> None:
    dataset = DataSet()
    lines = [
        dataset.add_line(0.5, -0.5, 8.5, 0.5),
        dataset.add_line(10.5, 1.5, 9.5, 8.5),
        dataset.add_line(9.5, 9.5, 0.5, 10.5),
        dataset.add_line(0.5, 8.5, -0.5, 1.5),
    ]
    arcs = [
        dataset.add_arc((1.5, 1.5), -math.pi, -math.pi * 0.5, 1.25),
        dataset.add_arc((9.25, 0.75), -math.pi * 0.5, 0.0, 0.5),
        dataset.add_arc((9.5, 9.5), math.pi * 0.1, math.pi * 0.5, 1.5),
        dataset.add_arc((1.2, 8.5), math.pi * 0.25, math.pi, 0.75),
    ]

    for i, line in enumerate(lines):
        dataset.add_coincidence(arcs[i], ValueReference.ARC_END, line, ValueReference.LINE_START)
        dataset.add_coincidence(line, ValueReference.LINE_END, arcs[(i + 1) % 4], ValueReference.ARC_START)

    dataset.add_perpendicular(lines[0], lines[1])
    dataset.add_parallel(lines[0], lines[2])
    dataset.add_parallel(lines[1], lines[3])

    dataset.add_equal(arcs[0], arcs[1])
    dataset.add_equal(arcs[1], arcs[2])
    dataset.add_equal(arcs[2], arcs[3])

    for i, line in enumerate(lines):
        dataset.add_tangent(arcs[i], line)
        dataset.add_tangent(arcs[(i + 1) % 4], line)

    session = ParametricSession(settings=SolverSettings(precision=1e-15))
    session.init(dataset).raise_for_error()
    outcome = session.evaluate().raise_for_error()
    print("Iterations:", outcome.iterations)
    print("Max residual:", outcome.max_residual)
    for warning in outcome.warnings:
        print("Warning:", warning)

    for curve in session.get_solution(apply_to_original=True):
        print(curve)
    print("Fillet radius:", arcs[0].radius)


if __name__ == "__main__":
    main()
