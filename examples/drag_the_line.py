"""Example: put a line's end on another line, then drag that end around interactively."""

from parametric_sketch import DataSet, LineSegment, ParametricSession, ValueReference


def distance_to_line(point, line: LineSegment) -> float:
    dx, dy = line.direction
    px = point[0] - line.start[0]
    py = point[1] - line.start[1]
    return abs(dx * py - dy * px) / line.length


def main() -> None:
    dataset = DataSet()
    line1 = dataset.add_line(13, 20, 10, 12)
    line2 = dataset.add_line(8, 10, 20, 9)
    dataset.add_point_on_curve(line1, ValueReference.LINE_END, line2)

    # First application of the new constraint.
    session = ParametricSession()
    session.init(dataset).raise_for_error()
    session.evaluate().raise_for_error()
    session.get_solution(apply_to_original=True)
    session.clear_solver()
    print("After first solve, distance:", distance_to_line(line1.end, line2))

    # Drag the end of line1; only the drag target changes between fast solves.
    session.init(dataset, [line1], [line1.end]).raise_for_error()
    x, y = line1.end
    last_good = (x, y)
    for step in range(100):
        candidate = (x * 1.01, y * 1.05)
        session.move_drag_point(candidate)
        if session.evaluate_fast():
            x, y = last_good = candidate
        else:
            # keep the previous position when the new one cannot be solved
            session.move_drag_point(last_good)
            print(f"Step {step}: rejected {candidate}")

    # Mouse released: finish precisely, warm-started from the last fast solution.
    session.evaluate(False).raise_for_error()
    session.get_solution(apply_to_original=True)
    session.clear_solver()
    print("Dragged end:", line1.end)
    print("Final distance:", distance_to_line(line1.end, line2))


if __name__ == "__main__":
    main()
