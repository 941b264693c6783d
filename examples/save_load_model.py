"""Example: persist a constrained data set as XML and JSON, reload it and solve the copy."""

import tempfile
from pathlib import Path

from parametric_sketch import DataSet, ParametricSession, ValueReference


def build() -> DataSet:
    dataset = DataSet()
    line1 = dataset.add_line(0, 0, 10, 1)
    line2 = dataset.add_line(10, 0, 10, 11)
    dataset.add_coincidence(line1, ValueReference.LINE_END, line2, ValueReference.LINE_START)
    dataset.add_perpendicular(line1, line2)
    return dataset


def main() -> None:
    original = build()
    with tempfile.TemporaryDirectory() as tmp:
        for name in ("model.xml", "model.json"):
            path = original.save(Path(tmp) / name)
            loaded = DataSet.load(path)
            print(f"{name}: {loaded!r}")
            print(path.read_text(encoding="utf-8"))

            session = ParametricSession()
            session.init(loaded).raise_for_error()
            session.evaluate().raise_for_error()
            for curve in session.get_solution():
                print(" ", curve)


if __name__ == "__main__":
    main()
