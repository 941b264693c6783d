"""File codecs for :class:`~parametric_sketch.dataset.DataSet`.

The codec is chosen from the file suffix: ``.xml`` files use an element tree
with one ``<curve>`` element per primitive and one ``<constraint>`` element
(with ``<bind>`` children) per relation; anything else is JSON. Both codecs
carry the same structure as :meth:`DataSet.to_dict` and keep float values
exact through ``repr``.
"""

from __future__ import annotations

import json
import logging
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Any, Dict, List, Union

from .dataset import FORMAT_NAME, FORMAT_VERSION, DataSet

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

_XML_SUFFIXES = {".xml"}


def _is_xml(path: Path) -> bool:
    return path.suffix.lower() in _XML_SUFFIXES


def dataset_to_xml(dataset: DataSet) -> str:
    data = dataset.to_dict()
    root = ET.Element("dataset", {"format": FORMAT_NAME, "version": str(FORMAT_VERSION)})
    curves_el = ET.SubElement(root, "curves")
    for curve in data["curves"]:
        attrs = {key: repr(value) if isinstance(value, float) else str(value) for key, value in curve.items()}
        ET.SubElement(curves_el, "curve", attrs)
    constraints_el = ET.SubElement(root, "constraints")
    for constraint in data["constraints"]:
        item = ET.SubElement(
            constraints_el,
            "constraint",
            {"id": str(constraint["id"]), "kind": constraint["kind"]},
        )
        for binding in constraint["bindings"]:
            attrs = {"curve": str(binding["curve"])}
            if binding["ref"] is not None:
                attrs["ref"] = binding["ref"]
            ET.SubElement(item, "bind", attrs)
    ET.indent(root)
    return ET.tostring(root, encoding="unicode")


def dataset_from_xml(text: str) -> DataSet:
    try:
        root = ET.fromstring(text)
    except ET.ParseError as exc:
        raise ValueError(f"malformed data set XML: {exc}") from exc
    if root.tag != "dataset":
        raise ValueError(f"expected a <dataset> root element, got <{root.tag}>")
    curves: List[Dict[str, Any]] = []
    for element in root.iter("curve"):
        entry: Dict[str, Any] = dict(element.attrib)
        entry["id"] = int(entry["id"])
        curves.append(entry)
    constraints: List[Dict[str, Any]] = []
    for element in root.iter("constraint"):
        constraints.append(
            {
                "id": int(element.attrib["id"]),
                "kind": element.attrib["kind"],
                "bindings": [
                    {"curve": int(bind.attrib["curve"]), "ref": bind.attrib.get("ref")}
                    for bind in element.iter("bind")
                ],
            }
        )
    return DataSet.from_dict(
        {
            "format": root.attrib.get("format", FORMAT_NAME),
            "version": int(root.attrib.get("version", FORMAT_VERSION)),
            "curves": curves,
            "constraints": constraints,
        }
    )


def save_dataset(dataset: DataSet, path: PathLike) -> Path:
    """Write ``dataset`` to ``path`` (XML for ``.xml``, JSON otherwise)."""

    target = Path(path)
    if target.parent and not target.parent.exists():
        target.parent.mkdir(parents=True, exist_ok=True)
    if _is_xml(target):
        text = dataset_to_xml(dataset)
    else:
        text = json.dumps(dataset.to_dict(), indent=2)
    target.write_text(text + "\n", encoding="utf-8")
    logger.info("Saved %r to %s", dataset, target)
    return target


def load_dataset(path: PathLike) -> DataSet:
    """Read a data set written by :func:`save_dataset`."""

    source = Path(path)
    text = source.read_text(encoding="utf-8")
    if _is_xml(source):
        dataset = dataset_from_xml(text)
    else:
        data = json.loads(text)
        if not isinstance(data, dict):
            raise ValueError(f"{source.name} must contain a JSON object")
        dataset = DataSet.from_dict(data)
    logger.info("Loaded %r from %s", dataset, source)
    return dataset


__all__ = [
    "dataset_from_xml",
    "dataset_to_xml",
    "load_dataset",
    "save_dataset",
]
