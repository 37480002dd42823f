"""
Read a system description from disk into raw, unscaled records.

Two layouts are understood. JSON mirrors ``SystemDescription`` directly:

    {
      "name": "Sol",
      "g": 6.67384e-20,
      "scale": 1000000.0,
      "background": {"meshFile": "sphere.obj", "textureFile": "stars.png",
                     "radius": 5000.0, "tilt": 60.0},
      "bodies": [
        {"name": "Sun", "mass": 1.989e30, "radius": 696000.0,
         "position": [0, 0, 0], "velocity": [0, 0, 0],
         "tilt": 7.25, "rotationalSpeed": 2.9e-6}
      ]
    }

XML uses one element per value, with vectors split into x/y/z children:

    <system>
      <g>6.67384e-20</g>
      <scale>1000000</scale>
      <background>
        <meshFile/> <textureFile/> <radius/> <tilt/>
      </background>
      <bodies>
        <body>
          <name/> <mass/> <radius/> <meshFile/> <textureFile/>
          <position><x/><y/><z/></position>
          <velocity><x/><y/><z/></velocity>
          <tilt/> <rotationalSpeed/>
        </body>
      </bodies>
    </system>

A body entry that fails to parse is skipped and the rest still load. A file
that cannot be read at all raises DescriptionError.
"""

from __future__ import annotations

import json
import os
import xml.etree.ElementTree as ET
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError

from .config import debug_enabled
from .models import BackgroundRecord, BodyRecord, SystemDescription

DATA_DIR = os.path.join(os.path.dirname(__file__), "data")
SAMPLE_SYSTEM = os.path.join(DATA_DIR, "system.xml")


class DescriptionError(ValueError):
    """The description file is missing or unreadable."""


def _text(element: Optional[ET.Element], tag: str) -> Optional[str]:
    if element is None:
        return None
    child = element.find(tag)
    if child is None or child.text is None:
        return None
    return child.text.strip()


def _xml_vector(element: ET.Element, tag: str) -> List[Optional[str]]:
    child = element.find(tag)
    if child is None:
        return []
    return [_text(child, axis) for axis in ("x", "y", "z")]


def _drop_missing(values: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in values.items() if value is not None}


def _xml_body(element: ET.Element) -> Dict[str, Any]:
    return _drop_missing(
        {
            "name": _text(element, "name"),
            "mass": _text(element, "mass"),
            "radius": _text(element, "radius"),
            "meshFile": _text(element, "meshFile"),
            "textureFile": _text(element, "textureFile"),
            "position": _xml_vector(element, "position"),
            "velocity": _xml_vector(element, "velocity"),
            "tilt": _text(element, "tilt"),
            "rotationalSpeed": _text(element, "rotationalSpeed"),
            "color": _text(element, "color"),
        }
    )


def _parse_xml(path: str) -> Dict[str, Any]:
    try:
        root = ET.parse(path).getroot()
    except ET.ParseError as exc:
        raise DescriptionError(f"Malformed XML in {path}: {exc}") from exc

    background = root.find("background")
    bodies = root.find("bodies")
    return _drop_missing(
        {
            "name": root.get("name") or _text(root, "name"),
            "g": _text(root, "g"),
            "scale": _text(root, "scale"),
            "background": None
            if background is None
            else _drop_missing(
                {
                    "meshFile": _text(background, "meshFile"),
                    "textureFile": _text(background, "textureFile"),
                    "radius": _text(background, "radius"),
                    "tilt": _text(background, "tilt"),
                }
            ),
            "bodies": []
            if bodies is None
            else [_xml_body(body) for body in bodies.findall("body")],
        }
    )


def _parse_json(path: str) -> Dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as exc:
        raise DescriptionError(f"Malformed JSON in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise DescriptionError(f"{path} does not contain a JSON object")
    return data


def parse_bodies(raw_bodies: List[Any]) -> Tuple[List[BodyRecord], List[str]]:
    """
    Validate each raw body on its own. Returns the records that parsed and a
    label for every entry that did not.
    """
    records: List[BodyRecord] = []
    skipped: List[str] = []
    for idx, raw in enumerate(raw_bodies):
        try:
            records.append(BodyRecord(**raw))
        except (ValidationError, TypeError) as exc:
            label = raw.get("name") if isinstance(raw, dict) else None
            skipped.append(label or f"body[{idx}]")
            if debug_enabled():
                print(f"Skipping body {label or idx}: {exc}")
    return records, skipped


def description_from_dict(data: Dict[str, Any]) -> SystemDescription:
    records, _ = parse_bodies(list(data.get("bodies") or []))
    try:
        background = BackgroundRecord(**(data.get("background") or {}))
        return SystemDescription(
            **{key: value for key, value in data.items() if key not in ("bodies", "background")},
            background=background,
            bodies=records,
        )
    except ValidationError as exc:
        raise DescriptionError(f"Invalid system description: {exc}") from exc


def load_description(path: str) -> SystemDescription:
    """Load a ``.json`` or ``.xml`` description file."""
    if not os.path.isfile(path):
        raise DescriptionError(f"No such description file: {path}")
    extension = os.path.splitext(path)[1].lower()
    if extension == ".json":
        data = _parse_json(path)
    elif extension == ".xml":
        data = _parse_xml(path)
    else:
        raise DescriptionError(f"Unsupported description format: {extension or path}")
    return description_from_dict(data)
