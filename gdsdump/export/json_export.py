"""Export a Library as JSON."""
from __future__ import annotations

import json
from dataclasses import fields

from gdsdump.layout import models as m
from gdsdump.stream.enums import (
    ELFLAGS_EXTERNAL,
    ELFLAGS_TEMPLATE,
    PATH_TYPES,
    lookup_enum,
    split_presentation,
)

# Bookkeeping fields rendered separately
_SKIP = {"diagnostics", "passthrough", "properties", "transform", "points"}


def element_to_dict(element: m.Element) -> dict:
    entry: dict = {"kind": element.kind}
    for f in fields(element):
        if f.name not in _SKIP:
            entry[f.name] = getattr(element, f.name)
    entry["points"] = [list(p) for p in element.points]
    transform = getattr(element, "transform", None)
    if transform is not None:
        entry["transform"] = {
            "mirrored": transform.mirrored,
            "magnification": transform.magnification,
            "angle_degrees": transform.angle_degrees,
            "absolute_magnification": transform.absolute_magnification,
            "absolute_angle": transform.absolute_angle,
        }
    if isinstance(element, m.Text):
        font, vertical, horizontal = split_presentation(element.presentation)
        entry["font"] = font
        entry["justification"] = [vertical, horizontal]
    if getattr(element, "path_type", None) is not None:
        entry["path_type_name"] = lookup_enum(PATH_TYPES, element.path_type)
    if element.elflags:
        entry["template"] = bool(element.elflags & ELFLAGS_TEMPLATE)
        entry["external"] = bool(element.elflags & ELFLAGS_EXTERNAL)
    if element.properties:
        entry["properties"] = {str(p.attribute): p.value for p in element.properties}
    if element.diagnostics:
        entry["diagnostics"] = [str(d) for d in element.diagnostics]
    return entry


def library_to_dict(library: m.Library) -> dict:
    data = {
        "name": library.name,
        "version": library.version,
        "user_units_per_db_unit": library.user_units_per_db_unit,
        "meters_per_db_unit": library.meters_per_db_unit,
        "modified": list(library.modified) if library.modified else None,
        "accessed": list(library.accessed) if library.accessed else None,
        "structures": [],
    }
    if library.diagnostics:
        data["diagnostics"] = [str(d) for d in library.diagnostics]

    for structure in library.structures:
        entry = {
            "name": structure.name,
            "modified": list(structure.modified) if structure.modified else None,
            "elements": [element_to_dict(e) for e in structure.elements],
        }
        if structure.diagnostics:
            entry["diagnostics"] = [str(d) for d in structure.diagnostics]
        data["structures"].append(entry)

    return data


def export_json(library: m.Library) -> str:
    """Export a library as JSON string."""
    return json.dumps(library_to_dict(library), indent=2)
