"""Export library elements as CSV."""
from __future__ import annotations

import csv
import io

from gdsdump.layout import models as m


def export_csv(library: m.Library) -> str:
    """Export one row per element as CSV string."""
    output = io.StringIO()
    writer = csv.writer(output)

    # Header
    writer.writerow([
        "structure", "index", "kind", "layer", "datatype",
        "point_count", "reference", "text", "diagnostics",
    ])

    for structure in library.structures:
        for index, element in enumerate(structure.elements):
            writer.writerow([
                structure.name,
                index,
                element.kind,
                element.layer,
                element.datatype,
                len(element.points),
                getattr(element, "referenced_structure_name", ""),
                getattr(element, "text", ""),
                len(element.diagnostics),
            ])

    return output.getvalue()
