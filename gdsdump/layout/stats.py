"""Library summary: structure / element counts and layer distribution."""
from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field

from gdsdump.layout.models import Library


@dataclass
class LibrarySummary:
    name: str
    user_units_per_db_unit: float
    meters_per_db_unit: float
    structure_count: int = 0
    element_count: int = 0
    elements_by_kind: Counter = field(default_factory=Counter)
    layer_distribution: Counter = field(default_factory=Counter)  # (layer, datatype) -> count
    diagnostic_count: int = 0
    unknown_record_count: int = 0


def summarize(library: Library) -> LibrarySummary:
    """Count structures, elements per kind, and elements per (layer, datatype)."""
    summary = LibrarySummary(
        name=library.name,
        user_units_per_db_unit=library.user_units_per_db_unit,
        meters_per_db_unit=library.meters_per_db_unit,
        structure_count=len(library.structures),
        diagnostic_count=len(library.all_diagnostics()),
    )
    unknown = len(library.passthrough)
    for structure in library.structures:
        unknown += len(structure.passthrough)
        for element in structure.elements:
            unknown += len(element.passthrough)
            summary.element_count += 1
            summary.elements_by_kind[element.kind] += 1
            # References carry no layer of their own
            if element.kind not in ("sref", "aref"):
                summary.layer_distribution[(element.layer, element.datatype)] += 1
    summary.unknown_record_count = unknown
    return summary
