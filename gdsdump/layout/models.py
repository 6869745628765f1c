"""Dataclasses for the decoded layout tree: Library > Structure > Element."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from gdsdump.stream.constants import UNSET
from gdsdump.stream.errors import Diagnostic
from gdsdump.stream.records import RawRecord

Point = tuple[int, int]
Timestamp = tuple[int, int, int, int, int, int]


@dataclass
class Transform:
    """STRANS / MAG / ANGLE of a reference or text element."""
    mirrored: bool = False
    magnification: float = 1.0
    angle_degrees: float = 0.0
    absolute_magnification: bool = False
    absolute_angle: bool = False

    @property
    def is_identity(self) -> bool:
        return (not self.mirrored and not self.absolute_magnification
                and not self.absolute_angle
                and self.magnification == 1.0 and self.angle_degrees == 0.0)


@dataclass
class Property:
    attribute: int
    value: str


@dataclass
class Element:
    """Fields shared by every element kind."""
    kind = "element"

    layer: int = UNSET
    datatype: int = UNSET
    points: list[Point] = field(default_factory=list)
    elflags: int = 0
    plex: Optional[int] = None
    properties: list[Property] = field(default_factory=list)
    diagnostics: list[Diagnostic] = field(default_factory=list)
    passthrough: list[RawRecord] = field(default_factory=list)

    @property
    def label(self) -> str:
        return self.kind.upper()


@dataclass
class Boundary(Element):
    kind = "boundary"


@dataclass
class Path(Element):
    kind = "path"

    width: Optional[int] = None
    path_type: Optional[int] = None
    begin_extension: Optional[int] = None
    end_extension: Optional[int] = None


@dataclass
class SRef(Element):
    kind = "sref"

    referenced_structure_name: str = ""
    transform: Transform = field(default_factory=Transform)

    @property
    def label(self) -> str:
        return f"SREF {self.referenced_structure_name}"

    @property
    def position(self) -> Optional[Point]:
        return self.points[0] if self.points else None


@dataclass
class ARef(SRef):
    kind = "aref"

    columns: int = 0
    rows: int = 0

    @property
    def label(self) -> str:
        return f"AREF {self.referenced_structure_name}"

    @property
    def column_corner(self) -> Optional[Point]:
        """Position displaced by columns * column pitch."""
        return self.points[1] if len(self.points) > 1 else None

    @property
    def row_corner(self) -> Optional[Point]:
        """Position displaced by rows * row pitch."""
        return self.points[2] if len(self.points) > 2 else None


@dataclass
class Text(Element):
    kind = "text"

    text: str = ""
    presentation: int = 0
    width: Optional[int] = None
    path_type: Optional[int] = None
    transform: Transform = field(default_factory=Transform)

    @property
    def position(self) -> Optional[Point]:
        return self.points[0] if self.points else None


@dataclass
class Node(Element):
    kind = "node"


@dataclass
class Box(Element):
    kind = "box"

    width: Optional[int] = None


ELEMENT_CLASSES: dict[str, type[Element]] = {
    cls.kind: cls for cls in (Boundary, Path, SRef, ARef, Text, Node, Box)
}


@dataclass
class Structure:
    """A named cell holding graphical elements."""
    name: str = ""
    elements: list[Element] = field(default_factory=list)
    modified: Optional[Timestamp] = None
    accessed: Optional[Timestamp] = None
    diagnostics: list[Diagnostic] = field(default_factory=list)
    passthrough: list[RawRecord] = field(default_factory=list)

    def elements_of(self, kind: str) -> list[Element]:
        return [e for e in self.elements if e.kind == kind]

    @property
    def references(self) -> list[str]:
        """Names of structures referenced by SREF / AREF elements."""
        return [e.referenced_structure_name for e in self.elements
                if isinstance(e, SRef)]


@dataclass
class Library:
    """A decoded GDSII library."""
    name: str = ""
    user_units_per_db_unit: float = 0.0
    meters_per_db_unit: float = 0.0
    version: Optional[int] = None
    structures: list[Structure] = field(default_factory=list)
    modified: Optional[Timestamp] = None
    accessed: Optional[Timestamp] = None
    has_units: bool = False
    diagnostics: list[Diagnostic] = field(default_factory=list)
    passthrough: list[RawRecord] = field(default_factory=list)

    def get_structure(self, name: str) -> Optional[Structure]:
        """Get first structure with the given name."""
        for structure in self.structures:
            if structure.name == name:
                return structure
        return None

    def iter_elements(self):
        """Yield (structure, element) pairs in stream order."""
        for structure in self.structures:
            for element in structure.elements:
                yield structure, element

    def all_diagnostics(self) -> list[tuple[str, Diagnostic]]:
        """Every diagnostic in the tree, paired with where it was attached."""
        found = [(f"library {self.name!r}", d) for d in self.diagnostics]
        for structure in self.structures:
            where = f"structure {structure.name!r}"
            found.extend((where, d) for d in structure.diagnostics)
            for index, element in enumerate(structure.elements):
                found.extend(
                    (f"{where} element #{index} {element.label}", d)
                    for d in element.diagnostics
                )
        return found

    def db_to_user(self, value: int) -> float:
        """Convert a database-unit length to user units."""
        return value * self.user_units_per_db_unit

    def db_to_meters(self, value: int) -> float:
        return value * self.meters_per_db_unit
