"""Indented text dump of a GDSII stream.

One keyword-led line per record. Depth 0 holds library-level records
(HEADER, BGNLIB, LIBNAME, UNITS, BGNSTR, ENDSTR, ENDLIB), depth 1 the
structure contents (STRNAME, element openers, ENDEL) and depth 2 the
element fields. A blank line precedes every BGNSTR and element opener.

    HEADER 600
    BGNLIB
    LIBNAME "TOP"
    UNITS 1.000000e-03 1.000000e-09

    BGNSTR
      STRNAME "TOP"

      BOUNDARY
        LAYER 1
        DATATYPE 0
        XY 0,0 1000,0 1000,1000 0,1000
      ENDEL
    ENDSTR
    ENDLIB

The dump can be produced straight from the record stream (dump_records) or
from a built Library (dump_library); both follow the same grammar.
"""
from __future__ import annotations

from typing import Callable, Iterable, Iterator, Optional, TextIO

from gdsdump.layout import models as m
from gdsdump.stream import constants as c
from gdsdump.stream.enums import (
    RECORD_NAMES,
    STRANS_ABS_ANGLE,
    STRANS_ABS_MAG,
    STRANS_REFLECTION,
)
from gdsdump.stream.errors import Diagnostic, MalformedField
from gdsdump.stream.records import RawRecord

_LIBRARY_LEVEL = frozenset({
    c.HEADER, c.BGNLIB, c.LIBNAME, c.UNITS, c.BGNSTR, c.ENDSTR, c.ENDLIB,
})
_STRUCTURE_LEVEL = frozenset({c.STRNAME, c.ENDEL, *c.ELEMENT_OPENERS})
_BLANK_BEFORE = frozenset({c.BGNSTR, *c.ELEMENT_OPENERS})

# Keyword for the datatype-like field of each element kind
_TYPE_KEYWORDS: dict[str, str] = {
    "boundary": "DATATYPE",
    "path": "DATATYPE",
    "text": "TEXTTYPE",
    "node": "NODETYPE",
    "box": "BOXTYPE",
}


def quote(text: str) -> str:
    escaped = text.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def _fmt_none(record: RawRecord) -> str:
    record.values()
    return ""


def _fmt_int(record: RawRecord) -> str:
    return str(record.values(1)[0])


def _fmt_hex(record: RawRecord) -> str:
    return f"0x{record.values(1)[0]:x}"


def _fmt_text(record: RawRecord) -> str:
    return quote(record.values(1)[0])


def _fmt_units(record: RawRecord) -> str:
    user, meters = record.values(2)
    return f"{user:.6e} {meters:.6e}"


def _fmt_real(record: RawRecord) -> str:
    return f"{record.values(1)[0]:.6f}"


def _fmt_colrow(record: RawRecord) -> str:
    columns, rows = record.values(2)
    return f"{columns} {rows}"


def _fmt_timestamps(record: RawRecord) -> str:
    # Dates are validated but not printed
    record.values()
    return ""


_FORMATTERS: dict[int, Callable[[RawRecord], str]] = {
    c.HEADER: _fmt_int,
    c.BGNLIB: _fmt_timestamps,
    c.LIBNAME: _fmt_text,
    c.UNITS: _fmt_units,
    c.ENDLIB: _fmt_none,
    c.BGNSTR: _fmt_timestamps,
    c.STRNAME: _fmt_text,
    c.ENDSTR: _fmt_none,
    c.BOUNDARY: _fmt_none,
    c.PATH: _fmt_none,
    c.SREF: _fmt_none,
    c.AREF: _fmt_none,
    c.TEXT: _fmt_none,
    c.NODE: _fmt_none,
    c.BOX: _fmt_none,
    c.ENDEL: _fmt_none,
    c.LAYER: _fmt_int,
    c.DATATYPE: _fmt_int,
    c.TEXTTYPE: _fmt_int,
    c.NODETYPE: _fmt_int,
    c.BOXTYPE: _fmt_int,
    c.PATHTYPE: _fmt_int,
    c.PROPATTR: _fmt_int,
    c.WIDTH: _fmt_int,
    c.PLEX: _fmt_int,
    c.BGNEXTN: _fmt_int,
    c.ENDEXTN: _fmt_int,
    c.SNAME: _fmt_text,
    c.STRING: _fmt_text,
    c.PROPVALUE: _fmt_text,
    c.COLROW: _fmt_colrow,
    c.STRANS: _fmt_hex,
    c.PRESENTATION: _fmt_hex,
    c.ELFLAGS: _fmt_hex,
    c.MAG: _fmt_real,
    c.ANGLE: _fmt_real,
}


class TextEmitter:
    """Render records or a Library as indented text lines."""

    def __init__(self, indent: int = 2, xy_per_line: int = 4):
        if indent < 0:
            raise ValueError("indent must be >= 0")
        if xy_per_line < 1:
            raise ValueError("xy_per_line must be >= 1")
        self.indent = indent
        self.xy_per_line = xy_per_line

    def _pad(self, depth: int) -> str:
        return " " * (self.indent * depth)

    def _line(self, depth: int, keyword: str, value: str = "") -> str:
        return f"{self._pad(depth)}{keyword} {value}" if value else f"{self._pad(depth)}{keyword}"

    def xy_lines(self, depth: int, points: list[m.Point]) -> list[str]:
        """XY keyword line, wrapped after every xy_per_line pairs."""
        pairs = [f"{x},{y}" for x, y in points]
        step = self.xy_per_line
        chunks = [pairs[i:i + step] for i in range(0, len(pairs), step)] or [[]]
        lines = [self._line(depth, "XY", " ".join(chunks[0]))]
        continuation = self._pad(depth) + " " * len("XY ")
        lines.extend(continuation + " ".join(chunk) for chunk in chunks[1:])
        return lines

    # ---- record stream -----------------------------------------------------

    def dump_records(self, records: Iterable[RawRecord]) -> Iterator[str]:
        """Dump records as they come, without building the tree."""
        depth = 0
        for record in records:
            rtype = record.record_type
            if rtype == c.BGNSTR or rtype == c.ENDEL:
                depth = 1
            elif rtype in c.ELEMENT_OPENERS:
                depth = 2
            elif rtype in (c.ENDSTR, c.ENDLIB, c.BGNLIB):
                depth = 0
            yield from self.record_lines(record, depth)

    def record_lines(self, record: RawRecord, current_depth: int = 0) -> list[str]:
        """Lines for one record; current_depth places unknown records."""
        rtype = record.record_type
        name = RECORD_NAMES.get(rtype)
        if name is None:
            return [self.unknown_line(current_depth, record)]

        if rtype in _LIBRARY_LEVEL:
            depth = 0
        elif rtype in _STRUCTURE_LEVEL:
            depth = 1
        else:
            depth = 2

        lines = [""] if rtype in _BLANK_BEFORE else []
        try:
            if rtype == c.XY:
                lines.extend(self.xy_lines(depth, record.as_points()))
            else:
                lines.append(self._line(depth, name, _FORMATTERS[rtype](record)))
        except MalformedField:
            lines.append(f"{self._pad(depth)}{name} # (unhandled, size={record.size})")
        return lines

    def unknown_line(self, depth: int, record: RawRecord) -> str:
        return (f"{self._pad(depth)}# Unknown 0x{record.record_type:02X}"
                f" (size={record.size})")

    # ---- built library -----------------------------------------------------

    def dump_library(self, library: m.Library) -> Iterator[str]:
        """Dump a built Library in the record grammar."""
        if library.version is not None:
            yield self._line(0, "HEADER", str(library.version))
        yield "BGNLIB"
        yield self._line(0, "LIBNAME", quote(library.name))
        yield self._line(0, "UNITS", f"{library.user_units_per_db_unit:.6e} "
                                     f"{library.meters_per_db_unit:.6e}")
        yield from self._extras(0, library.diagnostics, library.passthrough)

        for structure in library.structures:
            yield ""
            yield "BGNSTR"
            yield self._line(1, "STRNAME", quote(structure.name))
            yield from self._extras(1, structure.diagnostics, structure.passthrough)
            for element in structure.elements:
                yield ""
                yield from self.element_lines(element)
            yield "ENDSTR"
        yield "ENDLIB"

    def element_lines(self, element: m.Element) -> list[str]:
        lines = [self._line(1, element.kind.upper())]
        add = lines.append
        if element.elflags:
            add(self._line(2, "ELFLAGS", f"0x{element.elflags:x}"))
        if element.plex is not None:
            add(self._line(2, "PLEX", str(element.plex)))
        if element.layer != c.UNSET:
            add(self._line(2, "LAYER", str(element.layer)))
        type_keyword = _TYPE_KEYWORDS.get(element.kind)
        if type_keyword and element.datatype != c.UNSET:
            add(self._line(2, type_keyword, str(element.datatype)))

        if isinstance(element, m.Text) and element.presentation:
            add(self._line(2, "PRESENTATION", f"0x{element.presentation:x}"))
        if isinstance(element, m.SRef):
            add(self._line(2, "SNAME", quote(element.referenced_structure_name)))
        if getattr(element, "path_type", None) is not None:
            add(self._line(2, "PATHTYPE", str(element.path_type)))
        if getattr(element, "width", None) is not None:
            add(self._line(2, "WIDTH", str(element.width)))
        if isinstance(element, m.Path):
            if element.begin_extension is not None:
                add(self._line(2, "BGNEXTN", str(element.begin_extension)))
            if element.end_extension is not None:
                add(self._line(2, "ENDEXTN", str(element.end_extension)))
        transform = getattr(element, "transform", None)
        if transform is not None and not transform.is_identity:
            lines.extend(self._transform_lines(transform))
        if isinstance(element, m.ARef):
            add(self._line(2, "COLROW", f"{element.columns} {element.rows}"))
        if element.points:
            lines.extend(self.xy_lines(2, element.points))
        if isinstance(element, m.Text):
            add(self._line(2, "STRING", quote(element.text)))
        for prop in element.properties:
            add(self._line(2, "PROPATTR", str(prop.attribute)))
            add(self._line(2, "PROPVALUE", quote(prop.value)))
        lines.extend(self._extras(2, element.diagnostics, element.passthrough))
        add(self._line(1, "ENDEL"))
        return lines

    def _transform_lines(self, transform: m.Transform) -> list[str]:
        bits = 0
        if transform.mirrored:
            bits |= STRANS_REFLECTION
        if transform.absolute_magnification:
            bits |= STRANS_ABS_MAG
        if transform.absolute_angle:
            bits |= STRANS_ABS_ANGLE
        lines = [self._line(2, "STRANS", f"0x{bits:x}")]
        if transform.magnification != 1.0:
            lines.append(self._line(2, "MAG", f"{transform.magnification:.6f}"))
        if transform.angle_degrees != 0.0:
            lines.append(self._line(2, "ANGLE", f"{transform.angle_degrees:.6f}"))
        return lines

    def _extras(self, depth: int, diagnostics: list[Diagnostic],
                passthrough: list[RawRecord]) -> Iterator[str]:
        for diagnostic in diagnostics:
            yield f"{self._pad(depth)}# error: {diagnostic}"
        for record in passthrough:
            yield self.unknown_line(depth, record)


def write_dump(lines: Iterable[str], out: TextIO, source: Optional[str] = None) -> int:
    """Write dump lines with the standard comment header; returns line count."""
    out.write("# GDSII Text Dump\n")
    if source:
        out.write(f"# Source: {source}\n")
    out.write("\n")
    count = 0
    for line in lines:
        out.write(line + "\n")
        count += 1
    return count
