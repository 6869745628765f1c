"""Rebuild the Library > Structure > Element tree from a flat record stream.

The builder is a state machine (TOP, IN_LIBRARY, IN_STRUCTURE, IN_ELEMENT)
driven by each record's type. Only closed entities are exposed: an element
joins its structure at ENDEL, a structure joins the library at ENDSTR, and
the library is returned at ENDLIB.

Recoverable problems never abort the build:
  - MalformedField: the field is skipped, a diagnostic is attached to the
    nearest open entity.
  - StructuralMismatch: a record arrived in a state that does not accept
    it. Any partial element is dropped, the diagnostic goes to the nearest
    open entity, and records are skipped until the next BGNSTR, BGNLIB,
    ENDSTR or ENDLIB. A sync record arriving too deep (missing ENDEL or
    ENDSTR) first unwinds to the level where it is valid; a structure that
    never saw its ENDSTR is discarded and the library carries the diagnostic.
  - Unknown record types are kept as passthrough records on the nearest
    open entity.
"""
from __future__ import annotations

from typing import Callable, Iterable, Optional

from gdsdump.layout import models as m
from gdsdump.log import get_logger
from gdsdump.stream import constants as c
from gdsdump.stream.enums import STRANS_ABS_ANGLE, STRANS_ABS_MAG, STRANS_REFLECTION
from gdsdump.stream.errors import Diagnostic, GDSError, MalformedField, StructuralMismatch
from gdsdump.stream.reader import AsyncRecordReader, RecordReader, Source
from gdsdump.stream.records import RawRecord

log = get_logger(__name__)

TOP = "TOP"
IN_LIBRARY = "IN_LIBRARY"
IN_STRUCTURE = "IN_STRUCTURE"
IN_ELEMENT = "IN_ELEMENT"

_ALL_KINDS = frozenset(m.ELEMENT_CLASSES)
_REFS = frozenset({"sref", "aref"})
_TRANSFORMED = frozenset({"sref", "aref", "text"})


# ---- element field setters -------------------------------------------------

def _set_layer(element: m.Element, record: RawRecord) -> None:
    element.layer = record.values(1)[0]


def _set_datatype(element: m.Element, record: RawRecord) -> None:
    element.datatype = record.values(1)[0]


def _set_width(element, record: RawRecord) -> None:
    element.width = record.values(1)[0]


def _set_path_type(element, record: RawRecord) -> None:
    element.path_type = record.values(1)[0]


def _set_begin_extension(element, record: RawRecord) -> None:
    element.begin_extension = record.values(1)[0]


def _set_end_extension(element, record: RawRecord) -> None:
    element.end_extension = record.values(1)[0]


def _add_points(element: m.Element, record: RawRecord) -> None:
    element.points.extend(record.as_points())


def _set_sname(element, record: RawRecord) -> None:
    element.referenced_structure_name = record.values(1)[0]


def _set_colrow(element, record: RawRecord) -> None:
    element.columns, element.rows = record.values(2)


def _set_string(element, record: RawRecord) -> None:
    element.text = record.values(1)[0]


def _set_presentation(element, record: RawRecord) -> None:
    element.presentation = record.values(1)[0]


def _set_strans(element, record: RawRecord) -> None:
    bits = record.values(1)[0]
    element.transform.mirrored = bool(bits & STRANS_REFLECTION)
    element.transform.absolute_magnification = bool(bits & STRANS_ABS_MAG)
    element.transform.absolute_angle = bool(bits & STRANS_ABS_ANGLE)


def _set_mag(element, record: RawRecord) -> None:
    element.transform.magnification = record.values(1)[0]


def _set_angle(element, record: RawRecord) -> None:
    element.transform.angle_degrees = record.values(1)[0]


def _set_elflags(element: m.Element, record: RawRecord) -> None:
    element.elflags = record.values(1)[0]


def _set_plex(element: m.Element, record: RawRecord) -> None:
    element.plex = record.values(1)[0]

FieldSetter = Callable[[m.Element, RawRecord], None]

# record type -> (element kinds that accept it, setter)
_ELEMENT_FIELDS: dict[int, tuple[frozenset, FieldSetter]] = {
    c.LAYER: (_ALL_KINDS - _REFS, _set_layer),
    c.DATATYPE: (frozenset({"boundary", "path"}), _set_datatype),
    c.TEXTTYPE: (frozenset({"text"}), _set_datatype),
    c.NODETYPE: (frozenset({"node"}), _set_datatype),
    c.BOXTYPE: (frozenset({"box"}), _set_datatype),
    c.WIDTH: (frozenset({"path", "text", "box"}), _set_width),
    c.PATHTYPE: (frozenset({"path", "text"}), _set_path_type),
    c.BGNEXTN: (frozenset({"path"}), _set_begin_extension),
    c.ENDEXTN: (frozenset({"path"}), _set_end_extension),
    c.XY: (_ALL_KINDS, _add_points),
    c.SNAME: (_REFS, _set_sname),
    c.COLROW: (frozenset({"aref"}), _set_colrow),
    c.STRING: (frozenset({"text"}), _set_string),
    c.PRESENTATION: (frozenset({"text"}), _set_presentation),
    c.STRANS: (_TRANSFORMED, _set_strans),
    c.MAG: (_TRANSFORMED, _set_mag),
    c.ANGLE: (_TRANSFORMED, _set_angle),
    c.ELFLAGS: (_ALL_KINDS, _set_elflags),
    c.PLEX: (_ALL_KINDS, _set_plex),
}


def _timestamps(values: tuple) -> tuple[Optional[m.Timestamp], Optional[m.Timestamp]]:
    if len(values) < 12:
        return None, None
    return tuple(values[0:6]), tuple(values[6:12])


class StructuralBuilder:
    """Stateful walker that assembles a Library from RawRecords.

    Feed records one at a time with feed(); it returns the Library when the
    closing ENDLIB is consumed and None otherwise.
    """

    def __init__(self):
        self.state = TOP
        self.version: Optional[int] = None
        self.library: Optional[m.Library] = None
        self.structure: Optional[m.Structure] = None
        self.element: Optional[m.Element] = None
        self.finished: Optional[m.Library] = None
        self.resyncing = False
        self.skipped = 0
        # End of the last record fed
        self.end_offset = 0
        self._property_attr: Optional[int] = None
        # Diagnostics and unknown records seen before BGNLIB
        self._orphan_diagnostics: list[Diagnostic] = []
        self._orphan_passthrough: list[RawRecord] = []

        self._handlers: dict[int, Callable[[RawRecord], Optional[m.Library]]] = {
            c.HEADER: self._on_header,
            c.BGNLIB: self._on_bgnlib,
            c.LIBNAME: self._on_libname,
            c.UNITS: self._on_units,
            c.ENDLIB: self._on_endlib,
            c.BGNSTR: self._on_bgnstr,
            c.STRNAME: self._on_strname,
            c.ENDSTR: self._on_endstr,
            c.ENDEL: self._on_endel,
            c.PROPATTR: self._on_propattr,
            c.PROPVALUE: self._on_propvalue,
        }
        for opener in c.ELEMENT_OPENERS:
            self._handlers[opener] = self._on_element_open
        for field_type in _ELEMENT_FIELDS:
            self._handlers[field_type] = self._on_element_field

    # ---- public API --------------------------------------------------------

    def feed(self, record: RawRecord) -> Optional[m.Library]:
        self.end_offset = record.offset + record.length
        handler = self._handlers.get(record.record_type)
        if handler is None:
            self._on_unknown(record)
            return None

        if self.resyncing:
            if record.record_type not in c.SYNC_RECORDS:
                self.skipped += 1
                return None
            self.resyncing = False
            log.debug("structure.resync", record=record.name, offset=record.offset,
                      skipped=self.skipped)

        return handler(record)

    def feed_all(self, records: Iterable[RawRecord]) -> list[m.Library]:
        """Feed every record; return the libraries completed along the way."""
        done = []
        for record in records:
            library = self.feed(record)
            if library is not None:
                done.append(library)
        return done

    def finish(self) -> m.Library:
        """Return the completed library, or raise if the stream stopped early.

        A library that is still open is discarded; the error points just past
        the last record fed.
        """
        if self.state != TOP or self.finished is None:
            raise StructuralMismatch(
                f"stream ended in state {self.state} before ENDLIB",
                offset=self.end_offset, context=self.context,
            )
        return self.finished

    @property
    def context(self) -> Optional[str]:
        """Human-readable location of the open structure / element."""
        parts = []
        if self.structure is not None:
            parts.append(f"structure {self.structure.name!r}")
        if self.element is not None:
            parts.append(f"element {self.element.label}")
        return " ".join(parts) or None

    # ---- diagnostics -------------------------------------------------------

    def _attach(self, diagnostic: Diagnostic) -> None:
        """Attach a diagnostic to the nearest open entity."""
        if self.element is not None:
            self.element.diagnostics.append(diagnostic)
        elif self.structure is not None:
            self.structure.diagnostics.append(diagnostic)
        elif self.library is not None:
            self.library.diagnostics.append(diagnostic)
        else:
            self._orphan_diagnostics.append(diagnostic)

    def _malformed(self, record: RawRecord, exc: MalformedField) -> None:
        if exc.offset is None:
            exc.offset = record.offset
        log.debug("field.malformed", record=record.name, offset=record.offset,
                  error=exc.message, context=self.context)
        self._attach(exc.to_diagnostic(record.record_type))

    def _mismatch(self, record: RawRecord, message: str) -> None:
        """Report a misplaced record, drop any partial element, start resync."""
        if self.element is not None:
            log.debug("element.discarded", element=self.element.label, context=self.context)
            self.element = None
            self._property_attr = None
            self.state = IN_STRUCTURE
        error = StructuralMismatch(message, offset=record.offset)
        log.debug("structure.mismatch", record=record.name, offset=record.offset,
                  error=message, state=self.state)
        self._attach(error.to_diagnostic(record.record_type))
        self.resyncing = True
        self.skipped = 0

    def _unwind(self, record: RawRecord, target: str, missing: str) -> None:
        """Drop open levels down to target before handling a sync record.

        A partial element is lost. When unwinding to the library, the
        unterminated structure is discarded too and the diagnostic names it.
        """
        message = f"{record.name} while {self.state}: missing {missing}"
        log.debug("structure.unwind", record=record.name, offset=record.offset,
                  state=self.state, target=target)
        if self.element is not None:
            self.element = None
            self._property_attr = None
            self.state = IN_STRUCTURE
        if target == IN_LIBRARY and self.structure is not None:
            structure = self.structure
            message += (f", structure {structure.name!r} discarded"
                        f" with {len(structure.elements)} elements")
            log.debug("structure.discarded", structure=structure.name,
                      elements=len(structure.elements))
            self.structure = None
            self.state = IN_LIBRARY
        self._attach(StructuralMismatch(message, offset=record.offset).to_diagnostic(
            record.record_type))

    # ---- library level -----------------------------------------------------

    def _on_header(self, record: RawRecord) -> None:
        if self.state != TOP:
            self._mismatch(record, f"HEADER while {self.state}")
            return
        try:
            self.version = record.values()[0]
        except MalformedField as exc:
            self._malformed(record, exc)

    def _on_bgnlib(self, record: RawRecord) -> None:
        if self.state != TOP:
            self._mismatch(record, f"BGNLIB while {self.state}")
            return
        library = m.Library(version=self.version)
        library.diagnostics.extend(self._orphan_diagnostics)
        library.passthrough.extend(self._orphan_passthrough)
        self._orphan_diagnostics = []
        self._orphan_passthrough = []
        self.library = library
        self.state = IN_LIBRARY
        try:
            library.modified, library.accessed = _timestamps(record.values())
        except MalformedField as exc:
            self._malformed(record, exc)

    def _on_libname(self, record: RawRecord) -> None:
        if self.state != IN_LIBRARY:
            self._mismatch(record, f"LIBNAME while {self.state}")
            return
        try:
            self.library.name = record.values(1)[0]
        except MalformedField as exc:
            self._malformed(record, exc)

    def _on_units(self, record: RawRecord) -> None:
        if self.state != IN_LIBRARY:
            self._mismatch(record, f"UNITS while {self.state}")
            return
        try:
            user, meters = record.values(2)
        except MalformedField as exc:
            self._malformed(record, exc)
            return
        self.library.user_units_per_db_unit = user
        self.library.meters_per_db_unit = meters
        self.library.has_units = True

    def _on_endlib(self, record: RawRecord) -> Optional[m.Library]:
        if self.state in (IN_STRUCTURE, IN_ELEMENT):
            self._unwind(record, IN_LIBRARY, "ENDSTR")
        elif self.state != IN_LIBRARY:
            self._mismatch(record, f"ENDLIB while {self.state}")
            return None

        library = self.library
        if not library.has_units:
            library.diagnostics.append(StructuralMismatch(
                "library closed without a UNITS record", offset=record.offset,
            ).to_diagnostic(record.record_type))
        self.library = None
        self.state = TOP
        self.finished = library
        log.debug("library.finished", library=library.name,
                  structures=len(library.structures))
        return library

    # ---- structure level ---------------------------------------------------

    def _on_bgnstr(self, record: RawRecord) -> None:
        if self.state in (IN_STRUCTURE, IN_ELEMENT):
            self._unwind(record, IN_LIBRARY, "ENDSTR")
        elif self.state != IN_LIBRARY:
            self._mismatch(record, f"BGNSTR while {self.state}")
            return
        self.structure = m.Structure()
        self.state = IN_STRUCTURE
        try:
            self.structure.modified, self.structure.accessed = _timestamps(record.values())
        except MalformedField as exc:
            self._malformed(record, exc)

    def _on_strname(self, record: RawRecord) -> None:
        if self.state != IN_STRUCTURE:
            self._mismatch(record, f"STRNAME while {self.state}")
            return
        try:
            self.structure.name = record.values(1)[0]
        except MalformedField as exc:
            self._malformed(record, exc)

    def _on_endstr(self, record: RawRecord) -> None:
        if self.state == IN_ELEMENT:
            self._unwind(record, IN_STRUCTURE, "ENDEL")
        elif self.state != IN_STRUCTURE:
            self._mismatch(record, f"ENDSTR while {self.state}")
            return
        self._close_structure()

    def _close_structure(self) -> None:
        structure = self.structure
        self.library.structures.append(structure)
        self.structure = None
        self.state = IN_LIBRARY
        log.debug("structure.closed", structure=structure.name,
                  elements=len(structure.elements))

    # ---- element level -----------------------------------------------------

    def _on_element_open(self, record: RawRecord) -> None:
        if self.state != IN_STRUCTURE:
            self._mismatch(record, f"{record.name} while {self.state}")
            return
        kind = c.ELEMENT_OPENERS[record.record_type]
        self.element = m.ELEMENT_CLASSES[kind]()
        self._property_attr = None
        self.state = IN_ELEMENT
        if record.payload or record.data_type != c.DT_NONE:
            self._malformed(record, MalformedField(
                f"{record.name} should carry no data, got {record.size} bytes",
            ))

    def _on_endel(self, record: RawRecord) -> None:
        if self.state != IN_ELEMENT:
            self._mismatch(record, f"ENDEL while {self.state}")
            return
        element = self.element
        if self._property_attr is not None:
            element.diagnostics.append(StructuralMismatch(
                f"PROPATTR {self._property_attr} without PROPVALUE",
                offset=record.offset,
            ).to_diagnostic(c.PROPATTR))
        self.structure.elements.append(element)
        self.element = None
        self._property_attr = None
        self.state = IN_STRUCTURE

    def _on_element_field(self, record: RawRecord) -> None:
        if self.state != IN_ELEMENT:
            self._mismatch(record, f"{record.name} while {self.state}")
            return
        kinds, setter = _ELEMENT_FIELDS[record.record_type]
        if self.element.kind not in kinds:
            self._not_applicable(record)
            return
        try:
            setter(self.element, record)
        except MalformedField as exc:
            self._malformed(record, exc)

    def _on_propattr(self, record: RawRecord) -> None:
        if self.state != IN_ELEMENT:
            self._mismatch(record, f"PROPATTR while {self.state}")
            return
        try:
            self._property_attr = record.values(1)[0]
        except MalformedField as exc:
            self._property_attr = None
            self._malformed(record, exc)

    def _on_propvalue(self, record: RawRecord) -> None:
        if self.state != IN_ELEMENT:
            self._mismatch(record, f"PROPVALUE while {self.state}")
            return
        if self._property_attr is None:
            self.element.diagnostics.append(StructuralMismatch(
                "PROPVALUE without a preceding PROPATTR", offset=record.offset,
            ).to_diagnostic(record.record_type))
            return
        try:
            value = record.values(1)[0]
        except MalformedField as exc:
            self._malformed(record, exc)
        else:
            self.element.properties.append(m.Property(self._property_attr, value))
        self._property_attr = None

    def _not_applicable(self, record: RawRecord) -> None:
        """A known field record inside an element kind that has no such field."""
        message = f"{record.name} does not apply to {self.element.kind.upper()}"
        log.debug("field.not_applicable", record=record.name, offset=record.offset,
                  context=self.context)
        self.element.diagnostics.append(
            StructuralMismatch(message, offset=record.offset).to_diagnostic(record.record_type)
        )

    # ---- unknown records ---------------------------------------------------

    def _on_unknown(self, record: RawRecord) -> None:
        log.debug("record.unknown", record_type=f"0x{record.record_type:02X}",
                  offset=record.offset, size=record.size, state=self.state)
        if self.element is not None:
            self.element.passthrough.append(record)
        elif self.structure is not None:
            self.structure.passthrough.append(record)
        elif self.library is not None:
            self.library.passthrough.append(record)
        else:
            self._orphan_passthrough.append(record)


def build_library(records: Iterable[RawRecord]) -> m.Library:
    """Build a Library from a record sequence, stopping at the first ENDLIB."""
    builder = StructuralBuilder()
    try:
        for record in records:
            if builder.feed(record) is not None:
                break
        return builder.finish()
    except GDSError as exc:
        if exc.context is None:
            exc.context = builder.context
        raise


def parse_library(source: Source, *, stop_at_endlib: bool = True) -> m.Library:
    """Frame and build a Library from a path, buffer or binary file object."""
    with RecordReader(source, stop_at_endlib=stop_at_endlib) as reader:
        return build_library(reader)


async def parse_library_async(stream, *, stop_at_endlib: bool = True) -> m.Library:
    """Async variant of parse_library for sources with an awaitable read(n)."""
    reader = AsyncRecordReader(stream, stop_at_endlib=stop_at_endlib)
    builder = StructuralBuilder()
    try:
        async for record in reader:
            if builder.feed(record) is not None:
                break
        return builder.finish()
    except GDSError as exc:
        if exc.context is None:
            exc.context = builder.context
        raise

