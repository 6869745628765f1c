"""Lookup tables for record names and bit-coded fields."""
from __future__ import annotations

from gdsdump.stream import constants as c


def lookup_enum(table: dict[int, str], value: int) -> str:
    """Return human-readable name for an enum value, or str(value) for unknowns."""
    return table.get(value, str(value))


RECORD_NAMES: dict[int, str] = {
    c.HEADER: "HEADER",
    c.BGNLIB: "BGNLIB",
    c.LIBNAME: "LIBNAME",
    c.UNITS: "UNITS",
    c.ENDLIB: "ENDLIB",
    c.BGNSTR: "BGNSTR",
    c.STRNAME: "STRNAME",
    c.ENDSTR: "ENDSTR",
    c.BOUNDARY: "BOUNDARY",
    c.PATH: "PATH",
    c.SREF: "SREF",
    c.AREF: "AREF",
    c.TEXT: "TEXT",
    c.LAYER: "LAYER",
    c.DATATYPE: "DATATYPE",
    c.WIDTH: "WIDTH",
    c.XY: "XY",
    c.ENDEL: "ENDEL",
    c.SNAME: "SNAME",
    c.COLROW: "COLROW",
    c.NODE: "NODE",
    c.TEXTTYPE: "TEXTTYPE",
    c.PRESENTATION: "PRESENTATION",
    c.STRING: "STRING",
    c.STRANS: "STRANS",
    c.MAG: "MAG",
    c.ANGLE: "ANGLE",
    c.PATHTYPE: "PATHTYPE",
    c.ELFLAGS: "ELFLAGS",
    c.NODETYPE: "NODETYPE",
    c.PROPATTR: "PROPATTR",
    c.PROPVALUE: "PROPVALUE",
    c.BOX: "BOX",
    c.BOXTYPE: "BOXTYPE",
    c.PLEX: "PLEX",
    c.BGNEXTN: "BGNEXTN",
    c.ENDEXTN: "ENDEXTN",
}

DATA_TYPE_NAMES: dict[int, str] = {
    c.DT_NONE: "no_data",
    c.DT_BITARRAY: "bit_array",
    c.DT_INT16: "int16",
    c.DT_INT32: "int32",
    c.DT_REAL32: "real32",
    c.DT_REAL64: "real64",
    c.DT_ASCII: "ascii",
}

# STRANS bits (bit 0 is the most significant bit of the 16-bit word)
STRANS_REFLECTION = 0x8000
STRANS_ABS_MAG = 0x0004
STRANS_ABS_ANGLE = 0x0002

# ELFLAGS bits
ELFLAGS_TEMPLATE = 0x0001
ELFLAGS_EXTERNAL = 0x0002

# PRESENTATION: font in bits 10-11, vertical in 12-13, horizontal in 14-15
PRESENTATION_VERTICAL: dict[int, str] = {0: "top", 1: "middle", 2: "bottom"}
PRESENTATION_HORIZONTAL: dict[int, str] = {0: "left", 1: "center", 2: "right"}

PATH_TYPES: dict[int, str] = {
    0: "flush",
    1: "round",
    2: "half_width",
    4: "custom",
}


def record_name(record_type: int) -> str | None:
    """Canonical name of a record type, or None when the code is unknown."""
    return RECORD_NAMES.get(record_type)


def is_known_record(record_type: int) -> bool:
    return record_type in RECORD_NAMES


def split_presentation(bits: int) -> tuple[int, str, str]:
    """Split PRESENTATION bits into (font, vertical, horizontal)."""
    font = (bits >> 4) & 0x3
    vertical = lookup_enum(PRESENTATION_VERTICAL, (bits >> 2) & 0x3)
    horizontal = lookup_enum(PRESENTATION_HORIZONTAL, bits & 0x3)
    return font, vertical, horizontal
