"""GDSII stream format constants: record types, data types, framing sizes."""

# Record header: length(2) + record type(1) + data type(1)
RECORD_HEADER_SIZE = 4

# Record types
HEADER = 0x00
BGNLIB = 0x01
LIBNAME = 0x02
UNITS = 0x03
ENDLIB = 0x04
BGNSTR = 0x05
STRNAME = 0x06
ENDSTR = 0x07
BOUNDARY = 0x08
PATH = 0x09
SREF = 0x0A
AREF = 0x0B
TEXT = 0x0C
LAYER = 0x0D
DATATYPE = 0x0E
WIDTH = 0x0F
XY = 0x10
ENDEL = 0x11
SNAME = 0x12
COLROW = 0x13
NODE = 0x15
TEXTTYPE = 0x16
PRESENTATION = 0x17
STRING = 0x19
STRANS = 0x1A
MAG = 0x1B
ANGLE = 0x1C
PATHTYPE = 0x21
ELFLAGS = 0x26
NODETYPE = 0x2A
PROPATTR = 0x2B
PROPVALUE = 0x2C
BOX = 0x2D
BOXTYPE = 0x2E
PLEX = 0x2F
BGNEXTN = 0x30
ENDEXTN = 0x31

# Data types
DT_NONE = 0
DT_BITARRAY = 1
DT_INT16 = 2
DT_INT32 = 3
DT_REAL32 = 4
DT_REAL64 = 5
DT_ASCII = 6

# Element kinds, keyed by the record that opens them
ELEMENT_OPENERS: dict[int, str] = {
    BOUNDARY: "boundary",
    PATH: "path",
    SREF: "sref",
    AREF: "aref",
    TEXT: "text",
    NODE: "node",
    BOX: "box",
}

# Declared data type each record is expected to carry
EXPECTED_DATA_TYPE: dict[int, int] = {
    HEADER: DT_INT16,
    BGNLIB: DT_INT16,
    LIBNAME: DT_ASCII,
    UNITS: DT_REAL64,
    ENDLIB: DT_NONE,
    BGNSTR: DT_INT16,
    STRNAME: DT_ASCII,
    ENDSTR: DT_NONE,
    BOUNDARY: DT_NONE,
    PATH: DT_NONE,
    SREF: DT_NONE,
    AREF: DT_NONE,
    TEXT: DT_NONE,
    LAYER: DT_INT16,
    DATATYPE: DT_INT16,
    WIDTH: DT_INT32,
    XY: DT_INT32,
    ENDEL: DT_NONE,
    SNAME: DT_ASCII,
    COLROW: DT_INT16,
    NODE: DT_NONE,
    TEXTTYPE: DT_INT16,
    PRESENTATION: DT_BITARRAY,
    STRING: DT_ASCII,
    STRANS: DT_BITARRAY,
    MAG: DT_REAL64,
    ANGLE: DT_REAL64,
    PATHTYPE: DT_INT16,
    ELFLAGS: DT_BITARRAY,
    NODETYPE: DT_INT16,
    PROPATTR: DT_INT16,
    PROPVALUE: DT_ASCII,
    BOX: DT_NONE,
    BOXTYPE: DT_INT16,
    PLEX: DT_INT32,
    BGNEXTN: DT_INT32,
    ENDEXTN: DT_INT32,
}

# Sync points for resynchronization after a structural mismatch
SYNC_RECORDS = frozenset({BGNLIB, BGNSTR, ENDSTR, ENDLIB})

# Layer / datatype value before the corresponding record is seen
UNSET = -1
