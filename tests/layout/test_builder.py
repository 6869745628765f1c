"""Tests for StructuralBuilder: tree assembly, recovery and diagnostics."""
import asyncio
import io

import pytest

from gdsdump.layout import models as m
from gdsdump.layout.builder import (
    IN_STRUCTURE,
    StructuralBuilder,
    build_library,
    parse_library,
    parse_library_async,
)
from gdsdump.stream import constants as c
from gdsdump.stream.constants import UNSET
from gdsdump.stream.errors import StructuralMismatch, TruncatedPayload

from streamkit import (
    DATES,
    SQUARE,
    ascii,
    boundary,
    element,
    int16s,
    int32s,
    library,
    raw,
    reals,
    record,
    records_of,
    structure,
    top_library,
    xy,
)


def _only_structure(data: bytes) -> m.Structure:
    lib = parse_library(data)
    assert len(lib.structures) == 1
    return lib.structures[0]


class TestEndToEnd:
    def test_top_library(self):
        lib = parse_library(top_library())
        assert lib.name == "TOP"
        assert lib.user_units_per_db_unit == pytest.approx(0.001)
        assert lib.meters_per_db_unit == pytest.approx(1e-9)
        assert len(lib.structures) == 1
        top = lib.structures[0]
        assert top.name == "TOP"
        assert len(top.elements) == 1
        shape = top.elements[0]
        assert isinstance(shape, m.Boundary)
        assert (shape.layer, shape.datatype) == (1, 0)
        assert shape.points == SQUARE
        assert lib.all_diagnostics() == []

    def test_header_and_timestamps(self):
        lib = parse_library(top_library())
        assert lib.version == 600
        assert lib.modified == (2024, 5, 17, 9, 30, 0)
        assert lib.accessed == (2024, 5, 18, 10, 0, 0)
        assert lib.structures[0].modified == (2024, 5, 17, 9, 30, 0)

    def test_structural_balance(self):
        data = library(
            "LIB",
            structure("A", boundary(1, 0), boundary(2, 0)),
            structure("B"),
            structure("C", boundary(3, 1), boundary(3, 2), boundary(4, 0)),
        )
        lib = parse_library(data)
        assert [s.name for s in lib.structures] == ["A", "B", "C"]
        assert [len(s.elements) for s in lib.structures] == [2, 0, 3]
        assert lib.get_structure("C").elements[2].layer == 4
        assert lib.get_structure("missing") is None
        assert len(list(lib.iter_elements())) == 5

    def test_xy_records_append(self):
        data = library("LIB", structure("S", element(
            c.BOUNDARY,
            record(c.LAYER, c.DT_INT16, int16s(1)),
            record(c.XY, c.DT_INT32, xy((0, 0), (5, 0))),
            record(c.XY, c.DT_INT32, xy((5, 5),)),
        )))
        assert _only_structure(data).elements[0].points == [(0, 0), (5, 0), (5, 5)]

    def test_units_conversion(self):
        lib = parse_library(top_library())
        assert lib.db_to_user(1000) == pytest.approx(1.0)
        assert lib.db_to_meters(1000) == pytest.approx(1e-6)


class TestElementKinds:
    def test_path(self):
        data = library("LIB", structure("S", element(
            c.PATH,
            record(c.LAYER, c.DT_INT16, int16s(5)),
            record(c.DATATYPE, c.DT_INT16, int16s(2)),
            record(c.PATHTYPE, c.DT_INT16, int16s(4)),
            record(c.WIDTH, c.DT_INT32, int32s(50)),
            record(c.BGNEXTN, c.DT_INT32, int32s(10)),
            record(c.ENDEXTN, c.DT_INT32, int32s(-10)),
            record(c.XY, c.DT_INT32, xy((0, 0), (100, 0))),
        )))
        path = _only_structure(data).elements[0]
        assert isinstance(path, m.Path)
        assert (path.layer, path.datatype, path.path_type, path.width) == (5, 2, 4, 50)
        assert (path.begin_extension, path.end_extension) == (10, -10)

    def test_sref(self):
        data = library("LIB", structure("S", element(
            c.SREF,
            record(c.SNAME, c.DT_ASCII, ascii("CELL")),
            record(c.STRANS, c.DT_BITARRAY, b"\x80\x06"),
            record(c.MAG, c.DT_REAL64, reals(2.0)),
            record(c.ANGLE, c.DT_REAL64, reals(90.0)),
            record(c.XY, c.DT_INT32, xy((100, 200))),
        )))
        top = _only_structure(data)
        ref = top.elements[0]
        assert isinstance(ref, m.SRef)
        assert ref.referenced_structure_name == "CELL"
        assert ref.position == (100, 200)
        assert ref.transform == m.Transform(
            mirrored=True, magnification=2.0, angle_degrees=90.0,
            absolute_magnification=True, absolute_angle=True,
        )
        assert ref.layer == UNSET
        assert top.references == ["CELL"]

    def test_aref(self):
        data = library("LIB", structure("S", element(
            c.AREF,
            record(c.SNAME, c.DT_ASCII, ascii("VIA")),
            record(c.COLROW, c.DT_INT16, int16s(4, 3)),
            record(c.XY, c.DT_INT32, xy((0, 0), (400, 0), (0, 300))),
        )))
        ref = _only_structure(data).elements[0]
        assert isinstance(ref, m.ARef)
        assert (ref.columns, ref.rows) == (4, 3)
        assert ref.position == (0, 0)
        assert ref.column_corner == (400, 0)
        assert ref.row_corner == (0, 300)
        assert ref.transform.is_identity

    def test_text(self):
        data = library("LIB", structure("S", element(
            c.TEXT,
            record(c.LAYER, c.DT_INT16, int16s(63)),
            record(c.TEXTTYPE, c.DT_INT16, int16s(1)),
            record(c.PRESENTATION, c.DT_BITARRAY, b"\x00\x05"),
            record(c.XY, c.DT_INT32, xy((7, 8))),
            record(c.STRING, c.DT_ASCII, ascii("VDD")),
        )))
        text = _only_structure(data).elements[0]
        assert isinstance(text, m.Text)
        assert (text.layer, text.datatype) == (63, 1)
        assert text.presentation == 5
        assert text.position == (7, 8)
        assert text.text == "VDD"

    def test_node_and_box_types(self):
        data = library("LIB", structure(
            "S",
            element(c.NODE, record(c.LAYER, c.DT_INT16, int16s(1)),
                    record(c.NODETYPE, c.DT_INT16, int16s(3)),
                    record(c.XY, c.DT_INT32, xy((0, 0)))),
            element(c.BOX, record(c.LAYER, c.DT_INT16, int16s(2)),
                    record(c.BOXTYPE, c.DT_INT16, int16s(4)),
                    record(c.XY, c.DT_INT32, xy(*SQUARE, (0, 0)))),
        ))
        node, box = _only_structure(data).elements
        assert (node.kind, node.datatype) == ("node", 3)
        assert (box.kind, box.datatype, len(box.points)) == ("box", 4, 5)

    def test_properties_elflags_plex(self):
        data = library("LIB", structure("S", element(
            c.BOUNDARY,
            record(c.ELFLAGS, c.DT_BITARRAY, b"\x00\x01"),
            record(c.PLEX, c.DT_INT32, int32s(12)),
            record(c.LAYER, c.DT_INT16, int16s(1)),
            record(c.DATATYPE, c.DT_INT16, int16s(0)),
            record(c.XY, c.DT_INT32, xy(*SQUARE)),
            record(c.PROPATTR, c.DT_INT16, int16s(1)),
            record(c.PROPVALUE, c.DT_ASCII, ascii("net_a")),
        )))
        shape = _only_structure(data).elements[0]
        assert shape.elflags == 1
        assert shape.plex == 12
        assert shape.properties == [m.Property(1, "net_a")]

    def test_propvalue_without_propattr(self):
        data = library("LIB", structure("S", element(
            c.BOUNDARY,
            record(c.PROPVALUE, c.DT_ASCII, ascii("orphan")),
        )))
        shape = _only_structure(data).elements[0]
        assert shape.properties == []
        assert shape.diagnostics[0].kind == "StructuralMismatch"


class TestUnknownRecords:
    def test_unknown_inside_element_is_kept(self):
        data = library("LIB", structure("S", element(
            c.BOUNDARY,
            record(c.LAYER, c.DT_INT16, int16s(1)),
            record(0x55, c.DT_INT16, int16s(42)),
            record(c.DATATYPE, c.DT_INT16, int16s(0)),
            record(c.XY, c.DT_INT32, xy(*SQUARE)),
        )))
        shape = _only_structure(data).elements[0]
        assert (shape.layer, shape.datatype, shape.points) == (1, 0, SQUARE)
        assert [r.record_type for r in shape.passthrough] == [0x55]
        assert shape.diagnostics == []

    def test_unknown_before_and_inside_library(self):
        unknown = record(0x60)
        data = unknown + library("LIB", unknown + structure("S", boundary(1, 0)))
        lib = parse_library(data)
        assert len(lib.passthrough) == 2
        assert lib.structures[0].passthrough == []
        assert lib.structures[0].elements[0].layer == 1

    def test_unknown_inside_structure(self):
        data = library("LIB", structure("S", boundary(1, 0), record(0x60)))
        top = _only_structure(data)
        assert len(top.passthrough) == 1
        assert len(top.elements) == 1


class TestMalformedFields:
    def test_bad_layer_payload_is_isolated(self):
        records = records_of(top_library())
        layer_at = next(i for i, r in enumerate(records) if r.record_type == c.LAYER)
        records[layer_at] = raw(c.LAYER, c.DT_INT16, b"\x00\x01\x02")
        lib = build_library(records)
        shape = lib.structures[0].elements[0]
        assert shape.layer == UNSET
        assert shape.datatype == 0
        assert shape.points == SQUARE
        assert [d.kind for d in shape.diagnostics] == ["MalformedField"]
        assert shape.diagnostics[0].record_type == c.LAYER

    def test_wrong_declared_type(self):
        data = library("LIB", structure(
            "S",
            element(c.BOUNDARY, record(c.LAYER, c.DT_INT32, int32s(1)),
                    record(c.XY, c.DT_INT32, xy(*SQUARE))),
            boundary(2, 0),
        ))
        first, second = _only_structure(data).elements
        assert first.layer == UNSET
        assert first.diagnostics[0].kind == "MalformedField"
        assert second.layer == 2
        assert second.diagnostics == []

    def test_bad_units(self):
        data = (record(c.HEADER, c.DT_INT16, int16s(600))
                + record(c.BGNLIB, c.DT_INT16, DATES)
                + record(c.LIBNAME, c.DT_ASCII, ascii("LIB"))
                + record(c.UNITS, c.DT_REAL64, reals(0.001))
                + record(c.ENDLIB))
        lib = parse_library(data)
        kinds = [d.kind for d in lib.diagnostics]
        assert kinds == ["MalformedField", "StructuralMismatch"]
        assert "UNITS" in lib.diagnostics[1].message

    def test_not_applicablerecord(self):
        data = library("LIB", structure("S", element(
            c.BOUNDARY,
            record(c.LAYER, c.DT_INT16, int16s(1)),
            record(c.SNAME, c.DT_ASCII, ascii("CELL")),
            record(c.XY, c.DT_INT32, xy(*SQUARE)),
        )))
        shape = _only_structure(data).elements[0]
        assert shape.points == SQUARE
        assert shape.diagnostics[0].kind == "StructuralMismatch"
        assert "SNAME does not apply to BOUNDARY" in shape.diagnostics[0].message


class TestStructuralRecovery:
    def test_stray_endel_skips_to_endstr(self):
        data = library(
            "LIB",
            structure("A", boundary(1, 0), record(c.ENDEL), boundary(2, 0)),
            structure("B", boundary(3, 0)),
        )
        lib = parse_library(data)
        a, b = lib.structures
        assert [e.layer for e in a.elements] == [1]
        assert "ENDEL while IN_STRUCTURE" in a.diagnostics[0].message
        assert [e.layer for e in b.elements] == [3]
        assert b.diagnostics == []

    def test_missing_endel(self):
        partial = (record(c.BOUNDARY)
                   + record(c.LAYER, c.DT_INT16, int16s(9)))
        data = library("LIB",
                       structure("A", boundary(1, 0), partial),
                       structure("B", boundary(2, 0)))
        a, b = parse_library(data).structures
        assert [e.layer for e in a.elements] == [1]
        assert "missing ENDEL" in a.diagnostics[0].message
        assert [e.layer for e in b.elements] == [2]

    def test_missing_endstr_before_bgnstr(self):
        unterminated = structure("A", boundary(1, 0))[:-4]
        data = library("LIB", unterminated, structure("B", boundary(2, 0)))
        lib = parse_library(data)
        assert [s.name for s in lib.structures] == ["B"]
        message = lib.diagnostics[0].message
        assert "BGNSTR while IN_STRUCTURE: missing ENDSTR" in message
        assert "structure 'A' discarded with 1 elements" in message

    def test_missing_endstr_before_endlib(self):
        unterminated = structure("A", boundary(1, 0))[:-4]
        lib = parse_library(library("LIB", unterminated))
        assert lib.structures == []
        assert lib.diagnostics[0].kind == "StructuralMismatch"
        assert "ENDLIB while IN_STRUCTURE" in lib.diagnostics[0].message

    def test_missing_endstr_inside_element(self):
        unterminated = structure("A", boundary(1, 0))[:-8]
        lib = parse_library(library("LIB", unterminated))
        assert lib.structures == []
        assert "ENDLIB while IN_ELEMENT: missing ENDSTR" in lib.diagnostics[0].message

    def test_element_opener_in_library_scope(self):
        data = library("LIB", boundary(1, 0), structure("A", boundary(2, 0)))
        lib = parse_library(data)
        assert "BOUNDARY while IN_LIBRARY" in lib.diagnostics[0].message
        assert [e.layer for e in lib.structures[0].elements] == [2]

    def test_records_before_bgnlib(self):
        data = record(c.LIBNAME, c.DT_ASCII, ascii("EARLY")) + top_library()
        lib = parse_library(data)
        assert lib.name == "TOP"
        assert "LIBNAME while TOP" in lib.diagnostics[0].message

    def test_mismatch_discards_partial_element(self):
        builder = StructuralBuilder()
        for r in records_of(top_library())[:10]:
            builder.feed(r)
        assert builder.element is not None
        builder.feed(raw(c.LIBNAME, c.DT_ASCII, ascii("X")))
        assert builder.element is None
        assert builder.state == IN_STRUCTURE
        assert builder.resyncing


class TestIncompleteStreams:
    def test_no_endlib(self):
        data = top_library()[:-4]
        with pytest.raises(StructuralMismatch, match="before ENDLIB") as exc_info:
            parse_library(data)
        assert exc_info.value.offset == len(data)
        assert f"at offset {len(data)}" in str(exc_info.value)

    def test_stream_ends_inside_structure(self):
        data = library("LIB", structure("CELL", boundary(1, 0)))
        cut = data.index(ascii("CELL")) + 4
        with pytest.raises(StructuralMismatch) as exc_info:
            parse_library(data[:cut])
        assert exc_info.value.context == "structure 'CELL'"
        assert exc_info.value.offset == cut

    def test_empty_stream(self):
        with pytest.raises(StructuralMismatch) as exc_info:
            parse_library(b"")
        assert exc_info.value.offset == 0

    def test_framing_error_carries_context(self):
        data = library("LIB", structure("CELL", boundary(1, 0)))
        cut = data.index(xy(*SQUARE)) + 8
        with pytest.raises(TruncatedPayload) as exc_info:
            parse_library(data[:cut])
        assert exc_info.value.context == "structure 'CELL' element BOUNDARY"

    def test_feed_returns_library_only_at_endlib(self):
        builder = StructuralBuilder()
        results = [builder.feed(r) for r in records_of(top_library())]
        assert all(r is None for r in results[:-1])
        assert results[-1].name == "TOP"
        assert builder.finish() is results[-1]

    def test_feed_all(self):
        done = StructuralBuilder().feed_all(records_of(top_library()))
        assert [lib.name for lib in done] == ["TOP"]


class TestSources:
    def test_file_object(self, top_stream):
        assert parse_library(io.BytesIO(top_stream)).name == "TOP"

    def test_path(self, top_gds):
        assert parse_library(top_gds).name == "TOP"

    def test_async(self, top_stream):
        async def run():
            stream = asyncio.StreamReader()
            stream.feed_data(top_stream)
            stream.feed_eof()
            return await parse_library_async(stream)

        lib = asyncio.run(run())
        assert lib.structures[0].elements[0].points == SQUARE
