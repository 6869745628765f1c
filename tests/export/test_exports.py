"""Tests for JSON and CSV export."""
import csv
import io
import json

from gdsdump.export.csv_export import export_csv
from gdsdump.export.json_export import export_json, library_to_dict
from gdsdump.layout.builder import parse_library
from gdsdump.stream import constants as c

from streamkit import (
    SQUARE,
    ascii,
    boundary,
    element,
    int16s,
    library,
    record,
    structure,
    top_library,
    xy,
)


def _mixed():
    text = element(
        c.TEXT,
        record(c.LAYER, c.DT_INT16, int16s(10)),
        record(c.TEXTTYPE, c.DT_INT16, int16s(0)),
        record(c.PRESENTATION, c.DT_BITARRAY, b"\x00\x16"),
        record(c.PATHTYPE, c.DT_INT16, int16s(1)),
        record(c.XY, c.DT_INT32, xy((5, 5))),
        record(c.STRING, c.DT_ASCII, ascii("CLK")),
    )
    sref = element(
        c.SREF,
        record(c.SNAME, c.DT_ASCII, ascii("TOP")),
        record(c.XY, c.DT_INT32, xy((0, 0))),
        record(c.PROPATTR, c.DT_INT16, int16s(7)),
        record(c.PROPVALUE, c.DT_ASCII, ascii("inst0")),
    )
    return parse_library(library(
        "LIB",
        structure("TOP", boundary(1, 0)),
        structure("CHIP", sref, text),
    ))


class TestJSON:
    def test_top_library(self):
        data = json.loads(export_json(parse_library(top_library())))
        assert data["name"] == "TOP"
        assert data["version"] == 600
        assert data["user_units_per_db_unit"] == 0.001
        assert data["modified"] == [2024, 5, 17, 9, 30, 0]
        (struct,) = data["structures"]
        (shape,) = struct["elements"]
        assert shape["kind"] == "boundary"
        assert shape["layer"] == 1
        assert shape["points"] == [list(p) for p in SQUARE]
        assert "diagnostics" not in shape

    def test_reference_and_text(self):
        data = library_to_dict(_mixed())
        sref, text = data["structures"][1]["elements"]
        assert sref["referenced_structure_name"] == "TOP"
        assert sref["transform"]["magnification"] == 1.0
        assert sref["properties"] == {"7": "inst0"}
        assert text["text"] == "CLK"
        assert text["font"] == 1
        assert text["justification"] == ["middle", "right"]
        assert text["path_type_name"] == "round"

    def test_diagnostics_are_rendered(self):
        bad = element(c.BOUNDARY, record(c.LAYER, c.DT_INT16, int16s(1, 2)))
        data = library_to_dict(parse_library(library("LIB", structure("A", bad))))
        (message,) = data["structures"][0]["elements"][0]["diagnostics"]
        assert message.startswith("MalformedField at offset")


class TestCSV:
    def test_rows(self):
        rows = list(csv.DictReader(io.StringIO(export_csv(_mixed()))))
        assert [(r["structure"], r["index"], r["kind"]) for r in rows] == [
            ("TOP", "0", "boundary"),
            ("CHIP", "0", "sref"),
            ("CHIP", "1", "text"),
        ]
        assert rows[0]["point_count"] == "4"
        assert rows[1]["reference"] == "TOP"
        assert rows[1]["layer"] == str(c.UNSET)
        assert rows[2]["text"] == "CLK"
        assert rows[2]["diagnostics"] == "0"

    def test_identical_elements_keep_their_index(self):
        lib = parse_library(library("LIB", structure("A", boundary(1, 0), boundary(1, 0))))
        rows = list(csv.DictReader(io.StringIO(export_csv(lib))))
        assert [r["index"] for r in rows] == ["0", "1"]
