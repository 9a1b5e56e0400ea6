"""Tests for delimited-text framing of bulk data."""

import json
from datetime import date

import pytest

from forcelink.bulk.framing import (
    EXTRA_KEY,
    encode_delimited,
    encode_ndjson,
    parse_delimited,
    parse_failure_rows,
    parse_success_rows,
)


class TestParseDelimited:
    def test_success_results(self):
        data = b'"sf__Id","sf__Created",Name\n"001xx000003DGb1",true,"Acme"\n"001xx000003DGb2",false,"Globex"\n'
        records = parse_success_rows(parse_delimited(data))

        assert [r.id for r in records] == ["001xx000003DGb1", "001xx000003DGb2"]
        assert [r.created for r in records] == [True, False]
        assert records[0].fields == {"Name": "Acme"}

    def test_failure_results(self):
        data = (
            'sf__Id,sf__Error,Name\n'
            ',"REQUIRED_FIELD_MISSING:Required fields are missing: [Name]:Name --",""\n'
        )
        records = parse_failure_rows(parse_delimited(data))

        assert len(records) == 1
        assert records[0].id == ""
        assert records[0].error.startswith("REQUIRED_FIELD_MISSING")
        assert records[0].fields == {"Name": ""}

    def test_quoted_cells(self):
        """Delimiters, quotes and newlines inside quoted cells survive."""
        data = 'Name,Description\n"Acme, Inc.","He said ""hi""\nthen left"\n'
        rows = parse_delimited(data)
        assert rows == [{"Name": "Acme, Inc.", "Description": 'He said "hi"\nthen left'}]

    def test_ragged_rows(self):
        data = "A,B,C\n1,2\n1,2,3,4,5\n"
        rows = parse_delimited(data)

        assert rows[0] == {"A": "1", "B": "2"}
        assert rows[1] == {"A": "1", "B": "2", "C": "3", EXTRA_KEY: ["4", "5"]}

    def test_bom_and_crlf(self):
        data = "\ufeffId,Name\r\n001,Acme\r\n".encode("utf-8")
        assert parse_delimited(data) == [{"Id": "001", "Name": "Acme"}]

    def test_blank_lines_skipped(self):
        assert parse_delimited("Id\n\n001\n\n") == [{"Id": "001"}]

    def test_single_column_empty_cells_kept(self):
        """An empty quoted cell is a row, not a blank line."""
        data = b'"Description"\n"first"\n""\n"third"\n'
        assert parse_delimited(data) == [
            {"Description": "first"},
            {"Description": ""},
            {"Description": "third"},
        ]

    @pytest.mark.parametrize("data", [b"", None, "Id,Name\n"])
    def test_empty(self, data):
        assert parse_delimited(data) == []

    @pytest.mark.parametrize("delimiter", ["\t", ";", "|", "`", "^"])
    def test_other_delimiters(self, delimiter):
        data = f"Id{delimiter}Name\n001{delimiter}Acme\n"
        assert parse_delimited(data, delimiter) == [{"Id": "001", "Name": "Acme"}]


class TestEncodeDelimited:
    def test_header_and_rows(self):
        body = encode_delimited([{"Name": "Acme", "Phone": "555"}, {"Name": "Globex"}])
        assert body == b"Name,Phone\nAcme,555\nGlobex,\n"

    def test_columns_first_seen_order(self):
        body = encode_delimited([{"B": 1}, {"A": 2, "B": 3}])
        assert body.splitlines()[0] == b"B,A"

    def test_explicit_columns_and_crlf(self):
        body = encode_delimited(
            [{"Name": "Acme", "Ignored": "x"}], columns=["Name"], line_ending="\r\n"
        )
        assert body == b"Name\r\nAcme\r\n"

    def test_value_formatting(self):
        body = encode_delimited(
            [{"Active": True, "Closed": False, "Owner": None, "Day": date(2024, 5, 1), "Note": "a,b"}]
        )
        assert body.splitlines()[1] == b'true,false,,2024-05-01,"a,b"'

    def test_tab_delimiter(self):
        body = encode_delimited([{"Id": "001", "Name": "Acme"}], delimiter="\t")
        assert body == b"Id\tName\n001\tAcme\n"

    def test_empty(self):
        assert encode_delimited([]) == b""

    def test_parse_encoded_output(self):
        rows = [{"Name": 'Quote "this"', "City": "Line\nbreak"}]
        assert parse_delimited(encode_delimited(rows)) == rows

    def test_single_column_missing_values_round_trip(self):
        encoded = encode_delimited([{"Name": "a"}, {"Name": None}, {"Name": "c"}])
        assert parse_delimited(encoded) == [{"Name": "a"}, {"Name": ""}, {"Name": "c"}]


class TestEncodeNdjson:
    def test_one_object_per_line(self):
        body = encode_ndjson([{"Name": "Acme"}, {"Name": "Globex", "Day": date(2024, 1, 1)}])
        lines = body.decode().splitlines()
        assert [json.loads(line) for line in lines] == [
            {"Name": "Acme"},
            {"Name": "Globex", "Day": "2024-01-01"},
        ]

    def test_empty(self):
        assert encode_ndjson([]) == b""
