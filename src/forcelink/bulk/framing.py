"""
Delimited-text framing for bulk uploads and result downloads.

Result files carry synthetic columns alongside the submitted data:
sf__Id and sf__Created on successful rows, sf__Id and sf__Error on failed
rows. Ragged rows are parsed, not rejected.
"""

import csv
import io
import json
from collections.abc import Iterable, Mapping
from typing import Any

from forcelink.bulk.models import FailedRecord, SuccessRecord
from forcelink.utils.json_serializers import json_serializer

ID_COLUMN = "sf__Id"
CREATED_COLUMN = "sf__Created"
ERROR_COLUMN = "sf__Error"

# Cells beyond the header width
EXTRA_KEY = "_extra"


def _decode(data: bytes | str) -> str:
    if isinstance(data, bytes):
        return data.decode("utf-8-sig", errors="replace")
    return data.lstrip("\ufeff")


def parse_delimited(data: bytes | str | None, delimiter: str = ",") -> list[dict[str, Any]]:
    """
    Parse delimited text whose first row names the columns.

    Rows shorter than the header leave the trailing columns absent; cells
    beyond the header are kept as a list under "_extra". Blank lines are
    skipped and an empty body yields an empty list.

    Args:
        data: Raw body
        delimiter: Single-character column delimiter

    Returns:
        One dict per data row, keyed by header name
    """
    if not data:
        return []

    reader = csv.reader(io.StringIO(_decode(data), newline=""), delimiter=delimiter)
    header: list[str] | None = None
    rows: list[dict[str, Any]] = []

    for row in reader:
        if not row:
            continue
        if header is None:
            header = row
            continue

        record: dict[str, Any] = dict(zip(header, row))
        if len(row) > len(header):
            record[EXTRA_KEY] = row[len(header):]
        rows.append(record)

    return rows


def parse_success_rows(rows: Iterable[Mapping[str, Any]]) -> list[SuccessRecord]:
    records = []
    for row in rows:
        fields = dict(row)
        record_id = fields.pop(ID_COLUMN, "") or ""
        created = str(fields.pop(CREATED_COLUMN, "")).strip().lower() == "true"
        records.append(SuccessRecord(id=record_id, created=created, fields=fields))
    return records


def parse_failure_rows(rows: Iterable[Mapping[str, Any]]) -> list[FailedRecord]:
    records = []
    for row in rows:
        fields = dict(row)
        record_id = fields.pop(ID_COLUMN, "") or ""
        error = fields.pop(ERROR_COLUMN, "") or ""
        records.append(FailedRecord(id=record_id, error=error, fields=fields))
    return records


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (str, int, float)):
        return str(value)
    return str(json_serializer(value))


def encode_delimited(
    records: Iterable[Mapping[str, Any]],
    columns: list[str] | None = None,
    delimiter: str = ",",
    line_ending: str = "\n",
) -> bytes:
    """
    Frame records as delimited text with a header row.

    Args:
        records: Rows to write
        columns: Column order; defaults to keys in first-seen order across rows
        delimiter: Single-character column delimiter
        line_ending: Row terminator ("\\n" or "\\r\\n")

    Returns:
        UTF-8 encoded body. Missing values are written as empty cells.
    """
    rows = list(records)
    if columns is None:
        columns = []
        seen: set[str] = set()
        for row in rows:
            for key in row:
                if key not in seen:
                    seen.add(key)
                    columns.append(key)
    if not columns:
        return b""

    buffer = io.StringIO()
    writer = csv.writer(buffer, delimiter=delimiter, lineterminator=line_ending)
    writer.writerow(columns)
    for row in rows:
        writer.writerow([_cell(row.get(column)) for column in columns])
    return buffer.getvalue().encode("utf-8")


def encode_ndjson(records: Iterable[Mapping[str, Any]]) -> bytes:
    """Frame records as newline-delimited JSON."""
    lines = [json.dumps(dict(row), default=json_serializer, ensure_ascii=False) for row in records]
    return ("\n".join(lines) + "\n").encode("utf-8") if lines else b""


__all__ = [
    "ID_COLUMN",
    "CREATED_COLUMN",
    "ERROR_COLUMN",
    "EXTRA_KEY",
    "parse_delimited",
    "parse_success_rows",
    "parse_failure_rows",
    "encode_delimited",
    "encode_ndjson",
]
