"""
Quote-always CSV encoding for exported patent rows.

Every data field is wrapped in double quotes with embedded quotes doubled
and line breaks flattened to a single space. The header row is written
unquoted from the keys of the first record. Empty input gives empty text,
with no header, and the output never ends with a newline.
"""
from __future__ import annotations

import csv
import io
from typing import Any, Mapping, Sequence

__all__ = ["encode", "flatten_value"]


def flatten_value(value: Any) -> str:
    if value is None:
        return ""
    return str(value).replace("\n", " ").replace("\r", " ")


def encode(records: Sequence[Mapping[str, Any]]) -> str:
    if not records:
        return ""

    headers = list(records[0].keys())

    buf = io.StringIO()
    buf.write(",".join(headers))
    buf.write("\n")

    writer = csv.writer(buf, quoting=csv.QUOTE_ALL, doublequote=True, lineterminator="\n")
    for record in records:
        writer.writerow([flatten_value(record.get(h)) for h in headers])

    # Fields cannot contain line breaks, so the last character is the row terminator
    return buf.getvalue()[:-1]
