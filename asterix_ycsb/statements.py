"""SQL++ statement builder.

All quoting of untrusted input happens here, once per value:

- keys compared in a WHERE clause go through ``escape_string`` (single-quote
  doubling inside a '...' literal);
- keys and field names embedded in a record literal go through
  ``json_string``;
- field payloads are never embedded as text, only as ``hex("...")``.

Identifiers (dataverse, dataset, field names) are not quoted; callers check
names with ``is_valid_name`` and field names against the discovered schema.
"""
from __future__ import annotations

import json
from typing import Iterable, Mapping, Sequence


def escape_string(value: str) -> str:
    """Escape a value to be wrapped in single quotes."""
    return value.replace("'", "''")


def quoted(value: str) -> str:
    return "'" + escape_string(value) + "'"


def json_string(value: str) -> str:
    """Render a JSON string literal, quotes included."""
    return json.dumps(value, ensure_ascii=False)


def bytes_to_hex(data: bytes) -> str:
    return data.hex().upper()


def hex_to_bytes(text: str) -> bytes:
    return bytes.fromhex(text)


def hex_literal(data: bytes) -> str:
    return 'hex("' + bytes_to_hex(data) + '")'


def is_valid_name(name: str) -> bool:
    """Letter first, letters/digits/underscores in between, no trailing underscore."""
    if not name or not name.isascii():
        return False
    if not name[0].isalpha():
        return False
    if len(name) == 1:
        return True
    for c in name[1:-1]:
        if not (c.isalnum() or c == "_"):
            return False
    return name[-1].isalnum()


def use(dataverse: str) -> str:
    return f"USE {dataverse};"


def _projection(primary_key: str, fields: Iterable[str]) -> str:
    return ",".join([primary_key, *fields])


def select_by_key(dataverse: str, table: str, primary_key: str, fields: Sequence[str], key: str) -> str:
    return (
        use(dataverse)
        + f"SELECT {_projection(primary_key, fields)} FROM {table}"
        + f" WHERE {primary_key}={quoted(key)};"
    )


def scan_from_key(
    dataverse: str, table: str, primary_key: str, fields: Sequence[str], start_key: str, count: int
) -> str:
    return (
        use(dataverse)
        + f"SELECT {_projection(primary_key, fields)} FROM {table}"
        + f" WHERE {primary_key}>={quoted(start_key)}"
        + f" ORDER BY {primary_key} LIMIT {int(count)};"
    )


def delete_by_key(dataverse: str, table: str, primary_key: str, key: str) -> str:
    return use(dataverse) + f"DELETE FROM {table} WHERE {primary_key}={quoted(key)};"


def record_literal(primary_key: str, key: str, fields: Sequence[str], values: Mapping[str, bytes]) -> str:
    """One JSON-ish object; only fields present in ``values`` are written."""
    parts = [f"{json_string(primary_key)}:{json_string(key)}"]
    for col in fields:
        if col in values:
            parts.append(f"{json_string(col)}:{hex_literal(values[col])}")
    return "{" + ",".join(parts) + "}"


def insert_records(dataverse: str, table: str, literals: Sequence[str], upsert: bool = False) -> str:
    verb = "UPSERT" if upsert else "INSERT"
    return use(dataverse) + f"{verb} INTO {table} ([" + ",".join(literals) + "]);"


def update_subquery(
    table: str, primary_key: str, fields: Sequence[str], key: str, values: Mapping[str, bytes]
) -> str:
    """SELECT that re-projects a record with some fields replaced.

    The primary key is carried through unchanged, which is what makes an
    UPSERT of this SELECT behave as a partial update.
    """
    attributes = [primary_key]
    for col in fields:
        if col in values:
            attributes.append(f"{hex_literal(values[col])} AS {col}")
        else:
            attributes.append(col)
    return f"SELECT {','.join(attributes)} FROM {table} WHERE {primary_key}={quoted(key)}"


def upsert_subqueries(dataverse: str, table: str, subqueries: Sequence[str]) -> str:
    return use(dataverse) + f"UPSERT INTO {table} (" + " UNION ALL ".join(subqueries) + ");"


def primary_key_query(dataverse: str, dataset: str) -> str:
    return (
        "SELECT VALUE InternalDetails.PrimaryKey FROM Metadata.`Dataset` WHERE "
        f"DataverseName={quoted(dataverse)} AND DatasetName={quoted(dataset)};"
    )


def fields_query(dataverse: str, dataset: str) -> str:
    return (
        "SELECT VALUE dt.Derived.Record.Fields FROM Metadata.`Dataset` ds, Metadata.`Datatype` dt WHERE "
        f"ds.DataverseName={quoted(dataverse)} AND ds.DatasetName={quoted(dataset)}"
        " AND ds.DatatypeName=dt.DatatypeName;"
    )
