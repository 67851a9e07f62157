"""Parses transformation responses into flat row records.

The service is asked for CSV, but a JSON array of flat objects is accepted
as well. Either way the columns must be exactly the target columns.
"""
from __future__ import annotations

import csv
import io
import json
from typing import Any, Sequence

import structlog

from crm_mapper.utils.error_handler import MalformedResponseError
from crm_mapper.utils.fences import strip_code_fence

logger = structlog.get_logger(__name__)

Row = dict[str, str]


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        raise ValueError("nested values are not allowed in row records")
    return str(value)


def _check_columns(found: Sequence[str], target_columns: Sequence[str], raw: str) -> None:
    missing = [c for c in target_columns if c not in found]
    extra = [c for c in found if c not in target_columns]
    if missing or extra:
        parts = []
        if missing:
            parts.append(f"missing columns {missing}")
        if extra:
            parts.append(f"unexpected columns {extra}")
        raise MalformedResponseError("; ".join(parts), raw)


def _parse_json_rows(data: Any, target_columns: Sequence[str], raw: str) -> list[Row]:
    if not isinstance(data, list) or not all(isinstance(r, dict) for r in data):
        raise MalformedResponseError("JSON response must be an array of objects", raw)

    keys: dict[str, None] = {}
    for record in data:
        for key in record:
            keys.setdefault(key, None)
    _check_columns(list(keys), target_columns, raw)

    rows: list[Row] = []
    for record in data:
        try:
            rows.append({column: _cell(record.get(column)) for column in target_columns})
        except ValueError as e:
            raise MalformedResponseError(str(e), raw) from e
    return rows


def _parse_csv_rows(content: str, target_columns: Sequence[str], raw: str) -> list[Row]:
    reader = csv.reader(io.StringIO(content))
    try:
        records = [row for row in reader if any(cell.strip() for cell in row)]
    except csv.Error as e:
        raise MalformedResponseError(f"invalid CSV ({e})", raw) from e

    if not records:
        raise MalformedResponseError("empty CSV response", raw)

    header = [c.strip() for c in records[0]]
    _check_columns(header, target_columns, raw)

    rows: list[Row] = []
    for line_no, record in enumerate(records[1:], start=2):
        if len(record) > len(header):
            raise MalformedResponseError(
                f"row {line_no} has {len(record)} cells for {len(header)} columns", raw
            )
        values = dict(zip(header, record))
        rows.append({column: values.get(column, "") for column in target_columns})
    return rows


def parse_transform_response(raw: str, target_columns: Sequence[str]) -> list[Row]:
    """Parse transformed rows, keyed by target column in rule order.

    Raises:
        MalformedResponseError: the text is neither CSV nor a JSON array with
            the expected columns.
    """
    content = strip_code_fence(raw).strip()
    if not content:
        raise MalformedResponseError("empty response", raw)

    if content[0] in "[{":
        try:
            data = json.loads(content)
        except json.JSONDecodeError:
            data = None
        if data is not None:
            rows = _parse_json_rows(data, target_columns, raw)
            logger.info("transformation_rows_parsed", format="json", rows=len(rows))
            return rows

    rows = _parse_csv_rows(content, target_columns, raw)
    logger.info("transformation_rows_parsed", format="csv", rows=len(rows))
    return rows


def rows_to_csv(rows: Sequence[Row], target_columns: Sequence[str]) -> str:
    """Serialize row records back to CSV text for export."""
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=list(target_columns), lineterminator="\n")
    writer.writeheader()
    writer.writerows(rows)
    return buffer.getvalue()
