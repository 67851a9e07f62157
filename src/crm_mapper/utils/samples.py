"""Helpers for the source and target samples uploaded by the operator.

Only as much parsing as the rule contract needs: the source sample's field
names and the target sample's header row.
"""
from __future__ import annotations

import csv
import io
import json
from pathlib import Path
from typing import Any

import structlog

logger = structlog.get_logger(__name__)


def source_records(sample: Any) -> list[dict[str, Any]]:
    """Normalize a JSON source sample to a list of records.

    Accepts a single object, a list of objects, or an object wrapping a list
    under a single key (``{"donations": [...]}``).
    """
    if isinstance(sample, str):
        sample = json.loads(sample)
    if isinstance(sample, dict):
        values = list(sample.values())
        if len(values) == 1 and isinstance(values[0], list):
            sample = values[0]
        else:
            return [sample]
    if not isinstance(sample, list):
        raise ValueError(f"Source sample must be a JSON object or array, got {type(sample).__name__}")
    records = [r for r in sample if isinstance(r, dict)]
    if len(records) != len(sample):
        logger.warning("source_sample_non_object_rows", skipped=len(sample) - len(records))
    return records


def source_field_names(sample: Any) -> list[str]:
    """Ordered union of field names across all source records."""
    names: dict[str, None] = {}
    for record in source_records(sample):
        for key in record:
            names.setdefault(str(key), None)
    return list(names)


def target_columns_from_sample(text: str) -> list[str]:
    """Column names from the first row of a CSV target sample."""
    reader = csv.reader(io.StringIO(text.lstrip("\ufeff")))
    for row in reader:
        columns = [c.strip() for c in row if c.strip()]
        if columns:
            return columns
    return []


def load_source_sample(path: str | Path) -> Any:
    """Read a JSON source export sample."""
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def load_target_sample(path: str | Path) -> str:
    """Read a CSV target import sample as text."""
    return Path(path).read_text(encoding="utf-8-sig")


def render_source_sample(sample: Any) -> str:
    """Text form of the source sample as embedded in prompts."""
    if isinstance(sample, str):
        return sample.strip()
    return json.dumps(sample, indent=2, ensure_ascii=False)
