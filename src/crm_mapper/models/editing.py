"""Local edits to individual column mappings.

Rules are immutable values. An edit produces a new ``ColumnMapping`` and
``replace_mapping`` swaps it into a new document with a recomputed summary.
"""
from __future__ import annotations

from typing import Iterable, Sequence

import structlog

from crm_mapper.config.loader import get_default_separator
from crm_mapper.models.mapping import ColumnMapping, MappingDocument
from crm_mapper.models.shared import ATTENTION_RULE_TYPES, RuleType
from crm_mapper.models.validation import (
    Violation,
    recompute_summary,
    rule_shape_problems,
    static_value_of,
)
from crm_mapper.utils.error_handler import EditValidationError

logger = structlog.get_logger(__name__)


def render_transformation_logic(
    rule_type: RuleType,
    source_fields: Sequence[str],
    target_column: str,
    *,
    separator: str = ", ",
    static_value: str = "",
    reformat_type: str = "",
    format_pattern: str = "",
) -> str:
    """Deterministic logic text for a rule type."""
    first = source_fields[0] if source_fields else ""
    joined = ", ".join(source_fields)

    if rule_type == RuleType.COPY:
        return f"Copy {first} directly to {target_column}"
    if rule_type == RuleType.REFORMAT:
        if format_pattern:
            return f"Convert {first} to {format_pattern} format"
        if reformat_type:
            return f"Convert {first} to {reformat_type} format"
        return f"Reformat {first} for {target_column}"
    if rule_type == RuleType.CONCATENATE:
        return f'Combine {joined} with separator "{separator}"'
    if rule_type == RuleType.EXTRACT:
        return f"Extract portions from {joined}"
    if rule_type == RuleType.STATIC:
        return f'Set to static value: "{static_value}"'
    return f"Leave {target_column} blank"


def check_edit(
    mapping: ColumnMapping,
    known_source_fields: Iterable[str] | None = None,
) -> list[Violation]:
    """Validate one edited rule.

    Raises:
        EditValidationError: the rule has the wrong number of source fields,
            references an unknown source field, or lacks logic.

    Returns:
        Soft warnings (e.g. a Static rule with an empty value).
    """
    violations, warnings = rule_shape_problems(mapping)

    if known_source_fields is not None:
        known = set(known_source_fields)
        unknown = [f for f in mapping.source_fields if f not in known]
        if unknown:
            violations.append(Violation(
                invariant="source_field_reference",
                message=f"Unknown source fields: {', '.join(unknown)}",
                rule_numbers=[mapping.rule_number],
            ))

    if violations:
        raise EditValidationError(violations)
    return warnings


def apply_edit(
    mapping: ColumnMapping,
    rule_type: RuleType | str,
    source_fields: Sequence[str],
    explicit_logic: str | None = None,
    *,
    separator: str | None = None,
    static_value: str | None = None,
    reformat_type: str = "",
    format_pattern: str = "",
    flag_assumption: bool = False,
    known_source_fields: Iterable[str] | None = None,
) -> ColumnMapping:
    """Produce an updated rule from a new type and source field selection.

    Free-text ``explicit_logic`` wins when it is non-blank; otherwise the
    logic is rendered from the per-type template. ``needs_attention`` is
    reset to whether the new type is Static/Blank, unless
    ``flag_assumption`` keeps it raised for an assumption the editor made.

    Raises:
        EditValidationError: the edited rule would be invalid.
    """
    rule_type = RuleType(rule_type)
    fields = list(source_fields)

    if separator is None:
        separator = get_default_separator()
    if static_value is None:
        # Keep the current value when re-saving a Static rule
        static_value = static_value_of(mapping) if mapping.type == RuleType.STATIC else ""

    if explicit_logic is not None and explicit_logic.strip():
        logic = explicit_logic.strip()
    else:
        logic = render_transformation_logic(
            rule_type,
            fields,
            mapping.target_column,
            separator=separator,
            static_value=static_value,
            reformat_type=reformat_type,
            format_pattern=format_pattern,
        )

    updated = ColumnMapping(
        rule_number=mapping.rule_number,
        target_column=mapping.target_column,
        type=rule_type,
        source_fields=fields,
        transformation_logic=logic,
        confidence=mapping.confidence,
        needs_attention=rule_type in ATTENTION_RULE_TYPES or flag_assumption,
        notes=mapping.notes,
    )

    warnings = check_edit(updated, known_source_fields)
    for warning in warnings:
        logger.warning(
            "edit_warning",
            rule_number=updated.rule_number,
            invariant=warning.invariant,
            message=warning.message,
        )

    logger.info(
        "rule_edited",
        rule_number=updated.rule_number,
        target_column=updated.target_column,
        old_type=mapping.type.value,
        new_type=updated.type.value,
        template_logic=not (explicit_logic and explicit_logic.strip()),
    )
    return updated


def replace_mapping(doc: MappingDocument, updated: ColumnMapping) -> MappingDocument:
    """Return a new document with ``updated`` swapped in by rule number.

    Exactly one rule must carry ``updated.rule_number`` and it must target
    the same column. The summary is recomputed; editing never adds or
    removes rules.

    Raises:
        EditValidationError: no single rule has that number, or that rule
            targets a different column.
    """
    positions = [
        i for i, m in enumerate(doc.column_mappings) if m.rule_number == updated.rule_number
    ]
    if not positions:
        raise EditValidationError([Violation(
            invariant="target_column_coverage",
            message=f"No rule number {updated.rule_number} for '{updated.target_column}'",
            rule_numbers=[updated.rule_number],
        )])
    if len(positions) > 1:
        raise EditValidationError([Violation(
            invariant="rule_number_unique",
            message=f"Rule number {updated.rule_number} appears {len(positions)} times",
            rule_numbers=[updated.rule_number],
        )])

    current = doc.column_mappings[positions[0]]
    if current.target_column != updated.target_column:
        raise EditValidationError([Violation(
            invariant="target_column_unique",
            message=(
                f"Rule {current.rule_number} targets '{current.target_column}', "
                f"edit carries '{updated.target_column}'"
            ),
            rule_numbers=[current.rule_number],
        )])

    mappings = list(doc.column_mappings)
    mappings[positions[0]] = updated
    return MappingDocument(
        column_mappings=mappings,
        summary=recompute_summary(mappings, target_crm=doc.summary.target_crm),
    )
