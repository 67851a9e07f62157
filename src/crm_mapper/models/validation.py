"""Invariant checks and summary derivation for mapping documents.

Every check here is pure: the document is never mutated and problems are
reported as ``Violation`` records rather than raised. Callers that need an
exception (the response parser, the transformer) wrap the result in
``InvariantViolationError`` themselves.
"""
from __future__ import annotations

import re
from collections import Counter
from typing import Iterable, Sequence

from pydantic import BaseModel, Field

from crm_mapper.models.mapping import (
    ColumnMapping,
    ConfidenceBreakdown,
    MappingDocument,
    MappingSummary,
)
from crm_mapper.models.shared import (
    ATTENTION_RULE_TYPES,
    MULTI_SOURCE_RULE_TYPES,
    SINGLE_SOURCE_RULE_TYPES,
    Confidence,
    RuleType,
)


class Violation(BaseModel):
    """One broken invariant, with the rules that break it."""
    invariant: str
    message: str
    rule_numbers: list[int] = Field(default_factory=list)

    def __str__(self) -> str:
        if self.rule_numbers:
            rules = ", ".join(str(n) for n in self.rule_numbers)
            return f"[{self.invariant}] {self.message} (rules: {rules})"
        return f"[{self.invariant}] {self.message}"


class ValidationResult(BaseModel):
    violations: list[Violation] = Field(default_factory=list)
    warnings: list[Violation] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.violations

    @property
    def invariants(self) -> set[str]:
        """Codes of every violated invariant."""
        return {v.invariant for v in self.violations}


def recompute_summary(
    mappings: Sequence[ColumnMapping],
    target_crm: str = "",
) -> MappingSummary:
    """Derive the summary block from a list of rules.

    ``target_crm`` is not derivable from the rules and is passed through.
    """
    by_type = Counter(m.type for m in mappings)
    by_confidence = Counter(m.confidence for m in mappings)
    flagged = sorted(m.rule_number for m in mappings if m.needs_attention)

    return MappingSummary(
        total_target_columns=len(mappings),
        total_rules_generated=len(mappings),
        target_crm=target_crm,
        rules_by_type={rule_type: by_type.get(rule_type, 0) for rule_type in RuleType},
        confidence_breakdown=ConfidenceBreakdown(
            high_confidence=by_confidence.get(Confidence.HIGH, 0),
            medium_confidence=by_confidence.get(Confidence.MEDIUM, 0),
            low_confidence=by_confidence.get(Confidence.LOW, 0),
            needs_attention_count=len(flagged),
        ),
        review_required=flagged,
    )


def validate(
    doc: MappingDocument,
    source_fields: Iterable[str] | None = None,
    target_columns: Iterable[str] | None = None,
) -> ValidationResult:
    """Check every document invariant.

    Args:
        doc: Parsed mapping document.
        source_fields: Field names of the source sample. When given, every
            referenced source field must be one of them.
        target_columns: Header of the target sample. When given, each column
            must have exactly one rule and no rule may target anything else.

    Returns:
        ValidationResult with hard violations and soft warnings.
    """
    result = ValidationResult()
    mappings = list(doc.column_mappings)

    _check_rule_numbers(mappings, result)
    _check_target_columns(mappings, result)
    for mapping in mappings:
        _check_rule_shape(mapping, result)
    _check_summary(mappings, doc.summary, result)

    if source_fields is not None:
        _check_source_references(mappings, set(source_fields), result)
    if target_columns is not None:
        _check_coverage(mappings, list(target_columns), result)

    return result


def rule_shape_problems(mapping: ColumnMapping) -> tuple[list[Violation], list[Violation]]:
    """Per-rule checks shared by document validation and edit validation.

    Returns:
        (violations, warnings)
    """
    violations: list[Violation] = []
    warnings: list[Violation] = []
    n = [mapping.rule_number]
    count = len(mapping.source_fields)

    if mapping.type in SINGLE_SOURCE_RULE_TYPES and count != 1:
        violations.append(Violation(
            invariant="source_fields_arity",
            message=f"{mapping.type.value} rule for '{mapping.target_column}' needs exactly one source field, got {count}",
            rule_numbers=n,
        ))
    elif mapping.type in MULTI_SOURCE_RULE_TYPES and count < 1:
        violations.append(Violation(
            invariant="source_fields_arity",
            message=f"{mapping.type.value} rule for '{mapping.target_column}' needs at least one source field",
            rule_numbers=n,
        ))
    elif mapping.type in ATTENTION_RULE_TYPES and count:
        violations.append(Violation(
            invariant="source_fields_arity",
            message=f"{mapping.type.value} rule for '{mapping.target_column}' must not read source fields",
            rule_numbers=n,
        ))

    if any(not field.strip() for field in mapping.source_fields):
        violations.append(Violation(
            invariant="source_fields_arity",
            message=f"Rule for '{mapping.target_column}' lists an empty source field name",
            rule_numbers=n,
        ))

    if mapping.type != RuleType.BLANK and not mapping.transformation_logic.strip():
        violations.append(Violation(
            invariant="transformation_logic_present",
            message=f"{mapping.type.value} rule for '{mapping.target_column}' has no transformation logic",
            rule_numbers=n,
        ))

    if mapping.type in ATTENTION_RULE_TYPES and not mapping.needs_attention:
        violations.append(Violation(
            invariant="attention_required",
            message=f"{mapping.type.value} rule for '{mapping.target_column}' must be flagged for attention",
            rule_numbers=n,
        ))

    if mapping.type == RuleType.STATIC and not static_value_of(mapping):
        warnings.append(Violation(
            invariant="static_value_empty",
            message=f"Static rule for '{mapping.target_column}' has no value yet",
            rule_numbers=n,
        ))

    return violations, warnings


_STATIC_LOGIC_RE = re.compile(r'^Set to static value: "(.*)"$', re.DOTALL)
STATIC_PREFIX = "Set to static value:"


def static_value_of(mapping: ColumnMapping) -> str:
    """Value a Static rule writes, recovered from its logic text.

    Only the outer pair of quotes is removed; quotes inside the value survive.
    """
    logic = mapping.transformation_logic.strip()
    match = _STATIC_LOGIC_RE.match(logic)
    if match:
        return match.group(1)
    if logic.startswith(STATIC_PREFIX):
        return logic[len(STATIC_PREFIX):].strip()
    return logic


def _check_rule_numbers(mappings: list[ColumnMapping], result: ValidationResult) -> None:
    numbers = [m.rule_number for m in mappings]

    non_positive = sorted(n for n in numbers if n < 1)
    if non_positive:
        result.violations.append(Violation(
            invariant="rule_number_positive",
            message="Rule numbers must be positive integers",
            rule_numbers=non_positive,
        ))

    duplicates = sorted(n for n, c in Counter(numbers).items() if c > 1)
    if duplicates:
        result.violations.append(Violation(
            invariant="rule_number_unique",
            message="Rule numbers are repeated",
            rule_numbers=duplicates,
        ))

    expected = set(range(1, len(mappings) + 1))
    present = set(numbers)
    missing = sorted(expected - present)
    extra = sorted(present - expected)
    if missing or extra:
        message = f"Rule numbers must run 1..{len(mappings)} without gaps"
        if missing:
            message += f"; missing {', '.join(str(n) for n in missing)}"
        result.violations.append(Violation(
            invariant="rule_number_contiguous",
            message=message,
            rule_numbers=extra,
        ))


def _check_target_columns(mappings: list[ColumnMapping], result: ValidationResult) -> None:
    blank = [m.rule_number for m in mappings if not m.target_column.strip()]
    if blank:
        result.violations.append(Violation(
            invariant="target_column_non_empty",
            message="Target column name is empty",
            rule_numbers=sorted(blank),
        ))

    by_column: dict[str, list[int]] = {}
    for m in mappings:
        if m.target_column.strip():
            by_column.setdefault(m.target_column, []).append(m.rule_number)

    for column, numbers in by_column.items():
        if len(numbers) > 1:
            result.violations.append(Violation(
                invariant="target_column_unique",
                message=f"Target column '{column}' has {len(numbers)} rules",
                rule_numbers=sorted(numbers),
            ))


def _check_rule_shape(mapping: ColumnMapping, result: ValidationResult) -> None:
    violations, warnings = rule_shape_problems(mapping)
    result.violations.extend(violations)
    result.warnings.extend(warnings)


def _check_summary(
    mappings: list[ColumnMapping],
    declared: MappingSummary,
    result: ValidationResult,
) -> None:
    actual = recompute_summary(mappings, target_crm=declared.target_crm)
    total = len(mappings)

    if declared.total_target_columns != total:
        result.violations.append(Violation(
            invariant="total_target_columns",
            message=f"Declared {declared.total_target_columns} target columns but found {total} rules",
        ))
    if declared.total_rules_generated != total:
        result.violations.append(Violation(
            invariant="total_rules_generated",
            message=f"Declared {declared.total_rules_generated} rules generated but found {total}",
        ))

    for rule_type in RuleType:
        want = declared.rules_by_type.get(rule_type, 0)
        have = actual.rules_by_type[rule_type]
        if want != have:
            result.violations.append(Violation(
                invariant="rules_by_type",
                message=f"Declared {want} {rule_type.value} rules but found {have}",
                rule_numbers=sorted(m.rule_number for m in mappings if m.type == rule_type),
            ))

    declared_cb = declared.confidence_breakdown
    actual_cb = actual.confidence_breakdown
    for key, level in (
        ("high_confidence", Confidence.HIGH),
        ("medium_confidence", Confidence.MEDIUM),
        ("low_confidence", Confidence.LOW),
    ):
        want = getattr(declared_cb, key)
        have = getattr(actual_cb, key)
        if want != have:
            result.violations.append(Violation(
                invariant="confidence_breakdown",
                message=f"Declared {key}={want} but found {have}",
                rule_numbers=sorted(m.rule_number for m in mappings if m.confidence == level),
            ))

    if declared_cb.needs_attention_count != actual_cb.needs_attention_count:
        result.violations.append(Violation(
            invariant="needs_attention_count",
            message=(
                f"Declared needs_attention_count={declared_cb.needs_attention_count} "
                f"but {actual_cb.needs_attention_count} rules are flagged"
            ),
            rule_numbers=actual.review_required,
        ))

    if list(declared.review_required) != actual.review_required:
        result.violations.append(Violation(
            invariant="review_required",
            message=(
                f"review_required {list(declared.review_required)} does not match "
                f"flagged rules {actual.review_required}"
            ),
            rule_numbers=sorted(set(declared.review_required) ^ set(actual.review_required)),
        ))


def _check_source_references(
    mappings: list[ColumnMapping],
    known: set[str],
    result: ValidationResult,
) -> None:
    for m in mappings:
        unknown = [f for f in m.source_fields if f not in known]
        if unknown:
            result.violations.append(Violation(
                invariant="source_field_reference",
                message=f"Rule for '{m.target_column}' references unknown source fields: {', '.join(unknown)}",
                rule_numbers=[m.rule_number],
            ))


def _check_coverage(
    mappings: list[ColumnMapping],
    target_columns: list[str],
    result: ValidationResult,
) -> None:
    mapped = {m.target_column for m in mappings}
    uncovered = [c for c in target_columns if c not in mapped]
    if uncovered:
        result.violations.append(Violation(
            invariant="target_column_coverage",
            message=f"Target columns without a rule: {', '.join(uncovered)}",
        ))

    expected = set(target_columns)
    stray = sorted(m.rule_number for m in mappings if m.target_column not in expected)
    if stray:
        result.violations.append(Violation(
            invariant="target_column_coverage",
            message="Rules target columns that are not in the target schema",
            rule_numbers=stray,
        ))
