"""Summary statistics and incremental summary maintenance across edits.

``recompute_summary`` is always authoritative. ``diff_after_edit`` and
``apply_impact`` let a caller that holds a summary adjust it per edit
without walking every rule again.
"""
from __future__ import annotations

from pydantic import BaseModel, Field

from crm_mapper.models.mapping import ColumnMapping, ConfidenceBreakdown, MappingDocument, MappingSummary
from crm_mapper.models.shared import Confidence, RuleType
from crm_mapper.models.validation import Violation, recompute_summary
from crm_mapper.utils.error_handler import EditValidationError

_CONFIDENCE_KEYS: dict[Confidence, str] = {
    Confidence.HIGH: "high_confidence",
    Confidence.MEDIUM: "medium_confidence",
    Confidence.LOW: "low_confidence",
}


class MappingStats(BaseModel):
    """Read-only view of a document's rule distribution."""
    by_type: dict[RuleType, int]
    by_confidence: dict[Confidence, int]
    attention_list: list[int] = Field(
        default_factory=list,
        description="Rule numbers flagged for review, ascending.",
    )

    @property
    def needs_attention_count(self) -> int:
        return len(self.attention_list)


class EditImpact(BaseModel):
    """Bucket deltas caused by replacing one rule with its edited version."""
    rule_number: int
    target_column: str
    type_delta: dict[RuleType, int] = Field(default_factory=dict)
    confidence_delta: dict[Confidence, int] = Field(default_factory=dict)
    needs_attention_delta: int = 0
    review_added: list[int] = Field(default_factory=list)
    review_removed: list[int] = Field(default_factory=list)

    @property
    def is_noop(self) -> bool:
        return not (
            self.type_delta
            or self.confidence_delta
            or self.needs_attention_delta
            or self.review_added
            or self.review_removed
        )


def stats(doc: MappingDocument) -> MappingStats:
    """Counts by type and confidence plus the attention list, from the rules."""
    summary = recompute_summary(doc.column_mappings)
    cb = summary.confidence_breakdown
    return MappingStats(
        by_type=dict(summary.rules_by_type),
        by_confidence={
            Confidence.HIGH: cb.high_confidence,
            Confidence.MEDIUM: cb.medium_confidence,
            Confidence.LOW: cb.low_confidence,
        },
        attention_list=list(summary.review_required),
    )


def diff_after_edit(before: ColumnMapping, after: ColumnMapping) -> EditImpact:
    """Which summary buckets change when ``before`` is replaced by ``after``.

    Raises:
        EditValidationError: the two rules are not the same target column.
    """
    if before.target_column != after.target_column or before.rule_number != after.rule_number:
        raise EditValidationError([Violation(
            invariant="target_column_unique",
            message=(
                f"Edit must keep the rule's target column and number "
                f"({before.rule_number}:'{before.target_column}' -> "
                f"{after.rule_number}:'{after.target_column}')"
            ),
            rule_numbers=sorted({before.rule_number, after.rule_number}),
        )])

    impact = EditImpact(rule_number=after.rule_number, target_column=after.target_column)

    if before.type != after.type:
        impact.type_delta = {before.type: -1, after.type: 1}
    if before.confidence != after.confidence:
        impact.confidence_delta = {before.confidence: -1, after.confidence: 1}
    if before.needs_attention != after.needs_attention:
        if after.needs_attention:
            impact.needs_attention_delta = 1
            impact.review_added = [after.rule_number]
        else:
            impact.needs_attention_delta = -1
            impact.review_removed = [after.rule_number]

    return impact


def apply_impact(summary: MappingSummary, impact: EditImpact) -> MappingSummary:
    """Return a new summary with the edit's deltas applied."""
    rules_by_type = dict(summary.rules_by_type)
    for rule_type, delta in impact.type_delta.items():
        rules_by_type[rule_type] = rules_by_type.get(rule_type, 0) + delta

    breakdown = summary.confidence_breakdown.model_dump()
    for level, delta in impact.confidence_delta.items():
        breakdown[_CONFIDENCE_KEYS[level]] += delta
    breakdown["needs_attention_count"] += impact.needs_attention_delta

    review = set(summary.review_required)
    review.difference_update(impact.review_removed)
    review.update(impact.review_added)

    return summary.model_copy(update={
        "rules_by_type": rules_by_type,
        "confidence_breakdown": ConfidenceBreakdown(**breakdown),
        "review_required": sorted(review),
    })
