"""Rule model: column mappings, the mapping document and its invariants."""
from crm_mapper.models.editing import (
    apply_edit,
    check_edit,
    render_transformation_logic,
    replace_mapping,
)
from crm_mapper.models.mapping import (
    ColumnMapping,
    ConfidenceBreakdown,
    MappingDocument,
    MappingSummary,
)
from crm_mapper.models.shared import Confidence, CrmHint, RuleType
from crm_mapper.models.validation import (
    ValidationResult,
    Violation,
    recompute_summary,
    validate,
)

__all__ = [
    "ColumnMapping",
    "Confidence",
    "ConfidenceBreakdown",
    "CrmHint",
    "MappingDocument",
    "MappingSummary",
    "RuleType",
    "ValidationResult",
    "Violation",
    "apply_edit",
    "check_edit",
    "recompute_summary",
    "render_transformation_logic",
    "replace_mapping",
    "validate",
]
