"""Column mapping document models."""
from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from crm_mapper.models.shared import Confidence, RuleType


class ColumnMapping(BaseModel):
    """One rule producing the value of one target CRM column."""
    model_config = ConfigDict(extra="ignore", frozen=True)

    rule_number: int = Field(
        description="1-based position of the rule. Unique and contiguous within a document."
    )
    target_column: str = Field(
        description="Destination CRM column this rule fills. One rule per column."
    )
    type: RuleType
    source_fields: list[str] = Field(
        default_factory=list,
        description="Source field names read by the rule. Empty for Static and Blank.",
    )
    transformation_logic: str = Field(
        default="",
        description="Plain-English description of the concrete transformation.",
    )
    confidence: Confidence
    needs_attention: bool = False
    notes: str = ""

    @field_validator("source_fields", mode="before")
    @classmethod
    def coerce_source_fields(cls, v: Any) -> Any:
        """Accept null for rules that read no source field."""
        if v is None:
            return []
        return v

    @field_validator("notes", "transformation_logic", mode="before")
    @classmethod
    def coerce_text(cls, v: Any) -> Any:
        if v is None:
            return ""
        return v


class ConfidenceBreakdown(BaseModel):
    model_config = ConfigDict(extra="ignore")

    high_confidence: int = 0
    medium_confidence: int = 0
    low_confidence: int = 0
    needs_attention_count: int = 0


class MappingSummary(BaseModel):
    """Aggregate block declared alongside the rules.

    Redundant with ``column_mappings``; see ``recompute_summary`` for how
    each value is derived.
    """
    model_config = ConfigDict(extra="ignore")

    total_target_columns: int
    total_rules_generated: int
    target_crm: str = ""
    rules_by_type: dict[RuleType, int] = Field(default_factory=dict)
    confidence_breakdown: ConfidenceBreakdown = Field(default_factory=ConfidenceBreakdown)
    review_required: list[int] = Field(default_factory=list)

    @field_validator("target_crm", mode="before")
    @classmethod
    def coerce_target_crm(cls, v: Any) -> Any:
        if v is None:
            return ""
        return v

    @field_validator("rules_by_type")
    @classmethod
    def fill_missing_types(cls, v: dict[RuleType, int]) -> dict[RuleType, int]:
        """Rule types omitted from the declared counts are counted as zero."""
        return {rule_type: v.get(rule_type, 0) for rule_type in RuleType}


class MappingDocument(BaseModel):
    """The full mapping set: one rule per target column plus its summary."""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    column_mappings: list[ColumnMapping] = Field(alias="columnMappings")
    summary: MappingSummary

    @property
    def target_columns(self) -> list[str]:
        """Target columns in canonical (rule number) order."""
        return [m.target_column for m in self.ordered_mappings()]

    def ordered_mappings(self) -> list[ColumnMapping]:
        return sorted(self.column_mappings, key=lambda m: m.rule_number)

    def get_rule(self, rule_number: int) -> ColumnMapping | None:
        for mapping in self.column_mappings:
            if mapping.rule_number == rule_number:
                return mapping
        return None

    def to_output_dict(self) -> dict[str, Any]:
        """Serialize using the wire key names (``columnMappings``)."""
        return self.model_dump(mode="json", by_alias=True)
