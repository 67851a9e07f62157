"""Tests for mapping document validation and summary derivation."""
from __future__ import annotations

import pytest
from pydantic import ValidationError

from crm_mapper.models import (
    ColumnMapping,
    Confidence,
    MappingDocument,
    RuleType,
    recompute_summary,
    validate,
)


def make_rule(
    rule_number: int,
    target_column: str,
    rule_type: RuleType = RuleType.COPY,
    source_fields: list[str] | None = None,
    confidence: Confidence = Confidence.HIGH,
    needs_attention: bool | None = None,
    logic: str = "Copy the field",
) -> ColumnMapping:
    if source_fields is None:
        source_fields = [] if rule_type in (RuleType.STATIC, RuleType.BLANK) else ["email"]
    if needs_attention is None:
        needs_attention = rule_type in (RuleType.STATIC, RuleType.BLANK)
    return ColumnMapping(
        rule_number=rule_number,
        target_column=target_column,
        type=rule_type,
        source_fields=source_fields,
        transformation_logic=logic,
        confidence=confidence,
        needs_attention=needs_attention,
    )


def make_document(mappings: list[ColumnMapping], target_crm: str = "") -> MappingDocument:
    """Document whose declared summary is consistent with its rules."""
    return MappingDocument(
        column_mappings=mappings,
        summary=recompute_summary(mappings, target_crm=target_crm),
    )


class TestRecomputeSummary:
    """Summary derivation from the rule list."""

    def test_matches_declared_summary(self, mapping_data):
        """A valid document's summary round-trips through recompute_summary."""
        doc = MappingDocument.model_validate(mapping_data)
        assert recompute_summary(doc.column_mappings, doc.summary.target_crm) == doc.summary

    def test_counts(self):
        mappings = [
            make_rule(1, "Email"),
            make_rule(2, "Source", RuleType.STATIC, confidence=Confidence.MEDIUM),
            make_rule(3, "Middle", RuleType.BLANK, confidence=Confidence.LOW),
            make_rule(4, "Phone", RuleType.REFORMAT, needs_attention=True),
        ]
        summary = recompute_summary(mappings)

        assert summary.total_target_columns == 4
        assert summary.total_rules_generated == 4
        assert summary.rules_by_type[RuleType.COPY] == 1
        assert summary.rules_by_type[RuleType.CONCATENATE] == 0
        assert summary.confidence_breakdown.high_confidence == 2
        assert summary.confidence_breakdown.medium_confidence == 1
        assert summary.confidence_breakdown.low_confidence == 1
        assert summary.confidence_breakdown.needs_attention_count == 3
        assert summary.review_required == [2, 3, 4]

    def test_every_rule_type_present(self):
        summary = recompute_summary([])
        assert set(summary.rules_by_type) == set(RuleType)
        assert summary.review_required == []


class TestValidate:
    """Invariant checks on whole documents."""

    def test_fixture_is_valid(self, mapping_data, source_sample, target_sample):
        from crm_mapper.utils.samples import source_field_names, target_columns_from_sample

        doc = MappingDocument.model_validate(mapping_data)
        result = validate(
            doc,
            source_fields=source_field_names(source_sample),
            target_columns=target_columns_from_sample(target_sample),
        )
        assert result.ok, result.violations
        assert result.warnings == []

    def test_contiguous_unique_rules_ok(self):
        doc = make_document([make_rule(n, f"Column {n}") for n in range(1, 6)])
        assert validate(doc).ok

    def test_rule_number_gap(self):
        doc = make_document([make_rule(1, "A"), make_rule(2, "B"), make_rule(4, "C")])
        result = validate(doc)

        assert not result.ok
        assert "rule_number_contiguous" in result.invariants
        violation = next(v for v in result.violations if v.invariant == "rule_number_contiguous")
        assert violation.rule_numbers == [4]
        assert "missing 3" in violation.message

    def test_duplicate_rule_number(self):
        doc = make_document([make_rule(1, "A"), make_rule(1, "B")])
        result = validate(doc)
        assert "rule_number_unique" in result.invariants

    def test_non_positive_rule_number(self):
        doc = make_document([make_rule(0, "A"), make_rule(1, "B")])
        result = validate(doc)
        assert "rule_number_positive" in result.invariants

    def test_duplicate_target_column(self):
        doc = make_document([make_rule(1, "Email"), make_rule(2, "Email")])
        result = validate(doc)

        violation = next(v for v in result.violations if v.invariant == "target_column_unique")
        assert violation.rule_numbers == [1, 2]

    def test_empty_target_column(self):
        doc = make_document([make_rule(1, "  ")])
        assert "target_column_non_empty" in validate(doc).invariants

    @pytest.mark.parametrize("rule_type", [RuleType.STATIC, RuleType.BLANK])
    def test_static_and_blank_need_attention(self, rule_type):
        doc = make_document([
            make_rule(1, "Email"),
            make_rule(2, "Other", rule_type, needs_attention=False, logic='Set to static value: "X"'),
        ])
        result = validate(doc)

        violation = next(v for v in result.violations if v.invariant == "attention_required")
        assert violation.rule_numbers == [2]

    def test_source_field_arity(self):
        doc = make_document([
            make_rule(1, "Email", RuleType.COPY, source_fields=["email", "phone"]),
            make_rule(2, "City/State", RuleType.CONCATENATE, source_fields=[]),
            make_rule(3, "Code", RuleType.STATIC, source_fields=["fund"], logic='Set to static value: "X"'),
        ])
        result = validate(doc)

        violation_rules = {
            n for v in result.violations if v.invariant == "source_fields_arity" for n in v.rule_numbers
        }
        assert violation_rules == {1, 2, 3}

    def test_missing_logic(self):
        doc = make_document([make_rule(1, "Email", logic="")])
        assert "transformation_logic_present" in validate(doc).invariants

    def test_blank_rule_may_have_no_logic(self):
        doc = make_document([make_rule(1, "Middle Name", RuleType.BLANK, logic="")])
        assert validate(doc).ok

    def test_rules_by_type_mismatch(self, mapping_data):
        """Declared Copy=3 while only two rules are Copy."""
        for mapping in mapping_data["columnMappings"]:
            if mapping["rule_number"] in (9, 11):
                mapping["type"] = "Reformat"
        mapping_data["summary"]["rules_by_type"]["Copy"] = 3
        mapping_data["summary"]["rules_by_type"]["Reformat"] = 5

        result = validate(MappingDocument.model_validate(mapping_data))

        assert result.invariants == {"rules_by_type"}
        violation = result.violations[0]
        assert "Declared 3 Copy rules but found 2" in violation.message
        assert violation.rule_numbers == [3, 7]

    def test_total_counts_mismatch(self, mapping_data):
        mapping_data["summary"]["total_target_columns"] = 12
        mapping_data["summary"]["total_rules_generated"] = 10
        result = validate(MappingDocument.model_validate(mapping_data))
        assert {"total_target_columns", "total_rules_generated"} <= result.invariants

    def test_confidence_breakdown_mismatch(self, mapping_data):
        mapping_data["summary"]["confidence_breakdown"]["high_confidence"] = 6
        mapping_data["summary"]["confidence_breakdown"]["low_confidence"] = 2
        result = validate(MappingDocument.model_validate(mapping_data))
        assert result.invariants == {"confidence_breakdown"}

    def test_needs_attention_count_and_review_list(self, mapping_data):
        mapping_data["summary"]["confidence_breakdown"]["needs_attention_count"] = 2
        mapping_data["summary"]["review_required"] = [9, 10]
        result = validate(MappingDocument.model_validate(mapping_data))

        assert result.invariants == {"needs_attention_count", "review_required"}
        review = next(v for v in result.violations if v.invariant == "review_required")
        assert review.rule_numbers == [9]

    def test_review_required_must_be_sorted(self):
        mappings = [
            make_rule(1, "A", RuleType.BLANK, logic=""),
            make_rule(2, "B", RuleType.BLANK, logic=""),
        ]
        doc = make_document(mappings)
        doc.summary.review_required = [2, 1]
        assert "review_required" in validate(doc).invariants

    def test_unknown_source_field(self, mapping_data):
        mapping_data["columnMappings"][2]["source_fields"] = ["email_address"]
        doc = MappingDocument.model_validate(mapping_data)

        result = validate(doc, source_fields=["email", "phone"])
        violations = [v for v in result.violations if v.invariant == "source_field_reference"]
        assert any(v.rule_numbers == [3] for v in violations)

    def test_source_fields_not_checked_without_declared_set(self, mapping_data):
        mapping_data["columnMappings"][2]["source_fields"] = ["email_address"]
        assert validate(MappingDocument.model_validate(mapping_data)).ok

    def test_target_coverage(self, mapping_data, target_sample):
        from crm_mapper.utils.samples import target_columns_from_sample

        columns = target_columns_from_sample(target_sample) + ["Spouse Name"]
        result = validate(MappingDocument.model_validate(mapping_data), target_columns=columns)

        assert result.invariants == {"target_column_coverage"}
        assert "Spouse Name" in result.violations[0].message

    def test_does_not_mutate(self, mapping_data):
        doc = MappingDocument.model_validate(mapping_data)
        doc.summary.review_required = [1]
        before = doc.model_dump()
        validate(doc)
        assert doc.model_dump() == before

    def test_static_value_keeps_inner_quotes(self):
        from crm_mapper.models.validation import static_value_of

        rule = make_rule(1, "Source Code", RuleType.STATIC, logic='Set to static value: ""VIP""')
        assert static_value_of(rule) == '"VIP"'

    def test_empty_static_value_is_warning(self):
        doc = make_document([make_rule(1, "Source Code", RuleType.STATIC, logic='Set to static value: ""')])
        result = validate(doc)

        assert result.ok
        assert [w.invariant for w in result.warnings] == ["static_value_empty"]


class TestModelParsing:
    """Field types and enum values are enforced by the models."""

    def test_unknown_rule_type_rejected(self, mapping_data):
        mapping_data["columnMappings"][0]["type"] = "Conditional"
        with pytest.raises(ValidationError):
            MappingDocument.model_validate(mapping_data)

    def test_unknown_confidence_rejected(self, mapping_data):
        mapping_data["columnMappings"][0]["confidence"] = "Certain"
        with pytest.raises(ValidationError):
            MappingDocument.model_validate(mapping_data)

    def test_null_source_fields_become_empty(self, mapping_data):
        mapping_data["columnMappings"][9]["source_fields"] = None
        doc = MappingDocument.model_validate(mapping_data)
        assert doc.column_mappings[9].source_fields == []

    def test_missing_rule_type_count_is_zero(self, mapping_data):
        del mapping_data["summary"]["rules_by_type"]["Blank"]
        doc = MappingDocument.model_validate(mapping_data)
        assert doc.summary.rules_by_type[RuleType.BLANK] == 0

    def test_output_uses_wire_keys(self, mapping_data):
        doc = MappingDocument.model_validate(mapping_data)
        output = doc.to_output_dict()

        assert "columnMappings" in output
        assert output["columnMappings"][0]["type"] == "Extract"
        assert output["summary"]["rules_by_type"]["Copy"] == 4
