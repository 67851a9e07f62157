"""Response parsing for the rule generation call.

Turns the service's raw text into a validated ``MappingDocument``. Invalid
documents are rejected, never repaired; the caller decides whether to
resubmit.
"""
from __future__ import annotations

import json
from typing import Iterable

import structlog
from pydantic import ValidationError

from crm_mapper.models.mapping import MappingDocument
from crm_mapper.models.validation import ValidationResult, validate
from crm_mapper.utils.error_handler import InvariantViolationError, MalformedResponseError
from crm_mapper.utils.fences import strip_code_fence

logger = structlog.get_logger(__name__)


class ResponseParser:
    """Parses rule generation responses into MappingDocument objects."""

    def parse_document(self, raw: str) -> MappingDocument:
        """Strip the fence and build the document model without invariant checks.

        Raises:
            MalformedResponseError: not JSON, not an object, or fields of the
                wrong type / unknown enum values.
        """
        content = strip_code_fence(raw)

        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            logger.warning("rule_generation_json_parse_error", error=str(e))
            raise MalformedResponseError(f"invalid JSON ({e.msg} at line {e.lineno})", raw) from e

        if not isinstance(data, dict):
            raise MalformedResponseError(
                f"expected a JSON object, got {type(data).__name__}", raw
            )

        try:
            return MappingDocument.model_validate(data)
        except ValidationError as e:
            logger.warning("rule_generation_schema_error", error_count=e.error_count())
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()[:5]
            )
            raise MalformedResponseError(problems, raw) from e

    def parse_response(
        self,
        raw: str,
        source_fields: Iterable[str] | None = None,
        target_columns: Iterable[str] | None = None,
    ) -> MappingDocument:
        """Parse and validate a rule generation response.

        Raises:
            MalformedResponseError: the text is not a mapping document.
            InvariantViolationError: the document breaks an invariant.
        """
        doc = self.parse_document(raw)
        result = validate(doc, source_fields=source_fields, target_columns=target_columns)
        self._log_result(doc, result)

        if not result.ok:
            raise InvariantViolationError(result.violations, raw)
        return doc

    def _log_result(self, doc: MappingDocument, result: ValidationResult) -> None:
        if result.ok:
            logger.info(
                "rule_generation_response_valid",
                rules=len(doc.column_mappings),
                review_required=len(doc.summary.review_required),
                warnings=len(result.warnings),
            )
        else:
            logger.warning(
                "rule_generation_response_invalid",
                rules=len(doc.column_mappings),
                invariants=sorted(result.invariants),
            )


def parse_response(
    raw: str,
    source_fields: Iterable[str] | None = None,
    target_columns: Iterable[str] | None = None,
) -> MappingDocument:
    return ResponseParser().parse_response(raw, source_fields, target_columns)
