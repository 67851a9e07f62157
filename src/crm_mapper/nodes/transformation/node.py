"""Transformation node: apply the finalized rules to source data."""
from __future__ import annotations

from typing import Any

import structlog

from crm_mapper.models.mapping import MappingDocument
from crm_mapper.models.validation import validate
from crm_mapper.nodes.transformation.prompt_builder import TransformPromptBuilder
from crm_mapper.nodes.transformation.response_parser import Row, parse_transform_response
from crm_mapper.services import TextService
from crm_mapper.utils.error_handler import InvariantViolationError
from crm_mapper.utils.samples import source_field_names, source_records

logger = structlog.get_logger(__name__)


class Transformer:
    """Runs the transformation request for a validated mapping document."""

    def __init__(self, service: TextService, prompt_builder: TransformPromptBuilder | None = None):
        self.service = service
        self.prompt_builder = prompt_builder or TransformPromptBuilder()

    def transform(self, doc: MappingDocument, source_data: Any) -> list[Row]:
        """Transform source records into target rows.

        The document is validated against the source data's field names
        before anything is sent.

        Raises:
            InvariantViolationError: the document is not in a valid state.
            ServiceError: the service call failed.
            MalformedResponseError: the reply is not a table of target columns.
        """
        result = validate(doc, source_fields=source_field_names(source_data))
        if not result.ok:
            logger.warning("transformation_rejected", invariants=sorted(result.invariants))
            raise InvariantViolationError(result.violations)

        record_count = len(source_records(source_data))
        request = self.prompt_builder.build_request(doc, source_data)
        raw = self.service.submit(request)
        rows = parse_transform_response(raw, doc.target_columns)

        if len(rows) != record_count:
            logger.warning(
                "transformation_row_count_mismatch",
                source_records=record_count,
                rows=len(rows),
            )
        logger.info("transformation_complete", rows=len(rows), columns=len(doc.column_mappings))
        return rows
