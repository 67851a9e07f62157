"""Rule generation node: build request, submit, parse, validate."""
from __future__ import annotations

import time
from typing import Any

import structlog

from crm_mapper.models.mapping import MappingDocument
from crm_mapper.models.shared import CrmHint
from crm_mapper.nodes.rule_generation.prompt_builder import PromptBuilder
from crm_mapper.nodes.rule_generation.response_parser import ResponseParser
from crm_mapper.services import TextService
from crm_mapper.utils.error_handler import MapperError
from crm_mapper.utils.samples import source_field_names, target_columns_from_sample

logger = structlog.get_logger(__name__)


class RuleGenerator:
    """Generates a validated mapping document from two samples.

    One request per call. Failures propagate to the caller unchanged; a
    new call rebuilds the request from scratch.
    """

    def __init__(
        self,
        service: TextService,
        prompt_builder: PromptBuilder | None = None,
        response_parser: ResponseParser | None = None,
    ):
        self.service = service
        self.prompt_builder = prompt_builder or PromptBuilder()
        self.response_parser = response_parser or ResponseParser()

    def generate(
        self,
        source_sample: Any,
        target_sample: str,
        crm_hint: CrmHint | str | None = None,
    ) -> MappingDocument:
        """Run one generation round.

        Raises:
            ServiceError: the service call failed.
            MalformedResponseError: the response is not a mapping document.
            InvariantViolationError: the document does not cover the target
                columns, references unknown source fields, or is inconsistent.
        """
        source_fields = source_field_names(source_sample)
        target_columns = target_columns_from_sample(target_sample)
        request = self.prompt_builder.build_request(source_sample, target_sample, crm_hint)

        logger.info(
            "rule_generation_start",
            source_fields=len(source_fields),
            target_columns=len(target_columns),
            crm=CrmHint.resolve(crm_hint).value,
        )

        started = time.monotonic()
        try:
            raw = self.service.submit(request)
            doc = self.response_parser.parse_response(
                raw,
                source_fields=source_fields,
                target_columns=target_columns or None,
            )
        except MapperError as e:
            logger.warning(
                "rule_generation_failed",
                error_type=e.error_type,
                message=e.message,
                elapsed_s=round(time.monotonic() - started, 2),
            )
            raise

        logger.info(
            "rule_generation_complete",
            rules=len(doc.column_mappings),
            review_required=doc.summary.review_required,
            elapsed_s=round(time.monotonic() - started, 2),
        )
        return doc
