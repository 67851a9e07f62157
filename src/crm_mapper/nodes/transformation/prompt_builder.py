"""Prompt building for the transformation (export preview) call."""
from __future__ import annotations

import json
from typing import Any

import structlog

from crm_mapper.config.loader import get_prompt_version
from crm_mapper.models.mapping import MappingDocument
from crm_mapper.utils.prompt_loader import PromptLoader, fill_placeholders
from crm_mapper.utils.samples import render_source_sample

logger = structlog.get_logger(__name__)

PROMPT_FAMILY = "transformation"


class TransformPromptBuilder:
    """Builds transformation requests embedding the finalized rules."""

    def __init__(self, version: str | None = None, loader: PromptLoader | None = None):
        self.version = version or get_prompt_version(PROMPT_FAMILY)
        self.loader = loader or PromptLoader()

    def build_rules_content(self, doc: MappingDocument) -> str:
        """Rules as pretty JSON, in rule number order, without the summary."""
        rules = [
            m.model_dump(mode="json", exclude={"confidence", "needs_attention"})
            for m in doc.ordered_mappings()
        ]
        return json.dumps(rules, indent=2, ensure_ascii=False)

    def build_request(self, doc: MappingDocument, source_data: Any) -> str:
        config = self.loader.load(PROMPT_FAMILY, self.version)
        instructions = fill_placeholders(config.get("instructions", ""), {
            "rules": self.build_rules_content(doc),
            "column_list": "\n    - ".join(doc.target_columns),
            "source_data": render_source_sample(source_data),
        })
        request = "\n\n".join(
            p for p in (instructions.strip(), config.get("closing", "").strip()) if p
        ) + "\n"

        logger.info(
            "transformation_request_built",
            prompt_version=self.version,
            columns=len(doc.column_mappings),
            request_chars=len(request),
        )
        return request


def build_transform_request(doc: MappingDocument, source_data: Any) -> str:
    return TransformPromptBuilder().build_request(doc, source_data)
