"""Prompt building for the rule generation call.

Renders the versioned instruction template with the two samples embedded
verbatim and, for known CRMs, a block of destination-specific formatting
guidance. Rendering is deterministic: the same inputs always produce the
same text.
"""
from __future__ import annotations

from typing import Any

import structlog

from crm_mapper.config.loader import get_prompt_version
from crm_mapper.models.shared import CRM_DISPLAY_NAMES, CrmHint
from crm_mapper.utils.prompt_loader import PromptLoader, fill_placeholders
from crm_mapper.utils.samples import render_source_sample

logger = structlog.get_logger(__name__)

PROMPT_FAMILY = "rule_generation"
CRM_GUIDANCE_HEADER = "CRM-SPECIFIC FORMATTING"


class PromptBuilder:
    """Builds rule generation requests."""

    def __init__(self, version: str | None = None, loader: PromptLoader | None = None):
        self.version = version or get_prompt_version(PROMPT_FAMILY)
        self.loader = loader or PromptLoader()

    @property
    def prompt_config(self) -> dict[str, Any]:
        return self.loader.load(PROMPT_FAMILY, self.version)

    def crm_guidance(self, crm_hint: CrmHint | str | None) -> str:
        """Guidance text for a CRM; empty for OTHER or unknown identifiers."""
        hint = CrmHint.resolve(crm_hint)
        if hint == CrmHint.OTHER:
            return ""
        table = self.prompt_config.get("crm_guidance") or {}
        return (table.get(hint.value) or "").strip()

    def build_request(
        self,
        source_sample: Any,
        target_sample: str,
        crm_hint: CrmHint | str | None = None,
    ) -> str:
        """Render the full instruction text for one generation request."""
        config = self.prompt_config
        hint = CrmHint.resolve(crm_hint)
        target_crm = CRM_DISPLAY_NAMES[hint] if hint != CrmHint.OTHER else ""

        instructions = fill_placeholders(config.get("instructions", ""), {
            "source_sample": render_source_sample(source_sample),
            "target_sample": target_sample.strip(),
            "target_crm": target_crm,
        })

        parts = [config.get("role", "").strip(), instructions.strip()]

        guidance = self.crm_guidance(hint)
        if guidance:
            parts.append(f"{CRM_GUIDANCE_HEADER} ({CRM_DISPLAY_NAMES[hint]})\n{guidance}")

        parts.append(config.get("closing", "").strip())
        request = "\n\n".join(p for p in parts if p) + "\n"

        logger.info(
            "rule_generation_request_built",
            prompt_version=self.version,
            crm=hint.value,
            crm_guidance=bool(guidance),
            request_chars=len(request),
        )
        return request


def build_request(
    source_sample: Any,
    target_sample: str,
    crm_hint: CrmHint | str | None = None,
) -> str:
    """Build a rule generation request with the configured prompt version."""
    return PromptBuilder().build_request(source_sample, target_sample, crm_hint)
