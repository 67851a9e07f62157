"""Shared enum definitions for the CRM export mapper.

This module contains canonical definitions for the rule types, confidence
levels and CRM identifiers used across the models, prompt builders and CLI.

Usage:
    from crm_mapper.models.shared import RuleType, Confidence, CrmHint
"""
from __future__ import annotations

from enum import Enum


class RuleType(str, Enum):
    """Transformation category applied to produce one target column.

    - COPY: Copy one source field as-is
    - REFORMAT: Reformat one source field (date, phone, currency, casing)
    - CONCATENATE: Combine several source fields with a separator
    - EXTRACT: Pull a portion out of one or more source fields
    - STATIC: Same hardcoded value for every record
    - BLANK: Leave the column empty
    """
    COPY = "Copy"
    REFORMAT = "Reformat"
    CONCATENATE = "Concatenate"
    EXTRACT = "Extract"
    STATIC = "Static"
    BLANK = "Blank"


class Confidence(str, Enum):
    """How sure the generator was about a rule."""
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


class CrmHint(str, Enum):
    """Destination CRM selecting extra formatting guidance."""
    SALESFORCE = "salesforce"
    RAISERS_EDGE = "raisers_edge"
    VIRTUOUS = "virtuous"
    ADMIRE = "admire"
    EVERYACTION = "everyaction"
    OTHER = "other"

    @classmethod
    def resolve(cls, value: "CrmHint | str | None") -> "CrmHint":
        """Map a free-form identifier onto a known CRM, falling back to OTHER.

        Matching ignores case, spaces, hyphens and apostrophes so that
        "Raiser's Edge", "raisers-edge" and "RAISERS_EDGE" all resolve.
        """
        if isinstance(value, cls):
            return value
        if not value:
            return cls.OTHER
        key = (
            str(value).strip().lower()
            .replace("'", "")
            .replace("\u2019", "")
            .replace("-", "_")
            .replace(" ", "_")
        )
        for member in cls:
            if member.value == key or member.value.replace("_", "") == key.replace("_", ""):
                return member
        return cls.OTHER


# Rule types that never read a source field and always need a human check
ATTENTION_RULE_TYPES = frozenset({RuleType.STATIC, RuleType.BLANK})

# Rule types reading exactly one source field
SINGLE_SOURCE_RULE_TYPES = frozenset({RuleType.COPY, RuleType.REFORMAT})

# Rule types reading one or more source fields
MULTI_SOURCE_RULE_TYPES = frozenset({RuleType.CONCATENATE, RuleType.EXTRACT})


# Display names used by CLI output and the generation prompt
CRM_DISPLAY_NAMES: dict[CrmHint, str] = {
    CrmHint.SALESFORCE: "Salesforce",
    CrmHint.RAISERS_EDGE: "Raiser's Edge",
    CrmHint.VIRTUOUS: "Virtuous",
    CrmHint.ADMIRE: "Admire",
    CrmHint.EVERYACTION: "EveryAction",
    CrmHint.OTHER: "Other",
}
