"""Consistency checks over mapping documents."""
from crm_mapper.checks.consistency import (
    EditImpact,
    MappingStats,
    apply_impact,
    diff_after_edit,
    stats,
)

__all__ = [
    "EditImpact",
    "MappingStats",
    "apply_impact",
    "diff_after_edit",
    "stats",
]
