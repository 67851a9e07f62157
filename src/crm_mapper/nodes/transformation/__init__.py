"""Transformation package: runs the finalized rule set over source data."""
from crm_mapper.nodes.transformation.node import Transformer
from crm_mapper.nodes.transformation.prompt_builder import (
    TransformPromptBuilder,
    build_transform_request,
)
from crm_mapper.nodes.transformation.response_parser import (
    parse_transform_response,
    rows_to_csv,
)

__all__ = [
    "TransformPromptBuilder",
    "Transformer",
    "build_transform_request",
    "parse_transform_response",
    "rows_to_csv",
]
