"""Rule generation package.

Builds the instruction text sent to the generation service and turns its
reply into a validated MappingDocument.

Modules:
- prompt_builder: instruction template rendering and CRM guidance
- response_parser: fence stripping, JSON parsing and validation
- node: RuleGenerator orchestration against an injected service
"""
from crm_mapper.nodes.rule_generation.node import RuleGenerator
from crm_mapper.nodes.rule_generation.prompt_builder import PromptBuilder, build_request
from crm_mapper.nodes.rule_generation.response_parser import ResponseParser, parse_response

__all__ = [
    "PromptBuilder",
    "ResponseParser",
    "RuleGenerator",
    "build_request",
    "parse_response",
]
