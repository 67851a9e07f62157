from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv

from crm_mapper.checks.consistency import diff_after_edit, stats
from crm_mapper.models.editing import apply_edit, replace_mapping
from crm_mapper.models.mapping import MappingDocument
from crm_mapper.models.shared import CRM_DISPLAY_NAMES, CrmHint, RuleType
from crm_mapper.models.validation import ValidationResult, validate
from crm_mapper.nodes.rule_generation import PromptBuilder, ResponseParser, RuleGenerator
from crm_mapper.nodes.transformation import Transformer, rows_to_csv
from crm_mapper.pipeline_runner import PipelineRunner
from crm_mapper.services import PROVIDERS, TextService, build_service
from crm_mapper.utils.error_handler import MapperError, exit_with_error
from crm_mapper.utils.samples import (
    load_source_sample,
    load_target_sample,
    source_field_names,
    target_columns_from_sample,
)


logger = logging.getLogger(__name__)

COMMANDS = ("prompt", "generate", "validate", "edit", "transform")
CRM_CHOICES = [hint.value for hint in CrmHint]


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--log-level",
        dest="log_level",
        default=os.getenv("CRM_MAPPER_LOG_LEVEL", "INFO"),
        help="Logging level (DEBUG, INFO, WARNING, ERROR)",
    )
    parser.add_argument(
        "--dotenv",
        dest="dotenv_path",
        default=".env",
        help="Path to .env file to load (default: .env in the working directory)",
    )


def _add_output_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--output",
        dest="output_path",
        default="",
        help="Output file path. If not set, writes a run-stamped file into --output-dir.",
    )
    parser.add_argument(
        "--output-dir",
        dest="output_dir",
        default=os.getenv("CRM_MAPPER_OUTPUT_DIR", "outputs"),
        help="Directory to save outputs when --output is not set.",
    )


def _add_sample_arguments(parser: argparse.ArgumentParser, required: bool = True) -> None:
    parser.add_argument(
        "--source",
        dest="source_path",
        required=required,
        help="Path to the source donation export sample (.json)",
    )
    parser.add_argument(
        "--target",
        dest="target_path",
        required=required,
        help="Path to the target CRM import sample (.csv)",
    )


def build_prompt_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="crm-mapper prompt",
        description="Print the rule generation request without calling a service",
    )
    _add_sample_arguments(parser)
    parser.add_argument("--crm", default="other", help=f"Target CRM ({', '.join(CRM_CHOICES)})")
    parser.add_argument(
        "--output",
        dest="output_path",
        default="",
        help="Optional file for the request text. If not set, prints to stdout.",
    )
    _add_common_arguments(parser)
    return parser


def build_generate_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="crm-mapper generate",
        description="Generate mapping rules from a source sample and a target CRM sample",
    )
    _add_sample_arguments(parser)
    parser.add_argument("--crm", default="other", help=f"Target CRM ({', '.join(CRM_CHOICES)})")
    parser.add_argument(
        "--provider",
        choices=PROVIDERS,
        default=None,
        help="Service provider (default from config / CRM_MAPPER_PROVIDER)",
    )
    _add_output_arguments(parser)
    _add_common_arguments(parser)
    return parser


def build_validate_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="crm-mapper validate",
        description="Check a mapping document's invariants and print its statistics",
    )
    parser.add_argument("--rules", dest="rules_path", required=True, help="Mapping document (.json)")
    _add_sample_arguments(parser, required=False)
    _add_common_arguments(parser)
    return parser


def build_edit_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="crm-mapper edit",
        description="Change one rule's type and source fields; the summary is recomputed",
    )
    parser.add_argument("--rules", dest="rules_path", required=True, help="Mapping document (.json)")
    parser.add_argument("--rule", dest="rule_number", type=int, required=True, help="Rule number to edit")
    parser.add_argument(
        "--type",
        dest="rule_type",
        required=True,
        choices=[t.value for t in RuleType],
        help="New rule type",
    )
    parser.add_argument(
        "--fields",
        default="",
        help="Comma-separated source fields (empty for Static/Blank)",
    )
    parser.add_argument("--logic", default=None, help="Free-text transformation logic (overrides the template)")
    parser.add_argument("--separator", default=None, help="Separator for Concatenate rules")
    parser.add_argument("--static-value", dest="static_value", default=None, help="Value for Static rules")
    parser.add_argument("--reformat-type", dest="reformat_type", default="", help="date, phone, currency, ...")
    parser.add_argument("--format-pattern", dest="format_pattern", default="", help="e.g. MM/DD/YYYY")
    parser.add_argument(
        "--flag",
        dest="flag_assumption",
        action="store_true",
        help="Keep the rule flagged for attention (the edit involved an assumption)",
    )
    parser.add_argument("--source", dest="source_path", default="", help="Source sample to check field names against")
    _add_output_arguments(parser)
    _add_common_arguments(parser)
    return parser


def build_transform_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="crm-mapper transform",
        description="Apply a mapping document to source data and write the CRM import CSV",
    )
    parser.add_argument("--rules", dest="rules_path", required=True, help="Mapping document (.json)")
    parser.add_argument("--source", dest="source_path", required=True, help="Source donation data (.json)")
    parser.add_argument(
        "--provider",
        choices=PROVIDERS,
        default=None,
        help="Service provider (default from config / CRM_MAPPER_PROVIDER)",
    )
    _add_output_arguments(parser)
    _add_common_arguments(parser)
    return parser


def load_document(path: str | Path) -> MappingDocument:
    """Read a mapping document file (fences tolerated, invariants not checked)."""
    raw = Path(path).read_text(encoding="utf-8")
    return ResponseParser().parse_document(raw)


def format_report(doc: MappingDocument, result: ValidationResult | None = None) -> str:
    """Human-readable statistics and validation outcome."""
    s = stats(doc)
    lines = [f"Rules: {len(doc.column_mappings)}"]
    if doc.summary.target_crm:
        lines.append(f"Target CRM: {doc.summary.target_crm}")
    lines.append("By type: " + ", ".join(f"{t.value}={n}" for t, n in s.by_type.items()))
    lines.append("By confidence: " + ", ".join(f"{c.value}={n}" for c, n in s.by_confidence.items()))
    if s.attention_list:
        lines.append(f"Needs review: {', '.join(str(n) for n in s.attention_list)}")
        for number in s.attention_list:
            rule = doc.get_rule(number)
            if rule is not None:
                lines.append(f"  {number}. {rule.target_column} [{rule.type.value}] {rule.transformation_logic}")

    if result is not None:
        if result.ok:
            lines.append("Validation: OK")
        else:
            lines.append(f"Validation: FAILED ({len(result.violations)} problems)")
            lines.extend(f"  - {v}" for v in result.violations)
        lines.extend(f"  warning: {w}" for w in result.warnings)
    return "\n".join(lines)


def run_prompt(source_path: str, target_path: str, crm: str, output_path: str = "") -> int:
    request = PromptBuilder().build_request(
        load_source_sample(source_path),
        load_target_sample(target_path),
        crm,
    )
    if output_path:
        Path(output_path).write_text(request, encoding="utf-8")
        logger.info("[output] wrote=%s", output_path)
    else:
        print(request)
    return 0


def run_generate(
    source_path: str,
    target_path: str,
    crm: str,
    output_path: str = "",
    output_dir: str = "outputs",
    service: Optional[TextService] = None,
    provider: Optional[str] = None,
) -> int:
    runner = PipelineRunner(source_path, output_path, output_dir, output_prefix="rules")
    hint = CrmHint.resolve(crm)

    runner.log_plan([
        "Rule Generation",
        "Load source and target samples",
        "Build generation request",
        "Submit to generation service",
        "Parse and validate mapping document",
        "Write mapping document",
    ])
    runner.log_run(crm=CRM_DISPLAY_NAMES[hint], provider=provider or "config")

    source_sample = load_source_sample(source_path)
    target_sample = load_target_sample(target_path)
    runner.log_step(
        "samples",
        source_fields=len(source_field_names(source_sample)),
        target_columns=len(target_columns_from_sample(target_sample)),
    )

    generator = RuleGenerator(service or build_service(provider))
    doc = generator.generate(source_sample, target_sample, hint)
    runner.log_step("generate", rules=len(doc.column_mappings), review=len(doc.summary.review_required))

    runner.write_output(doc.to_output_dict())
    print(format_report(doc))
    return 0


def run_validate(rules_path: str, source_path: str = "", target_path: str = "") -> int:
    doc = load_document(rules_path)
    source_fields = source_field_names(load_source_sample(source_path)) if source_path else None
    target_columns = target_columns_from_sample(load_target_sample(target_path)) if target_path else None

    result = validate(doc, source_fields=source_fields, target_columns=target_columns)
    print(format_report(doc, result))
    return 0 if result.ok else 1


def run_edit(
    rules_path: str,
    rule_number: int,
    rule_type: str,
    fields: list[str],
    explicit_logic: Optional[str] = None,
    separator: Optional[str] = None,
    static_value: Optional[str] = None,
    reformat_type: str = "",
    format_pattern: str = "",
    flag_assumption: bool = False,
    source_path: str = "",
    output_path: str = "",
    output_dir: str = "outputs",
) -> int:
    runner = PipelineRunner(rules_path, output_path, output_dir, output_prefix="rules_edited")
    doc = load_document(rules_path)

    result = validate(doc)
    if not result.ok:
        logger.error("[edit] %s is not a valid mapping document; fix it before editing", rules_path)
        print(format_report(doc, result))
        return 1

    before = doc.get_rule(rule_number)
    if before is None:
        logger.error("[edit] no rule number %s in %s", rule_number, rules_path)
        return 1

    known: Any = source_field_names(load_source_sample(source_path)) if source_path else None
    after = apply_edit(
        before,
        rule_type,
        fields,
        explicit_logic,
        separator=separator,
        static_value=static_value,
        reformat_type=reformat_type,
        format_pattern=format_pattern,
        flag_assumption=flag_assumption,
        known_source_fields=known,
    )
    impact = diff_after_edit(before, after)
    updated = replace_mapping(doc, after)

    runner.log_step(
        "edit",
        rule=rule_number,
        type=f"{before.type.value}->{after.type.value}",
        needs_attention_delta=impact.needs_attention_delta,
    )
    runner.write_output(updated.to_output_dict())
    print(f"{after.rule_number}. {after.target_column} [{after.type.value}] {after.transformation_logic}")
    return 0


def run_transform(
    rules_path: str,
    source_path: str,
    output_path: str = "",
    output_dir: str = "outputs",
    service: Optional[TextService] = None,
    provider: Optional[str] = None,
) -> int:
    runner = PipelineRunner(source_path, output_path, output_dir, output_prefix="export", output_suffix=".csv")
    runner.log_plan([
        "Transformation",
        "Load mapping document and source data",
        "Validate mapping document",
        "Submit to transformation service",
        "Write CRM import CSV",
    ])

    doc = load_document(rules_path)
    source_data = load_source_sample(source_path)

    rows = Transformer(service or build_service(provider)).transform(doc, source_data)
    runner.log_step("transform", rows=len(rows), columns=len(doc.column_mappings))
    runner.write_text(rows_to_csv(rows, doc.target_columns))
    return 0


def _configure_logging(log_level: str) -> None:
    logging.basicConfig(level=getattr(logging, str(log_level).upper(), logging.INFO))

    # Reduce noisy transport logs; keep app milestone logs readable.
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("anthropic").setLevel(logging.WARNING)
    logging.getLogger("openai").setLevel(logging.WARNING)


def _dispatch(command: str, args: argparse.Namespace) -> int:
    if command == "prompt":
        return run_prompt(args.source_path, args.target_path, args.crm, args.output_path)
    if command == "generate":
        return run_generate(
            source_path=args.source_path,
            target_path=args.target_path,
            crm=args.crm,
            output_path=args.output_path,
            output_dir=args.output_dir,
            provider=args.provider,
        )
    if command == "validate":
        return run_validate(args.rules_path, args.source_path or "", args.target_path or "")
    if command == "edit":
        return run_edit(
            rules_path=args.rules_path,
            rule_number=args.rule_number,
            rule_type=args.rule_type,
            fields=[f.strip() for f in args.fields.split(",") if f.strip()],
            explicit_logic=args.logic,
            separator=args.separator,
            static_value=args.static_value,
            reformat_type=args.reformat_type,
            format_pattern=args.format_pattern,
            flag_assumption=args.flag_assumption,
            source_path=args.source_path,
            output_path=args.output_path,
            output_dir=args.output_dir,
        )
    return run_transform(
        rules_path=args.rules_path,
        source_path=args.source_path,
        output_path=args.output_path,
        output_dir=args.output_dir,
        provider=args.provider,
    )


PARSERS = {
    "prompt": build_prompt_parser,
    "generate": build_generate_parser,
    "validate": build_validate_parser,
    "edit": build_edit_parser,
    "transform": build_transform_parser,
}


def main(argv: Optional[list[str]] = None) -> int:
    argv_list = list(argv) if argv is not None else sys.argv[1:]

    if not argv_list or argv_list[0] not in COMMANDS:
        print(f"usage: crm-mapper {{{','.join(COMMANDS)}}} [options]", file=sys.stderr)
        return 2

    command = argv_list[0]
    args = PARSERS[command]().parse_args(argv_list[1:])

    _configure_logging(args.log_level)
    load_dotenv(args.dotenv_path)

    try:
        return _dispatch(command, args)
    except MapperError as e:
        return exit_with_error(e, context=command)
    except (FileNotFoundError, ValueError) as e:
        logger.error("[%s] %s", command, e)
        print(f"\nError: {e}\n", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
