"""Tests for the crm-mapper command line."""
from __future__ import annotations

import json
from pathlib import Path

import pytest

from crm_mapper import cli
from crm_mapper.models import MappingDocument, RuleType, validate

FIXTURES_DIR = Path(__file__).parent / "fixtures"
SOURCE = str(FIXTURES_DIR / "source_sample.json")
TARGET = str(FIXTURES_DIR / "target_sample.csv")
RULES = str(FIXTURES_DIR / "mapping_document.json")


def read_document(path: Path) -> MappingDocument:
    return MappingDocument.model_validate(json.loads(path.read_text(encoding="utf-8")))


class TestMain:

    def test_no_command(self, capsys):
        assert cli.main([]) == 2
        assert "usage: crm-mapper" in capsys.readouterr().err

    def test_unknown_command(self):
        assert cli.main(["deploy"]) == 2

    def test_missing_file(self, tmp_path, capsys):
        code = cli.main(["validate", "--rules", str(tmp_path / "nope.json"), "--dotenv", str(tmp_path / ".env")])
        assert code == 1
        assert "Error" in capsys.readouterr().err


class TestPromptCommand:

    def test_writes_request(self, tmp_path):
        out = tmp_path / "request.txt"
        code = cli.main([
            "prompt", "--source", SOURCE, "--target", TARGET, "--crm", "admire",
            "--output", str(out), "--dotenv", str(tmp_path / ".env"),
        ])

        assert code == 0
        request = out.read_text(encoding="utf-8")
        assert "CRM-SPECIFIC FORMATTING (Admire)" in request
        assert "donor_name" in request

    def test_prints_request(self, capsys):
        assert cli.run_prompt(SOURCE, TARGET, "other") == 0
        assert "columnMappings" in capsys.readouterr().out


class TestValidateCommand:

    def test_valid_document(self, capsys):
        assert cli.run_validate(RULES, SOURCE, TARGET) == 0

        out = capsys.readouterr().out
        assert "Validation: OK" in out
        assert "Needs review: 10" in out
        assert "Copy=4" in out

    def test_invalid_document(self, tmp_path, mapping_data, capsys):
        mapping_data["summary"]["review_required"] = []
        path = tmp_path / "rules.json"
        path.write_text(json.dumps(mapping_data), encoding="utf-8")

        assert cli.run_validate(str(path)) == 1
        assert "review_required" in capsys.readouterr().out

    def test_fenced_file_accepted(self, tmp_path, mapping_text):
        path = tmp_path / "rules.json"
        path.write_text(f"```json\n{mapping_text}\n```", encoding="utf-8")
        assert cli.run_validate(str(path)) == 0


class TestEditCommand:

    def test_edit_recomputes_summary(self, tmp_path):
        out = tmp_path / "edited.json"
        code = cli.main([
            "edit", "--rules", RULES, "--rule", "10", "--type", "Copy", "--fields", "donation_id",
            "--source", SOURCE, "--output", str(out), "--dotenv", str(tmp_path / ".env"),
        ])

        assert code == 0
        doc = read_document(out)
        assert doc.get_rule(10).transformation_logic == "Copy donation_id directly to Source Code"
        assert doc.summary.review_required == []
        assert doc.summary.rules_by_type[RuleType.COPY] == 5
        assert validate(doc).ok

    def test_unknown_field_rejected(self, tmp_path):
        out = tmp_path / "edited.json"
        code = cli.main([
            "edit", "--rules", RULES, "--rule", "3", "--type", "Copy", "--fields", "email_address",
            "--source", SOURCE, "--output", str(out), "--dotenv", str(tmp_path / ".env"),
        ])

        assert code == 1
        assert not out.exists()

    def test_invalid_document_refused(self, tmp_path, mapping_data, capsys):
        mapping_data["columnMappings"][3]["target_column"] = "Email"
        rules = tmp_path / "rules.json"
        rules.write_text(json.dumps(mapping_data), encoding="utf-8")
        out = tmp_path / "edited.json"

        code = cli.run_edit(str(rules), 3, "Blank", [], output_path=str(out))

        assert code == 1
        assert not out.exists()
        assert "target_column_unique" in capsys.readouterr().out

    def test_unknown_rule_number(self, tmp_path):
        code = cli.run_edit(RULES, 42, "Blank", [], output_path=str(tmp_path / "edited.json"))
        assert code == 1


class TestGenerateCommand:

    def test_generate_with_service(self, tmp_path, fake_service, mapping_text, capsys):
        out = tmp_path / "rules.json"
        service = fake_service(response=f"```json\n{mapping_text}\n```")

        code = cli.run_generate(SOURCE, TARGET, "Admire", output_path=str(out), service=service)

        assert code == 0
        assert read_document(out).summary.target_crm == "Admire"
        assert "Needs review: 10" in capsys.readouterr().out

    def test_run_stamped_output(self, tmp_path, fake_service, mapping_text):
        service = fake_service(response=mapping_text)
        cli.run_generate(SOURCE, TARGET, "admire", output_dir=str(tmp_path), service=service)

        written = list(tmp_path.glob("rules_source_sample_*.json"))
        assert len(written) == 1

    def test_invalid_response_not_written(self, tmp_path, fake_service, mapping_data):
        from crm_mapper.utils.error_handler import InvariantViolationError

        mapping_data["columnMappings"][9]["needs_attention"] = False
        service = fake_service(response=json.dumps(mapping_data))
        out = tmp_path / "rules.json"

        with pytest.raises(InvariantViolationError):
            cli.run_generate(SOURCE, TARGET, "admire", output_path=str(out), service=service)
        assert not out.exists()


class TestTransformCommand:

    def test_writes_csv(self, tmp_path, fake_service, mapping_data):
        columns = [m["target_column"] for m in mapping_data["columnMappings"]]
        reply = ",".join(columns) + "\n" + ",".join("v" for _ in columns) + "\n"
        out = tmp_path / "export.csv"

        code = cli.run_transform(RULES, SOURCE, output_path=str(out), service=fake_service(response=reply))

        assert code == 0
        assert out.read_text(encoding="utf-8") == reply
