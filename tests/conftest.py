from __future__ import annotations

import copy
import json
import sys
from pathlib import Path

# Add src directory to path immediately on import - MUST be before any other imports
_src_dir = Path(__file__).resolve().parents[1] / "src"
_src_str = str(_src_dir)
if _src_str not in sys.path:
    sys.path.insert(0, _src_str)

import pytest

FIXTURES_DIR = Path(__file__).parent / "fixtures"


def load_fixture(name: str) -> dict | list:
    """Load a JSON fixture file."""
    with open(FIXTURES_DIR / name, "r", encoding="utf-8") as f:
        return json.load(f)


class FakeService:
    """Records submitted requests and replies with canned text."""

    def __init__(self, response: str = "", error: Exception | None = None):
        self.response = response
        self.error = error
        self.requests: list[str] = []

    def submit(self, request_text: str) -> str:
        self.requests.append(request_text)
        if self.error is not None:
            raise self.error
        return self.response


@pytest.fixture
def mapping_data() -> dict:
    """Valid 11-rule mapping document as returned by the generation service."""
    return copy.deepcopy(load_fixture("mapping_document.json"))


@pytest.fixture
def mapping_text(mapping_data: dict) -> str:
    return json.dumps(mapping_data, indent=2)


@pytest.fixture
def source_sample() -> list[dict]:
    return load_fixture("source_sample.json")


@pytest.fixture
def target_sample() -> str:
    return (FIXTURES_DIR / "target_sample.csv").read_text(encoding="utf-8")


@pytest.fixture
def fake_service() -> type[FakeService]:
    """The FakeService class, for tests that build their own replies."""
    return FakeService
