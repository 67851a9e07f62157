"""Loads versioned prompt templates from the package's prompts/ directory."""
from __future__ import annotations

import re
from pathlib import Path
from typing import Any, Mapping

import structlog
import yaml

logger = structlog.get_logger(__name__)

PROMPTS_DIR = Path(__file__).parent.parent / "prompts"

_PLACEHOLDER_RE = re.compile(r"\{(\w+)\}")


def fill_placeholders(template: str, values: Mapping[str, str]) -> str:
    """Substitute ``{name}`` placeholders in one pass.

    Substituted text is never scanned again, so a value that itself contains
    ``{name}`` is embedded as is. Unknown placeholders are left in place.
    """
    return _PLACEHOLDER_RE.sub(
        lambda m: values[m.group(1)] if m.group(1) in values else m.group(0),
        template,
    )


class PromptLoader:
    """Reads and caches ``prompts/<family>/<version>.yaml``."""

    def __init__(self, prompts_dir: Path | None = None):
        self.prompts_dir = prompts_dir or PROMPTS_DIR
        self._cache: dict[tuple[str, str], dict[str, Any]] = {}

    def load(self, family: str, version: str) -> dict[str, Any]:
        """Load a prompt configuration.

        Raises:
            FileNotFoundError: no template for this family/version.
        """
        key = (family, version)
        if key in self._cache:
            return self._cache[key]

        prompt_file = self.prompts_dir / family / f"{version}.yaml"
        if not prompt_file.exists():
            logger.error("prompt_not_found", path=str(prompt_file))
            raise FileNotFoundError(f"Prompt template not found: {prompt_file}")

        with open(prompt_file, "r", encoding="utf-8") as f:
            config = yaml.safe_load(f) or {}
        self._cache[key] = config
        return config

    def list_versions(self, family: str) -> list[str]:
        family_dir = self.prompts_dir / family
        if not family_dir.is_dir():
            return []
        return sorted(p.stem for p in family_dir.glob("*.yaml"))
