"""Run bookkeeping shared by the CLI commands.

Resolves output paths, assigns run IDs and writes results.
"""
from __future__ import annotations

import json
import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


class PipelineRunner:
    """Common pipeline orchestration utilities."""

    def __init__(
        self,
        input_path: str,
        output_path: str = "",
        output_dir: str = "outputs",
        output_prefix: str = "output",
        output_suffix: str = ".json",
    ):
        self.input_path = Path(input_path)

        if not self.input_path.exists():
            raise FileNotFoundError(f"Input file not found: {input_path}")

        self.run_id = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S") + "_" + uuid.uuid4().hex[:8]

        if output_path:
            self.output_file = Path(output_path)
        else:
            self.output_file = Path(output_dir) / f"{output_prefix}_{self.input_path.stem}_{self.run_id}{output_suffix}"

    def log_plan(self, steps: list[str]) -> None:
        """Log the pipeline plan."""
        logger.info("[plan] %s", steps[0] if steps else "Pipeline")
        for step in steps[1:]:
            logger.info("[plan] - %s", step)

    def log_run(self, **kwargs: Any) -> None:
        """Log run parameters."""
        params = " ".join(f"{k}={v}" for k, v in kwargs.items())
        logger.info("[run] input=%s output=%s %s", str(self.input_path), str(self.output_file), params)

    def log_step(self, step_name: str, **kwargs: Any) -> None:
        """Log a pipeline step with optional metrics."""
        if kwargs:
            metrics = " ".join(f"{k}={v}" for k, v in kwargs.items())
            logger.info("[%s] %s", step_name, metrics)
        else:
            logger.info("[%s] started", step_name)

    def write_output(self, payload: dict[str, Any]) -> None:
        """Write output to JSON file."""
        self.write_text(json.dumps(payload, indent=2, ensure_ascii=False))

    def write_text(self, text: str) -> None:
        self.output_file.parent.mkdir(parents=True, exist_ok=True)
        self.output_file.write_text(text, encoding="utf-8")
        logger.info("[output] wrote=%s", str(self.output_file))
