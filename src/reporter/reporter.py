"""Report generation orchestration."""

from __future__ import annotations

import json
import logging
from pathlib import Path

from src.models.checkpoint import RunSummary
from src.models.config import HarnessConfig
from src.models.run_report import RunReport

from .json_report import generate_json_report
from .regression_detector import Regression, detect_regressions

logger = logging.getLogger(__name__)


class Reporter:
    """Writes run reports and compares them with the previous run."""

    def __init__(self, config: HarnessConfig):
        self.config = config
        self.output_dir = Path(config.report_output_dir)

    def find_regressions(self, report: RunReport) -> list[Regression]:
        previous = self._load_previous_summary(report.batch_id)
        if previous is None or report.summary is None:
            return []
        return detect_regressions(previous, report.summary)

    def generate_reports(
        self, report: RunReport, regressions: list[Regression],
    ) -> dict[str, str]:
        """Generate all configured report formats. Returns format -> file path."""
        self.output_dir.mkdir(parents=True, exist_ok=True)
        generated = {}

        if "json" in self.config.report_formats:
            path = self.output_dir / f"report_{report.batch_id}.json"
            logger.debug("Generating JSON report...")
            generate_json_report(report, regressions, path)
            generated["json"] = str(path)
            logger.info("JSON report: %s", path)

        return generated

    def _load_previous_summary(self, current_batch_id: str) -> RunSummary | None:
        """Load the checkpoint summary of the most recent earlier report."""
        if not self.output_dir.exists():
            return None

        report_files = sorted(
            self.output_dir.glob("report_batch_*.json"),
            key=lambda p: p.stat().st_mtime,
            reverse=True,
        )
        for report_path in report_files:
            try:
                with open(report_path) as f:
                    data = json.load(f)
                if data.get("batch_id") == current_batch_id or not data.get("summary"):
                    continue
                return RunSummary.model_validate(data["summary"])
            except Exception as e:
                logger.debug("Could not load previous run from %s: %s", report_path, e)
                continue
        return None
