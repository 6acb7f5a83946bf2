"""JSON report for one batch run, including checkpoint results and regressions."""

from __future__ import annotations

import json
from dataclasses import asdict
from pathlib import Path

from src.models.run_report import RunReport
from .regression_detector import Regression


def generate_json_report(
    report: RunReport,
    regressions: list[Regression],
    output_path: Path,
) -> None:
    """Write the run report, its checkpoint summary and any regressions as JSON."""
    data = report.model_dump(mode="json")
    data["regressions"] = [asdict(r) for r in regressions]

    with open(output_path, "w") as f:
        json.dump(data, f, indent=2, default=str)
