"""Console summary rendered with rich."""

from __future__ import annotations

from rich.console import Console
from rich.table import Table

from src.models.checkpoint import CheckpointEntry, CheckpointOutcome
from src.models.run_report import RunReport

from .regression_detector import Regression

_OUTCOME_STYLE = {
    CheckpointOutcome.MATCHED: "green",
    CheckpointOutcome.DIFFERENT: "red",
    CheckpointOutcome.UNRESOLVED: "yellow",
}

_RESULT_STYLE = {"pass": "green", "fail": "red", "error": "red"}


def _renderings(entry: CheckpointEntry) -> str:
    if len(entry.renderings) == 1:
        return entry.renderings[0].render_target
    matched = sum(1 for r in entry.renderings if r.outcome == CheckpointOutcome.MATCHED)
    return f"{matched}/{len(entry.renderings)} matched"


def build_checkpoint_table(report: RunReport) -> Table:
    table = Table(title=f"Visual checkpoints: {report.batch_name}")
    table.add_column("Test", style="bold")
    table.add_column("Checkpoint")
    table.add_column("Renderings")
    table.add_column("Outcome")
    table.add_column("Details")
    if report.summary is None:
        return table
    for entry in report.summary.entries:
        style = _OUTCOME_STYLE[entry.outcome]
        outcome = entry.outcome.value + (" (new)" if entry.new_baseline else "")
        table.add_row(
            entry.test_name, entry.checkpoint_name, _renderings(entry),
            f"[{style}]{outcome}[/{style}]", entry.message,
        )
    return table


def build_results_table(report: RunReport) -> Table:
    table = Table(title="Results Summary")
    table.add_column("Metric", style="bold")
    table.add_column("Value")
    table.add_row("Batch", f"{report.batch_name} ({report.batch_id})")
    table.add_row("Duration", f"{report.duration_seconds}s")
    table.add_row("Tests", str(report.total_tests))
    table.add_row("Passed", f"[green]{report.passed}[/green]")
    table.add_row("Failed", f"[red]{report.failed}[/red]")
    table.add_row("Errors", f"[red]{report.errors}[/red]")
    if report.summary is not None:
        table.add_row("Checkpoints", str(report.summary.total))
        table.add_row("Matched", f"[green]{report.summary.matched}[/green]")
        table.add_row("Different", f"[red]{report.summary.different}[/red]")
        table.add_row("Unresolved", f"[yellow]{report.summary.unresolved}[/yellow]")
    return table


def print_report(console: Console, report: RunReport, regressions: list[Regression]) -> None:
    for result in report.journey_results:
        if result.result != "pass":
            style = _RESULT_STYLE[result.result]
            console.print(f"[{style}]{result.result.upper()}[/{style}] "
                          f"{result.test_name}: {result.failure_reason}")
    console.print(build_checkpoint_table(report))
    console.print(build_results_table(report))
    for r in regressions:
        console.print(f"[red]Regression:[/red] {r.test_name} / {r.checkpoint_name} "
                      f"({r.render_target}): {r.previous_outcome} -> {r.current_outcome}")
