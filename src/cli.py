"""CLI entry point for the visual checkpoint harness."""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from src.checkpoints.baseline_registry import BaselineRegistryManager, account_id
from src.checkpoints.local_service import LocalCheckpointService
from src.errors import ConfigurationError, DriverError
from src.executor.executor import JourneyExecutor
from src.models.config import HarnessConfig, read_environment
from src.models.journey import JourneyFile
from src.orchestrator import SessionOrchestrator
from src.reporter.console_report import print_report
from src.reporter.reporter import Reporter

console = Console()

DEFAULT_CONFIG = "harness-config.json"
DEFAULT_JOURNEYS = "journeys/acme_bank.json"


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


def _load_config(path: str) -> HarnessConfig:
    if not Path(path).exists():
        logging.getLogger(__name__).info("No config at %s, using defaults", path)
        return HarnessConfig()
    return HarnessConfig.load(path)


def _baseline_manager(cfg: HarnessConfig) -> BaselineRegistryManager:
    service = LocalCheckpointService(cfg.store_dir)
    env = read_environment(cfg.api_key_env)
    api_key = env.api_key or cfg.api_key or service.resolve_api_key()
    if not api_key:
        raise ConfigurationError(f"{cfg.api_key_env} environment variable is not set.")
    return BaselineRegistryManager(Path(cfg.store_dir), account_id(api_key))


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def cli(verbose: bool) -> None:
    """Browser-driven visual checkpoint test harness"""
    setup_logging(verbose)


@cli.command()
@click.option("--config", "-c", default=DEFAULT_CONFIG, help="Config file path")
@click.option("--journeys", "-j", default=DEFAULT_JOURNEYS, help="Journey file path")
@click.option("--timeout", type=float, default=None,
              help="Seconds to wait for checkpoint results at the end of the run")
@click.option("--close-mode", type=click.Choice(["async", "blocking"]), default=None,
              help="Whether ending a test waits for its checkpoints")
def run(config: str, journeys: str, timeout: float | None, close_mode: str | None) -> None:
    """Run every journey as a visual test and report the batch."""
    try:
        cfg = _load_config(config)
        journey_file = JourneyFile.load(journeys)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(2)
    if close_mode:
        cfg.close_mode = close_mode

    executor = JourneyExecutor(SessionOrchestrator(cfg))
    try:
        report = asyncio.run(executor.execute(journey_file, timeout=timeout))
    except ConfigurationError as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        sys.exit(2)
    except DriverError as e:
        console.print(f"[red]Browser error:[/red] {e}")
        sys.exit(2)

    reporter = Reporter(cfg)
    regressions = reporter.find_regressions(report)
    print_report(console, report, regressions)
    for fmt, path in reporter.generate_reports(report, regressions).items():
        console.print(f"  {fmt.upper()} report: [blue]{path}[/blue]")

    visual_ok = report.summary is None or report.summary.passed or not cfg.fail_on_differences
    sys.exit(0 if report.succeeded and visual_ok else 1)


@cli.command()
@click.option("--app-name", prompt="Application name", default="ACME Bank Web App",
              help="Name of the application under test")
def init(app_name: str) -> None:
    """Create a default configuration file."""
    config_path = Path(DEFAULT_CONFIG)
    if config_path.exists():
        if not click.confirm(f"{DEFAULT_CONFIG} already exists. Overwrite?"):
            return

    cfg = HarnessConfig(app_name=app_name)
    cfg.save(config_path)
    console.print(f"[green]Created {config_path}[/green]")
    console.print(f"\nSet [bold]{cfg.api_key_env}[/bold] and run:")
    console.print("  [blue]visual-harness run[/blue]")


@cli.group()
def baselines() -> None:
    """Manage stored visual baselines."""
    pass


@baselines.command("list")
@click.option("--config", "-c", default=DEFAULT_CONFIG, help="Config file path")
def baselines_list(config: str) -> None:
    """List stored baselines."""
    try:
        manager = _baseline_manager(_load_config(config))
    except ConfigurationError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(2)
    registry = manager.load()
    if not registry.baselines:
        console.print("[yellow]No baselines stored[/yellow]")
        return
    table = Table(title=f"Baselines ({registry.account})")
    table.add_column("Test", style="bold")
    table.add_column("Checkpoint")
    table.add_column("Target")
    table.add_column("Size")
    table.add_column("Captured")
    for entry in registry.baselines.values():
        table.add_row(entry.test_name, entry.checkpoint_name, entry.render_target,
                      f"{entry.width}x{entry.height}", entry.captured_at)
    console.print(table)


@baselines.command("reset")
@click.option("--config", "-c", default=DEFAULT_CONFIG, help="Config file path")
@click.confirmation_option(prompt="Delete all stored baselines?")
def baselines_reset(config: str) -> None:
    """Delete all stored baselines."""
    try:
        manager = _baseline_manager(_load_config(config))
    except ConfigurationError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(2)
    removed = manager.reset()
    console.print(f"[green]Removed {removed} baseline(s)[/green]")


if __name__ == "__main__":
    cli()
