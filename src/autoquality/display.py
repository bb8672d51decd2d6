"""Result tables for the log and the console."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from rich.console import Console
from rich.table import Table

from .crf_search import CandidateResult
from .sample_evaluator import QualityMetric


def result_status(result: CandidateResult, target: float, winner_level: int | None) -> str:
    if not result.meets(target):
        return "LOW"
    return "* WIN" if result.level == winner_level else "OK"


def format_results_table(
    results: Sequence[CandidateResult],
    target: float,
    winner_level: int | None,
    metric: QualityMetric,
) -> list[str]:
    """Plain-text table of measured levels, sorted by level.

    Returns:
        Lines of the table, or an empty list when nothing was measured
    """
    if not results:
        return []

    is_ssim = metric is QualityMetric.SSIM
    width = 6 if is_ssim else 5
    lines = [
        f"| CRF | {metric.value:^{width}} | Status |",
        f"|-----|{'-' * (width + 2)}|--------|",
    ]
    for r in sorted(results, key=lambda r: r.level):
        status = result_status(r, target, winner_level)
        lines.append(f"| {r.level:>3} | {metric.format(r.score):>{width}} | {status:<6} |")
    return lines


def log_results_table(
    log: logging.Logger,
    results: Sequence[CandidateResult],
    target: float,
    winner_level: int | None,
    metric: QualityMetric,
) -> None:
    lines = format_results_table(results, target, winner_level, metric)
    if not lines:
        return
    log.info("")
    for line in lines:
        log.info(line)
    log.info("")


def display_results_table(
    console: Console,
    results: Sequence[CandidateResult],
    target: float,
    winner_level: int | None,
    metric: QualityMetric,
) -> None:
    """Render measured levels as a Rich table, winner highlighted."""
    if not results:
        return

    console.print()
    table = Table(
        title=f"[bold cyan]Search Results (target {metric.value} {metric.format(target)})[/bold cyan]",
        show_header=True,
        header_style="bold cyan",
        title_justify="left",
    )
    table.add_column("CRF", justify="right")
    table.add_column(metric.value, justify="right")
    table.add_column("Status", justify="center")

    for r in sorted(results, key=lambda r: r.level):
        status = result_status(r, target, winner_level)
        score = metric.format(r.score)
        if status == "* WIN":
            table.add_row(
                f"[bold]{r.level}[/bold]",
                f"[bold green]{score}[/bold green]",
                "[bold green]* WIN[/bold green]",
            )
        elif status == "OK":
            table.add_row(str(r.level), f"[green]{score}[/green]", "[green]OK[/green]")
        else:
            table.add_row(str(r.level), f"[red]{score}[/red]", "[red]LOW[/red]")

    console.print(table)
    console.print()
