"""Output formatting for racelab CLI."""

import json
from dataclasses import dataclass
from typing import Any

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .models import (
    BufferVerification,
    CounterVerification,
    DemoResult,
    InvariantVerification,
    TransferVerification,
    TrialSummary,
    Verification,
)


@dataclass
class OutputContext:
    """Context for output formatting."""

    console: Console
    json_mode: bool = False

    def print(self, message: str, style: str | None = None) -> None:
        """Print message respecting output mode."""
        if not self.json_mode:
            self.console.print(message, style=style)

    def print_json(self, data: dict[str, Any]) -> None:
        """Print JSON data."""
        if self.json_mode:
            print(json.dumps(data, indent=2, default=str))

    def result(self, data: dict[str, Any], message: str = "") -> None:
        """Print result in appropriate format."""
        if self.json_mode:
            self.print_json(data)
        elif message:
            self.console.print(message)

    def error(self, message: str, data: dict[str, Any] | None = None) -> None:
        """Print error in appropriate format."""
        if self.json_mode and data:
            self.print_json({"error": message, **data})
        elif self.json_mode:
            self.print_json({"error": message})
        else:
            self.console.print(f"[red]Error: {message}[/red]")

    def success(self, message: str, data: dict[str, Any] | None = None) -> None:
        """Print success message in appropriate format."""
        if self.json_mode and data:
            self.print_json({"success": message, **data})
        elif self.json_mode:
            self.print_json({"success": message})
        else:
            self.console.print(f"[green]{message}[/green]")

    def header(self, title: str) -> None:
        """Print a demo banner."""
        if not self.json_mode:
            self.console.print(Panel(f"[bold]{title}[/bold]", style="cyan"))

    def section(self, title: str) -> None:
        """Print a section heading."""
        if not self.json_mode:
            self.console.print(f"\n[bold underline]{title}[/bold underline]")

    def show_resource(self, label: str, content: str) -> None:
        """Print raw resource contents as visible proof of state."""
        if not self.json_mode:
            self.console.print(f"[bold]{label}[/bold]")
            self.console.print(content, style="dim", markup=False, highlight=False)

    def verification(self, verification: Verification) -> None:
        """Print a verification summary table and its verdict."""
        if self.json_mode:
            return
        self.console.print(verification_table(verification))
        style = "magenta" if verification.race_detected else "green"
        if verification.inconclusive and not verification.race_detected:
            style = "yellow"
        self.console.print(verification.summary(), style=style)

    def demo_result(self, result: DemoResult, verification: Verification | None = None) -> None:
        """Print the final result of a demo."""
        if self.json_mode:
            data: dict[str, Any] = result.model_dump()
            if verification is not None:
                data["verification"] = verification.model_dump()
            self.print_json(data)
        elif result.success:
            self.console.print(f"[green]{result.message}[/green]")
        else:
            self.console.print(f"[red]{result.message}: {result.error}[/red]")


def verification_table(verification: Verification) -> Table:
    """Build a summary table for a verification record."""
    table = Table(title="Verification summary", show_header=False, title_style="bold cyan")
    table.add_column("field", style="bold")
    table.add_column("value", justify="right")

    if isinstance(verification, CounterVerification):
        table.add_row("Expected", str(verification.expected))
        table.add_row("Actual", str(verification.actual))
        table.add_row("Lost updates", str(verification.lost))
        if verification.completed_expected != verification.expected:
            table.add_row("Expected (completed work)", str(verification.completed_expected))
    elif isinstance(verification, InvariantVerification):
        unit = verification.unit
        table.add_row("Initial", f"{verification.initial} {unit}")
        table.add_row("Final", f"{verification.final} {unit}")
        table.add_row("Attempted total", f"{verification.attempted_total} {unit}")
        table.add_row("Reported successes", str(verification.succeeded_count))
        table.add_row("Rejected", str(verification.rejected_count))
        table.add_row("Actually taken", f"{verification.taken} {unit}")
        table.add_row("Never negative", "yes" if verification.invariant_held else "NO")
        table.add_row("Consistent", "yes" if verification.consistent else "NO")
    elif isinstance(verification, TransferVerification):
        table.add_row("Expected source", f"${verification.expected_source}")
        table.add_row("Actual source", f"${verification.actual_source}")
        table.add_row("Expected dest", f"${verification.expected_dest}")
        table.add_row("Actual dest", f"${verification.actual_dest}")
        table.add_row("Total money", f"${verification.actual_total}")
        table.add_row("Money lost", f"${verification.lost_money}")
    elif isinstance(verification, BufferVerification):
        table.add_row("Capacity", str(verification.capacity))
        table.add_row("Produced (reported)", str(verification.produced))
        table.add_row("Consumed (reported)", str(verification.consumed))
        table.add_row("Left in buffer", str(verification.remaining))
        table.add_row("Stored produced count", str(verification.recorded_produced))
        table.add_row("Stored consumed count", str(verification.recorded_consumed))
        table.add_row("Items given up", str(verification.gave_up))
        table.add_row("Every item accounted for", "yes" if verification.conserved else "NO")

    table.add_row("Race detected", "YES" if verification.race_detected else "no")
    return table


def trial_table(summary: TrialSummary) -> Table:
    """Build a table for a repeated-trials summary."""
    table = Table(title=f"{summary.scenario} x{summary.trials}", show_header=False)
    table.add_column("field", style="bold")
    table.add_column("value", justify="right")
    table.add_row("Mode", "locked" if summary.synchronized else "unprotected")
    table.add_row("Trials", str(summary.trials))
    table.add_row("Races detected", str(summary.races))
    table.add_row("Failed trials", str(summary.failures))
    table.add_row("Race rate", f"{summary.race_rate:.0%}")
    return table


# Global output context (set by cli.py main callback)
_ctx: OutputContext | None = None


def get_output_context() -> OutputContext:
    """Get the current output context.

    Returns a default OutputContext if not yet initialized by CLI.
    """
    if _ctx is None:
        return OutputContext(Console())
    return _ctx


def set_output_context(ctx: OutputContext) -> None:
    """Set the global output context. Called by CLI main callback."""
    global _ctx
    _ctx = ctx
