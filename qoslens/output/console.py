"""
Rich console output for qoslens
"""

import math
from typing import Optional

from rich.console import Console
from rich.table import Table
from rich.panel import Panel
from rich.text import Text
from rich import box

from ..models import HistoryEntry
from ..snapshot import MetricSnapshot
from .. import __version__


class ConsoleOutput:
    """
    Rich console output for probe results.

    Features:
    - Header panel with target and module
    - Metrics table grouped by family
    - Success/failure summary and debug trace panels
    """

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()

    def print_header(self, target: str, module: str, prober: str, timeout: float):
        """Print probe header"""
        content = Text()
        content.append("qoslens", style="bold cyan")
        content.append(f" v{__version__}\n", style="dim")
        content.append("Target: ", style="dim")
        content.append(target, style="bold")
        content.append("\n")
        content.append(f"Module: {module} ({prober.upper()})", style="dim")
        content.append(f"  |  Timeout: {timeout:g}s", style="dim")

        self.console.print(Panel(content, border_style="cyan", padding=(0, 1)))
        self.console.print()

    def print_snapshot(self, snapshot: MetricSnapshot):
        """Print metrics table and outcome"""
        table = Table(
            show_header=True,
            header_style="bold magenta",
            box=box.ROUNDED,
            border_style="dim",
            padding=(0, 1)
        )
        table.add_column("Metric")
        table.add_column("Labels", style="dim")
        table.add_column("Value", justify="right")

        for mf in snapshot.families:
            for sample in mf.samples:
                labels = ", ".join(f"{k}={v}" for k, v in sample.labels.items())
                table.add_row(sample.name, labels or "-", self._format_value(sample.value))

        self.console.print(table)

        content = Text()
        if snapshot.success:
            content.append("Probe succeeded", style="bold green")
        else:
            content.append("Probe failed", style="bold red")
        self.console.print(Panel(
            content,
            title=Text("Summary", style="bold"),
            border_style="green" if snapshot.success else "red",
            padding=(0, 1)
        ))

    def print_trace(self, entry: HistoryEntry):
        """Print the recorded debug trace of a run"""
        self.console.print(Panel(
            Text(entry.debug_output),
            title=Text(f"Trace #{entry.id}: {entry.module} -> {entry.target}", style="bold"),
            border_style="blue",
            padding=(0, 1)
        ))

    def print_error(self, message: str):
        """Print error message"""
        self.console.print(f"[bold red]Error:[/] {message}")

    def print_warning(self, message: str):
        """Print warning message"""
        self.console.print(f"[yellow]Warning:[/] {message}")

    def _format_value(self, value: float) -> str:
        if not math.isfinite(value):
            return str(value)
        if value == int(value) and abs(value) < 1e15:
            return str(int(value))
        return f"{value:.3f}"
