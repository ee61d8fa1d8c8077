"""Output formatting for the gemindex CLI."""

import json
import sys
from typing import Any, Optional

from rich.console import Console


class OutputFormatter:
    """Writes user-facing messages, honoring quiet and JSON modes."""

    def __init__(
        self,
        json_output: bool = False,
        quiet: bool = False,
        console: Optional[Console] = None,
        error_console: Optional[Console] = None,
    ):
        """Initialize output formatter.

        Args:
            json_output: Emit machine-readable JSON instead of prose
            quiet: Suppress non-essential output
            console: Console for regular output (default: stdout)
            error_console: Console for errors (default: stderr)
        """
        self.json_output = json_output
        self.quiet = quiet
        self.console = console or Console(highlight=False)
        self.error_console = error_console or Console(stderr=True, highlight=False)

    def print(self, message: Any = "") -> None:
        """Print a message unless quiet or in JSON mode."""
        if self.quiet or self.json_output:
            return
        self.console.print(message)

    def report(self, message: Any = "") -> None:
        """Print a result line. Shown in quiet mode, hidden in JSON mode."""
        if self.json_output:
            return
        self.console.print(message)

    def info(self, message: str) -> None:
        """Print an informational message."""
        self.print(message)

    def success(self, message: str) -> None:
        """Print a success message."""
        self.print(f"[green]✓[/green] {message}")

    def warning(self, message: str) -> None:
        """Print a warning message."""
        if self.json_output:
            return
        self.console.print(f"[yellow]{message}[/yellow]")

    def error(self, message: str) -> None:
        """Print an error message (always shown)."""
        self.error_console.print(f"[red]{message}[/red]")

    def output_json(self, data: Any) -> None:
        """Write data as JSON to stdout."""
        sys.stdout.write(json.dumps(data, indent=2) + "\n")
        sys.stdout.flush()
