"""Console output formatting for the Syncbox CLI."""

import json
from typing import Any, Optional

from rich.console import Console
from rich.table import Table


class OutputFormatter:
    """Formats messages, tables and JSON for the terminal.

    Informational output is suppressed in quiet mode; errors and warnings
    are always written to stderr.
    """

    def __init__(self, json_output: bool = False, quiet: bool = False):
        self.json_output = json_output
        self.quiet = quiet
        self.console = Console()
        self.err_console = Console(stderr=True)

    def print(self, message: str = "") -> None:
        if not self.quiet:
            self.console.print(message, highlight=False)

    def info(self, message: str) -> None:
        if not self.quiet:
            self.console.print(message, highlight=False)

    def success(self, message: str) -> None:
        if not self.quiet:
            self.console.print(f"[green]{message}[/green]", highlight=False)

    def warning(self, message: str) -> None:
        self.err_console.print(f"[yellow]{message}[/yellow]", highlight=False)

    def error(self, message: str) -> None:
        self.err_console.print(f"[red]Error: {message}[/red]", highlight=False)

    def output_json(self, data: Any) -> None:
        self.console.print_json(json.dumps(data, default=str))

    def output_table(
        self,
        rows: list[dict[str, str]],
        columns: list[str],
        headers: Optional[dict[str, str]] = None,
        title: Optional[str] = None,
    ) -> None:
        """Print rows as a rich table.

        Args:
            rows: One dict per row, keyed by column name
            columns: Column names in display order
            headers: Optional display name for each column
            title: Optional table title
        """
        headers = headers or {}
        table = Table(title=title)
        for column in columns:
            table.add_column(headers.get(column, column))
        for row in rows:
            table.add_row(*(str(row.get(column, "")) for column in columns))
        self.console.print(table)

    def print_summary(self, title: str, items: list[tuple[str, str]]) -> None:
        """Print a two-column key/value summary."""
        if self.quiet:
            return
        table = Table(title=title, show_header=False)
        table.add_column("Key", style="bold")
        table.add_column("Value")
        for key, value in items:
            table.add_row(key, value)
        self.console.print(table)
