"""Output formatting utilities for the CLI."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table
from rich.theme import Theme

_THEME = Theme(
    {
        "ok": "bold green",
        "warn": "yellow",
        "err": "bold red",
        "title": "bold cyan",
        "meta": "dim",
    }
)

console = Console(theme=_THEME)


def setup_logging(verbose: bool = False, level: str = "INFO") -> None:
    """Route log records through rich so they share the console styling."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else level.upper(),
        format="%(message)s",
        datefmt="%H:%M:%S",
        handlers=[RichHandler(console=console, show_path=False, rich_tracebacks=True)],
        force=True,
    )
    # botocore is chatty at DEBUG
    logging.getLogger("botocore").setLevel(logging.WARNING)


@dataclass(frozen=True)
class Out:
    """Output formatter for CLI messages and tables."""

    @contextmanager
    def status(self, msg: str):
        """Show a transient status spinner while work is in progress."""
        with console.status(msg, spinner="dots"):
            yield

    def success(self, msg: str) -> None:
        """Print a success message."""
        console.print(f"[ok]✓[/] {msg}")

    def warn(self, msg: str) -> None:
        """Print a warning message."""
        console.print(f"[warn]⚠[/] {msg}")

    def error(self, msg: str) -> None:
        """Print an error message."""
        console.print(f"[err]✗[/] {msg}")

    def header(self, title: str) -> None:
        """Print a header message."""
        console.print(f"[title]{title}[/]")

    def kv(self, items: Mapping[str, Any]) -> None:
        """Print key-value pairs."""
        for k, v in items.items():
            console.print(f"[meta]{k}[/]: {v}")

    def databases_table(self, databases: Iterable[Any], title: str = "Databases") -> None:
        """
        Expects objects with .name and .description
        (like catrep.core.models.Database)
        """
        t = Table(title=title, show_lines=False)
        t.add_column("Database", style="ok")
        t.add_column("Description", style="meta")

        for db in databases:
            t.add_row(str(db.name), str(getattr(db, "description", "") or ""))

        console.print(t)

    def results_table(
        self, rows: Iterable[tuple[str, str, bool, str]], title: str = "Results"
    ) -> None:
        """Render (kind, entity, ok, detail) rows of a stage run."""
        t = Table(title=title, show_lines=False)
        t.add_column("Kind", style="meta")
        t.add_column("Entity", style="ok")
        t.add_column("Result")
        t.add_column("Detail", style="meta")

        for kind, entity, ok, detail in rows:
            t.add_row(kind, entity, "[ok]OK[/]" if ok else "[err]FAIL[/]", detail)

        console.print(t)


out = Out()
