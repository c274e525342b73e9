"""
Rich Terminal UI components.
Status lines, panels and tables, with an ASCII fallback for limited terminals.
"""
import sys
from contextlib import contextmanager
from typing import Dict, Generator, List, Optional

import typer
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.table import Table
from rich.text import Text

from .models import RevisionListEntry
from .utils import format_millis

# Detect ASCII fallback
try:
    "📦".encode(sys.stdout.encoding if sys.stdout and sys.stdout.encoding else "utf-8")
    HAS_UNICODE = True
except (UnicodeEncodeError, LookupError):
    HAS_UNICODE = False

ICONS: Dict[str, str] = {
    "upload": "☁️",
    "activate": "🚀",
    "manifest": "📜",
    "success": "✅",
    "error": "❌",
    "warn": "⚠️",
    "info": "ℹ️",
    "doctor": "🩺",
    "delete": "🗑️",
    "config": "🔧",
}

ASCII_ICONS: Dict[str, str] = {
    "upload": "[UP]",
    "activate": "[ACT]",
    "manifest": "[MNF]",
    "success": "[OK]",
    "error": "[ERR]",
    "warn": "[WARN]",
    "info": "[INF]",
    "doctor": "[DOC]",
    "delete": "[DEL]",
    "config": "[CFG]",
}

def icon(name: str) -> str:
    return ICONS.get(name, "") if HAS_UNICODE else ASCII_ICONS.get(name, "")

console = Console(width=120)
err_console = Console(stderr=True, width=120)

def render_banner() -> None:
    """Render the compact deploytables header."""
    banner_text = Text("DEPLOYTABLES", style="bold color(39)")
    banner_text.append("  revision manifests on Azure Table Storage", style="dim cyan")
    console.print(Panel(banner_text, border_style="cyan", expand=False))

def render_status(action: str, message: str, style: str = "white") -> None:
    """Print a single line status update."""
    i = icon(action)
    console.print(f"{i} [{style}]{message}[/]")

def render_error(message: str) -> None:
    """Print a styled error panel."""
    i = icon("error")
    err_console.print()
    err_console.print(Panel(Text(message, style="red"), border_style="red", expand=False, title=f"{i} ERROR"))

def render_warning(message: str) -> None:
    """Print a styled warning panel."""
    i = icon("warn")
    console.print()
    console.print(Panel(Text(message, style="yellow"), border_style="yellow", expand=False, title=f"{i} WARNING"))

def confirm(prompt_text: str) -> bool:
    """Interactive confirmation prompt."""
    i = icon("warn")
    return typer.confirm(f"{i} {prompt_text}", default=False)

def render_table(title: str, headers: list[str], rows: list[list[str]]) -> None:
    """Render a structured Rich Table."""
    console.print()
    table = Table(
        title=title,
        border_style="cyan",
        header_style="bold magenta",
        show_lines=True,
        box=box.ROUNDED if HAS_UNICODE else box.ASCII
    )

    if headers:
        table.add_column(headers[0], justify="center", no_wrap=True)
        for h in headers[1:]:
            table.add_column(h, justify="left", overflow="fold")

    for r in rows:
        table.add_row(*r)

    console.print(table)
    console.print()

def render_revisions(title: str, revisions: List[RevisionListEntry], limit: Optional[int] = None) -> None:
    """Render revisions newest first, marking the active one."""
    shown = revisions[:limit] if limit else revisions
    rows = []
    for index, entry in enumerate(shown):
        marker = "[bold green]ACTIVE[/]" if entry.active else ""
        rows.append([str(index), entry.revision, format_millis(entry.timestamp), marker])
    render_table(title, ["#", "Revision", "Uploaded At (UTC)", "State"], rows)
    if limit and len(revisions) > limit:
        console.print(f"[dim]{len(revisions) - limit} older revisions not shown.[/]")

@contextmanager
def render_progress(title: str = "Operation in progress...") -> Generator[Progress, None, None]:
    """Provide a unified spinner for network-bound operations."""
    progress = Progress(
        SpinnerColumn(spinner_name="dots2", style="cyan"),
        TextColumn("[bold blue]{task.description}"),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    )
    with progress:
        progress.add_task(title, total=None)
        yield progress
