"""
CLI utility helpers: output formatting and input loading.
"""

from __future__ import annotations

import json
from dataclasses import asdict
from pathlib import Path
from typing import Any, NoReturn

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from saasbackup.core.errors import BackupError

console = Console()
err_console = Console(stderr=True)

STATUS_STYLES = {
    "completed": "green",
    "succeeded": "green",
    "partially_completed": "yellow",
    "skipped": "yellow",
    "failed": "red",
    "cancelled": "magenta",
}


# ── Input helpers ────────────────────────────────────────────────────────


def load_json_file(path: Path, *, what: str = "file") -> Any:
    """Read and decode a JSON file, exiting with code 1 on any problem."""
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except OSError as e:
        fail(f"Cannot read {what} {path}: {e.strerror or e}")
    except json.JSONDecodeError as e:
        fail(f"{what.capitalize()} {path} is not valid JSON: {e}")


def fail(message: str, *, error: BaseException | None = None) -> NoReturn:
    """Print an error to stderr and exit with code 1."""
    if isinstance(error, BackupError):
        err_console.print(f"[bold red]Error[/bold red] ({type(error).__name__}): {error}")
    elif isinstance(error, ValidationError):
        err_console.print(f"[bold red]Error[/bold red]: {message}")
        for item in error.errors():
            loc = ".".join(str(p) for p in item["loc"])
            err_console.print(f"  [cyan]{loc}[/cyan]: {item['msg']}")
    else:
        err_console.print(f"[bold red]Error[/bold red]: {message}")
    raise typer.Exit(code=1)


# ── Output helpers ───────────────────────────────────────────────────────


def _to_dict(obj: Any) -> dict[str, Any]:
    """Convert a dataclass / pydantic model / dict to a plain dict."""
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    if hasattr(obj, "model_dump"):
        return obj.model_dump(mode="json")
    if hasattr(obj, "__dataclass_fields__"):
        return asdict(obj)
    if isinstance(obj, dict):
        return obj
    return {"value": str(obj)}


def print_json(data: Any) -> None:
    """Emit *data* as JSON on stdout (plain, no markup) for scripts."""
    payload = [_to_dict(d) for d in data] if isinstance(data, list | tuple) else _to_dict(data)
    typer.echo(json.dumps(payload, indent=2, default=str))


def styled_status(status: str) -> str:
    style = STATUS_STYLES.get(status)
    return f"[{style}]{status}[/{style}]" if style else status


def print_table(rows: list[dict[str, Any]], *, title: str = "", columns: list[str] | None = None) -> None:
    """Render a list of dicts as a Rich table."""
    if not rows:
        console.print("[dim]No items.[/dim]")
        return
    columns = columns or list(rows[0])
    table = Table(title=title or None, show_lines=False, pad_edge=False)
    for col in columns:
        table.add_column(col, overflow="fold")
    for row in rows:
        table.add_row(*(_cell(row.get(col)) for col in columns))
    console.print(table)


def print_dict(data: dict[str, Any], *, title: str = "") -> None:
    """Render a single dict as key-value pairs."""
    if title:
        console.print(f"[bold]{title}[/bold]")
    for k, v in data.items():
        console.print(f"  [cyan]{k}[/cyan]: {v}")


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "yes" if value else "no"
    if isinstance(value, list | tuple):
        return ", ".join(str(v) for v in value)
    return str(value)
