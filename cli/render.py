from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

import typer

_EMPTY = "No readings stored yet."

# (header, payload key) pairs, in display order.
_HISTORY_COLUMNS = (
    ("#", "id"),
    ("created_at", "created_at"),
    ("device", "device_id"),
    ("temp", "temperature"),
    ("humidity", "humidity"),
)


def _cell(value: Any) -> str:
    # Non-finite measurements arrive as JSON null.
    return "n/a" if value is None else str(value)


def render_reading(payload: Optional[Dict[str, Any]]) -> None:
    typer.secho("Latest Reading", bold=True)
    if not payload:
        typer.echo(_EMPTY)
        return
    width = max(len(key) for key in payload)
    for key, value in payload.items():
        typer.echo(f"{key:>{width}}: {_cell(value)}")


def render_history(payloads: Iterable[Dict[str, Any]]) -> None:
    rows: List[List[str]] = [
        [_cell(row.get(key)) for _header, key in _HISTORY_COLUMNS] for row in payloads
    ]
    typer.secho(f"Reading History ({len(rows)})", bold=True)
    if not rows:
        typer.echo(_EMPTY)
        return
    for row in rows:
        row[0] = f"#{row[0]}"
    headers = [header for header, _key in _HISTORY_COLUMNS]
    widths = [max(len(cells[i]) for cells in [headers, *rows]) for i in range(len(headers))]
    typer.secho("  ".join(h.ljust(w) for h, w in zip(headers, widths)).rstrip(), dim=True)
    for row in rows:
        typer.echo("  ".join(cell.ljust(w) for cell, w in zip(row, widths)).rstrip())
