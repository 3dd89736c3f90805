"""Heuristic table reconstruction for text pulled out of PDFs.

PDF text extraction flattens tables into lines whose cells are separated by
tabs or runs of spaces.  :func:`enhance_table_text` finds runs of such lines
and re-renders them as pipe-delimited rows with a header separator, which
embeds far better than ragged whitespace.

This is a best-effort pass: prose that happens to contain wide gaps can be
mistaken for a table and oddly laid-out tables can be missed.
"""

from __future__ import annotations

import re

MAX_COLUMN_WIDTH = 50
MAX_SEPARATOR_WIDTH = 20
MIN_SPACED_LINE_LENGTH = 40

_SPACE_RUN = re.compile(r"\s{2,}")


def split_row(line: str) -> list[str] | None:
    """Return the cells of *line* if it looks like a table row, else ``None``.

    A row has at least two tab-separated cells, or at least three cells
    separated by 2+ spaces on a line longer than 40 characters.
    """
    line = line.strip()
    if not line:
        return None
    tab_cells = [c.strip() for c in line.split("\t") if c.strip()]
    if len(tab_cells) >= 2:
        return tab_cells
    space_cells = [c.strip() for c in _SPACE_RUN.split(line) if c.strip()]
    if len(space_cells) >= 3 and len(line) > MIN_SPACED_LINE_LENGTH:
        return space_cells
    return None


def format_table(rows: list[list[str]], column_count: int | None = None) -> list[str]:
    """Render *rows* as aligned ``" | "``-joined lines.

    Rows are padded to *column_count* (or the widest row).  Column width is
    the longest cell capped at 50 characters; longer cells are cut and end
    in ``...``.  A dash separator follows the first row when there is more
    than one row.
    """
    if not rows:
        return []
    column_count = max(column_count or 0, max(len(r) for r in rows))
    table = [r + [""] * (column_count - len(r)) for r in rows]

    widths = [
        min(max(len(row[i]) for row in table), MAX_COLUMN_WIDTH)
        for i in range(column_count)
    ]

    lines: list[str] = []
    for row_idx, row in enumerate(table):
        cells = []
        for cell, width in zip(row, widths):
            if len(cell) > width:
                cell = cell[: width - 3] + "..."
            cells.append(cell.ljust(width))
        lines.append(" | ".join(cells))

        if row_idx == 0 and len(table) > 1:
            lines.append("-|-".join("-" * min(w, MAX_SEPARATOR_WIDTH) for w in widths))
    return lines


def enhance_table_text(text: str) -> str:
    """Rewrite table-like line runs in *text* as formatted tables.

    A candidate row joins a table when its neighbour above or below is also
    a candidate, or when a table is already open.  Blank lines and ordinary
    lines close the open table.  All other lines are kept (trimmed).
    """
    lines = text.split("\n")
    candidates = [split_row(line) for line in lines]

    out: list[str] = []
    table: list[list[str]] = []

    def flush() -> None:
        if table:
            out.extend(format_table(table))
            table.clear()

    for i, line in enumerate(lines):
        stripped = line.strip()
        if not stripped:
            flush()
            out.append("")
            continue

        cells = candidates[i]
        prev_is_row = i > 0 and candidates[i - 1] is not None
        next_is_row = i + 1 < len(lines) and candidates[i + 1] is not None

        if cells is not None and (table or prev_is_row or next_is_row):
            table.append(cells)
        else:
            flush()
            out.append(stripped)

    flush()
    return "\n".join(out)
