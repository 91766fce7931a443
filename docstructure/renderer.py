"""Render a StructuredDocument for display and export.

Three views mirror what the user can switch between: ``summary`` (analysis
and tables), ``markdown`` (full text), and ``json`` (raw structure).  No file
I/O is performed here — the caller (``cli.py``) writes the returned strings.
"""

import re
from typing import Literal, Sequence

from docstructure.models import ExtractedTable, StructuredDocument


View = Literal["summary", "markdown", "json"]

DOWNLOAD_SUFFIX = "_ai_ready.json"

_LAST_EXTENSION = re.compile(r"\.[^/.]+$")


# ---------------------------------------------------------------------------
# Public entry points
# ---------------------------------------------------------------------------


def render_view(document: StructuredDocument, view: View) -> str:
    """Dispatch to the renderer for ``view``."""
    if view == "summary":
        return render_summary(document)
    if view == "markdown":
        return render_markdown(document)
    if view == "json":
        return render_json(document)
    raise ValueError(f"Unknown view: {view!r}")


def render_summary(document: StructuredDocument) -> str:
    """Render title, provenance, summary, key points, and every table."""
    meta = document.metadata
    analysis = document.document_analysis
    tables = document.structured_content.tables

    key_points = _render_bullets(analysis.key_points) or "_No key points._"
    if tables:
        rendered_tables = "\n\n".join(
            _render_table(table, index) for index, table in enumerate(tables, start=1)
        )
    else:
        rendered_tables = "No tables found."

    return (
        f"# {analysis.title}\n\n"
        f"**File:** {meta.filename}\n"
        f"**Language:** {meta.language}\n"
        f"**Processed:** {meta.processed_at.isoformat()}\n\n"
        "---\n\n"
        f"## Summary\n\n{analysis.summary}\n\n"
        f"## Key Points\n\n{key_points}\n\n"
        f"## Tables ({len(tables)})\n\n{rendered_tables}\n"
    )


def render_markdown(document: StructuredDocument) -> str:
    return document.structured_content.markdown


def render_json(document: StructuredDocument) -> str:
    """Pretty-printed JSON with wire (camelCase) keys, as offered for download."""
    return document.to_json(indent=2)


def download_filename(filename: str) -> str:
    """``report.pdf`` → ``report_ai_ready.json``; only the last extension is dropped."""
    return f"{_LAST_EXTENSION.sub('', filename)}{DOWNLOAD_SUFFIX}"


# ---------------------------------------------------------------------------
# Sub-renderers
# ---------------------------------------------------------------------------


def _render_bullets(items: Sequence[str]) -> str:
    """Render a list of strings as markdown bullet points."""
    return "\n".join(f"- {item}" for item in items)


def _render_table(table: ExtractedTable, index: int) -> str:
    """Render one table as a markdown table with optional heading and caption.

    Short rows are padded with empty cells and long rows keep their extra
    cells under a ``Col N`` header; blank headers are labelled the same way.
    The document itself is left untouched.
    """
    width = max([len(table.headers), *(len(row) for row in table.rows)])
    headers = list(table.headers) + [""] * (width - len(table.headers))
    headers = [header or f"Col {i}" for i, header in enumerate(headers, start=1)]

    lines = [
        _render_row(headers),
        "| " + " | ".join("---" for _ in range(width)) + " |",
    ]
    for row in table.rows:
        lines.append(_render_row(list(row) + [""] * (width - len(row))))

    heading = f"### Table {index}" + (f": {table.title}" if table.title else "")
    parts = [heading]
    if table.description:
        parts.append(f"_{table.description}_")
    parts.append("\n".join(lines))
    return "\n\n".join(parts)


def _render_row(cells: Sequence[str]) -> str:
    return "| " + " | ".join(_escape_cell(cell) for cell in cells) + " |"


def _escape_cell(cell: str) -> str:
    return cell.replace("|", "\\|").replace("\n", " ")
