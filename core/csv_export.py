"""
CSV export helpers.

Output is Excel-friendly: UTF-8 BOM prefix, CRLF line endings, and fields
quoted only when they contain a comma, quote, CR or LF.
"""

from __future__ import annotations

from typing import Any, Callable, Iterable, List, Mapping, Sequence, Tuple, Union

import pandas as pd
from fastapi.responses import Response

BOM = "﻿"

Accessor = Union[str, Callable[[Mapping[str, Any]], Any]]
Column = Tuple[str, Accessor]  # (header, key or callable)


def escape_csv(value: str) -> str:
    if any(ch in value for ch in (",", '"', "\n", "\r")):
        return '"' + value.replace('"', '""') + '"'
    return value


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and pd.isna(value):
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def generate_csv(columns: Sequence[Column], rows: Iterable[Mapping[str, Any]]) -> str:
    """
    Build a CSV document.

    Parameters
    ----------
    columns : sequence of (header, accessor)
        Accessor is a dict key or a callable receiving the row.
    rows : iterable of mappings
    """
    lines: List[str] = [",".join(escape_csv(header) for header, _ in columns)]
    for row in rows:
        cells = []
        for _, accessor in columns:
            value = accessor(row) if callable(accessor) else row.get(accessor)
            cells.append(escape_csv(_cell(value)))
        lines.append(",".join(cells))
    return BOM + "\r\n".join(lines)


def dataframe_to_csv(df: pd.DataFrame, headers: Mapping[str, str] | None = None) -> str:
    """Export a DataFrame, optionally renaming columns to display headers."""
    headers = headers or {}
    columns = [(headers.get(col, str(col)), col) for col in df.columns]
    records = df.astype(object).where(pd.notna(df), None).to_dict(orient="records")
    return generate_csv(columns, records)


def csv_response(content: str, filename: str) -> Response:
    if not filename.endswith(".csv"):
        filename = f"{filename}.csv"
    return Response(
        content=content.encode("utf-8"),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
