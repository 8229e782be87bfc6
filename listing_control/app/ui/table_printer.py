from __future__ import annotations

from datetime import datetime
from typing import Any, Mapping, Sequence

EMPTY_VALUE = "-"


def normalize_value(value: Any) -> str:
    if value is None:
        return EMPTY_VALUE
    if isinstance(value, str):
        clean = value.strip()
        return clean or EMPTY_VALUE
    if isinstance(value, bool):
        return "yes" if value else "no"
    if isinstance(value, datetime):
        return value.strftime("%Y-%m-%d %H:%M:%S")
    return str(getattr(value, "value", value))


def _row_dict(row: Any) -> Mapping[str, Any]:
    if isinstance(row, Mapping):
        return row
    if hasattr(row, "model_dump"):
        return row.model_dump()
    return vars(row)


def print_table(title: str, rows: Sequence[Any], columns: Sequence[tuple[str, str]], *, footer: str | None = None) -> None:
    print(f"\n{title}")
    if not rows:
        print("(no results)")
        if footer:
            print(footer)
        return

    data = [_row_dict(row) for row in rows]
    widths = []
    for key, header in columns:
        max_cell = max(len(normalize_value(row.get(key))) for row in data)
        widths.append(max(len(header), max_cell))

    header_line = " | ".join(header.ljust(widths[idx]) for idx, (_, header) in enumerate(columns))
    separator = "-+-".join("-" * width for width in widths)
    print(header_line)
    print(separator)

    for row in data:
        line = " | ".join(normalize_value(row.get(key)).ljust(widths[idx]) for idx, (key, _) in enumerate(columns))
        print(line)
    if footer:
        print(footer)
