"""
Text and JSON rendering helpers shared by commands.

Column specs follow the usual plugin convention:
  - an integer width: "20", or with alignment "<20" / ">6"
  - "[addr]": hex address, "[addrpad]": zero padded 64-bit hex address
"""
from __future__ import annotations

import json
import re
from dataclasses import dataclass
from datetime import date, datetime
from pathlib import Path
from typing import Any, Iterable, Sequence

ADDR_WIDTH = 18  # "0x" + 16 hex digits

_SPEC_RE = re.compile(r"^(?P<align>[<>^]?)(?P<width>\d*)$")


@dataclass(frozen=True)
class ColumnFormat:
    """Parsed column spec."""
    width: int
    align: str = "<"
    kind: str = "text"  # text, addr, addrpad


def parse_spec(spec: Any) -> ColumnFormat:
    """Parse a column spec such as ">6" or "[addrpad]"."""
    if isinstance(spec, int):
        return ColumnFormat(width=spec)

    spec = str(spec or "").strip()
    if spec == "[addr]":
        return ColumnFormat(width=ADDR_WIDTH, align="<", kind="addr")
    if spec == "[addrpad]":
        return ColumnFormat(width=ADDR_WIDTH, align="<", kind="addrpad")

    m = _SPEC_RE.match(spec)
    if not m:
        raise ValueError(f"Invalid column spec: {spec!r}")
    return ColumnFormat(width=int(m.group("width") or 0), align=m.group("align") or "<")


def format_value(value: Any, kind: str = "text") -> str:
    if value is None:
        return "-"
    if kind in ("addr", "addrpad") and isinstance(value, int) and not isinstance(value, bool):
        return f"{value:#018x}" if kind == "addrpad" else f"{value:#x}"
    if isinstance(value, bytes):
        return value.hex()
    if isinstance(value, datetime):
        return value.isoformat(sep=" ")
    return str(value)


def _pad(text: str, fmt: ColumnFormat) -> str:
    if not fmt.width:
        return text
    return f"{text:{fmt.align}{fmt.width}}"


def format_cell(value: Any, fmt: ColumnFormat) -> str:
    return _pad(format_value(value, fmt.kind), fmt)


class TextTable:
    """
    Fixed-width table writer.

    Widths come from the column specs, widened to fit the titles. Cells
    longer than their column are not truncated.
    """

    def __init__(self, columns: Sequence[tuple[str, Any]], separator: str = " "):
        self.titles = [title for title, _ in columns]
        self.formats = []
        for title, spec in columns:
            fmt = parse_spec(spec)
            self.formats.append(ColumnFormat(max(fmt.width, len(title)), fmt.align, fmt.kind))
        self.separator = separator

    def header(self) -> str:
        titles = [_pad(title, fmt) for title, fmt in zip(self.titles, self.formats)]
        rules = ["-" * fmt.width for fmt in self.formats]
        return (self.separator.join(titles).rstrip() + "\n" + self.separator.join(rules).rstrip() + "\n")

    def row(self, values: Sequence[Any]) -> str:
        if len(values) != len(self.formats):
            raise ValueError(f"Expected {len(self.formats)} values, got {len(values)}")
        cells = [format_cell(v, fmt) for v, fmt in zip(values, self.formats)]
        return self.separator.join(cells).rstrip() + "\n"


def fit_columns(titles: Sequence[str], rows: Iterable[Sequence[Any]], max_width: int = 60) -> list[tuple[str, str]]:
    """Build column specs sized to the data, for plugins with dynamic columns."""
    widths = [len(t) for t in titles]
    for row in rows:
        for i, value in enumerate(row):
            widths[i] = min(max(widths[i], len(format_value(value))), max_width)
    return [(title, str(width)) for title, width in zip(titles, widths)]


def json_default(value: Any) -> Any:
    """``json.dumps`` fallback for values plugins commonly return."""
    if isinstance(value, bytes):
        return value.hex()
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, (set, frozenset)):
        return sorted(value, key=str)
    return str(value)


def write_json(outfd, data: Any) -> None:
    json.dump(data, outfd, indent=2, default=json_default)
    outfd.write("\n")
