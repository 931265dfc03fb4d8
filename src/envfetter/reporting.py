from __future__ import annotations

import csv
import json
import math
import shutil
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, TextIO, Tuple

from .models import ClassificationRecord, Environment, Outcome, ScanWarning
from .package import Package


GUTTER = 2
ELLIPSIS = "..."
ENDC = "\033[0m"
OUTCOME_COLORS = {
    Outcome.SATISFIED.value: "\033[92m",
    Outcome.MISMATCH.value: "\033[91m",
    Outcome.MISSING.value: "\033[91m",
    Outcome.UNREQUIRED.value: "\033[93m",
}


@dataclass(frozen=True)
class Column:
    header: str
    truncatable: bool = False
    colored: bool = False


VALIDATION_HEADERS = [
    Column("Executable", truncatable=True),
    Column("Package"),
    Column("Installed"),
    Column("Declared", truncatable=True),
    Column("Outcome", colored=True),
]
PACKAGE_HEADERS = [
    Column("Executable", truncatable=True),
    Column("Package"),
    Column("Version"),
    Column("Site", truncatable=True),
    Column("Provenance", truncatable=True),
]
EXE_HEADERS = [
    Column("Executable", truncatable=True),
    Column("Python"),
    Column("Packages"),
    Column("Site", truncatable=True),
]


def validation_rows(records: Iterable[ClassificationRecord]) -> List[List[str]]:
    rows = []
    for record in records:
        name = installed = declared = ""
        if record.spec is not None:
            name = record.spec.name
            declared = str(record.spec)
        if record.package is not None:
            name = record.package.name
            installed = str(record.package.version)
        explain = record.outcome.value
        if record.violated:
            explain += " (" + ",".join(str(item) for item in record.violated) + ")"
        rows.append([str(record.environment), name, installed, declared, explain])
    return rows


def package_rows(packages: Iterable[Tuple[Path, Package]]) -> List[List[str]]:
    return [
        [
            str(executable),
            package.name,
            str(package.version),
            str(package.site or ""),
            str(package.direct_url or ""),
        ]
        for executable, package in packages
    ]


def exe_rows(environments: Iterable[Environment]) -> List[List[str]]:
    return [
        [
            str(environment.executable),
            environment.python_version or "?",
            str(len(environment.packages)),
            ", ".join(str(path) for path in environment.site_dirs),
        ]
        for environment in environments
    ]


def column_widths(
    columns: Sequence[Column],
    rows: Sequence[Sequence[str]],
    terminal_width: Optional[int] = None,
) -> List[int]:
    """Width of each column's text, shrinking truncatable columns to fit the terminal."""
    widths = [len(column.header) for column in columns]
    for row in rows:
        for index, value in enumerate(row):
            widths[index] = max(widths[index], len(value))
    total = sum(widths) + GUTTER * len(widths)
    flexible = [index for index, column in enumerate(columns) if column.truncatable]
    if not terminal_width or total <= terminal_width or not flexible:
        return widths
    excess = total - terminal_width
    flexible_total = sum(widths[index] for index in flexible)
    for index in flexible:
        reduction = math.ceil(widths[index] / flexible_total * excess)
        widths[index] = max(len(ELLIPSIS), widths[index] - reduction)
    return widths


def _fit(value: str, width: int) -> str:
    if len(value) <= width:
        return value.ljust(width)
    if width > len(ELLIPSIS):
        return value[: width - len(ELLIPSIS)] + ELLIPSIS
    return value[:width]


def _paint(text: str, value: str) -> str:
    color = OUTCOME_COLORS.get(value.split(" ", 1)[0])
    if color is None:
        return text
    shown = text.rstrip()
    return color + shown + ENDC + text[len(shown):]


def render_table(
    columns: Sequence[Column],
    rows: Sequence[Sequence[str]],
    terminal_width: Optional[int] = None,
    color: bool = False,
) -> str:
    """Fixed-width text; with ``color``, outcome cells get ANSI colours."""
    if not rows:
        return ""
    widths = column_widths(columns, rows, terminal_width)
    gutter = " " * GUTTER
    lines = [gutter.join(_fit(column.header, widths[i]) for i, column in enumerate(columns)).rstrip()]
    for row in rows:
        cells = []
        for i, value in enumerate(row):
            text = _fit(value, widths[i])
            if color and columns[i].colored:
                text = _paint(text, value)
            cells.append(text)
        lines.append(gutter.join(cells).rstrip())
    return "\n".join(lines)


def render_delimited(
    columns: Sequence[Column],
    rows: Sequence[Sequence[str]],
    stream: TextIO,
    delimiter: str = ",",
) -> None:
    writer = csv.writer(stream, delimiter=delimiter, lineterminator="\n")
    writer.writerow([column.header for column in columns])
    writer.writerows(rows)


def write_rows(
    columns: Sequence[Column],
    rows: Sequence[Sequence[str]],
    stream: Optional[TextIO] = None,
    delimiter: Optional[str] = None,
) -> None:
    target = stream or sys.stdout
    if delimiter is not None:
        render_delimited(columns, rows, target, delimiter)
        return
    interactive = target.isatty()
    width = shutil.get_terminal_size().columns if interactive else None
    text = render_table(columns, rows, width, color=interactive)
    if text:
        target.write(text + "\n")


def record_to_dict(record: ClassificationRecord) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "environment": str(record.environment),
        "name": record.name,
        "outcome": record.outcome.value,
        "declared": str(record.spec) if record.spec is not None else None,
        "installed": None,
        "violated": [str(item) for item in record.violated],
    }
    if record.package is not None:
        data["installed"] = {
            "name": record.package.name,
            "version": str(record.package.version),
            "direct_url": record.package.direct_url.to_dict() if record.package.direct_url else None,
        }
    return data


def records_to_json(
    records: Iterable[ClassificationRecord],
    warnings: Sequence[ScanWarning] = (),
) -> str:
    payload = {
        "records": [record_to_dict(record) for record in records],
        "warnings": [
            {"kind": item.kind.value, "subject": item.subject, "message": item.message}
            for item in warnings
        ],
    }
    return json.dumps(payload, indent=2)


def format_warnings(warnings: Sequence[ScanWarning]) -> str:
    if not warnings:
        return ""
    lines = [f"{len(warnings)} item{'' if len(warnings) == 1 else 's'} skipped:"]
    lines.extend(f"  {item}" for item in warnings)
    return "\n".join(lines)
