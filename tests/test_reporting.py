from __future__ import annotations

import io
import json
from pathlib import Path

from envfetter import reporting
from envfetter.dep_spec import DepSpec
from envfetter.direct_url import DirectUrlInfo
from envfetter.models import ClassificationRecord, Outcome, ScanWarning, WarningKind
from envfetter.package import Package
from envfetter.reporting import Column
from envfetter.version_spec import VersionSpec


EXE = Path("/home/user/.venvs/analysis/bin/python")


def _records():
    numpy = Package.from_name_and_version("numpy", "1.26.0")
    spec = DepSpec.parse("numpy>=2")
    six = Package.from_name_and_version("six", "1.16.0")
    return [
        ClassificationRecord(EXE, Outcome.MISMATCH, spec, numpy, spec.violations(numpy)),
        ClassificationRecord(EXE, Outcome.MISSING, spec=DepSpec.parse("requests")),
        ClassificationRecord(EXE, Outcome.UNREQUIRED, package=six),
    ]


def test_validation_rows() -> None:
    rows = reporting.validation_rows(_records())

    assert rows == [
        [str(EXE), "numpy", "1.26.0", "numpy>=2", "mismatch (>=2)"],
        [str(EXE), "requests", "", "requests", "missing"],
        [str(EXE), "six", "1.16.0", "", "unrequired"],
    ]


def test_table_columns_are_aligned() -> None:
    columns = [Column("Name"), Column("Version")]

    text = reporting.render_table(columns, [["numpy", "1.26.0"], ["six", "1.16.0"]])

    assert text.splitlines() == [
        "Name   Version",
        "numpy  1.26.0",
        "six    1.16.0",
    ]


def test_empty_table_renders_nothing() -> None:
    assert reporting.render_table([Column("Name")], []) == ""


def test_truncatable_columns_shrink_to_the_terminal() -> None:
    columns = [Column("Path", truncatable=True), Column("Version")]
    rows = [["/a/very/long/path/to/some/interpreter/bin/python", "3.12.1"]]

    text = reporting.render_table(columns, rows, terminal_width=30)

    lines = text.splitlines()
    assert all(len(line) <= 30 for line in lines)
    assert lines[1].split()[0].endswith(reporting.ELLIPSIS)
    assert lines[1].endswith("3.12.1")


def test_fixed_columns_are_never_truncated() -> None:
    widths = reporting.column_widths([Column("Name"), Column("Version")], [["numpy", "1.26.0"]], 5)

    assert widths == [5, 7]


def test_delimited_output_quotes_when_needed() -> None:
    stream = io.StringIO()

    reporting.write_rows(
        [Column("Package"), Column("Declared")],
        [["numpy", "numpy>=1.20,<2"]],
        stream=stream,
        delimiter=",",
    )

    assert stream.getvalue() == 'Package,Declared\nnumpy,"numpy>=1.20,<2"\n'


def test_package_rows_include_provenance() -> None:
    info = DirectUrlInfo.parse(json.dumps({"url": "file:///work/lib", "dir_info": {"editable": True}}))
    package = Package(name="lib", version=VersionSpec.parse("0.1"), direct_url=info, site=Path("/site"))

    assert reporting.package_rows([(EXE, package)]) == [
        [str(EXE), "lib", "0.1", "/site", "file:///work/lib"]
    ]


def test_records_to_json() -> None:
    warnings = [ScanWarning(WarningKind.PARSE, "/site/x.dist-info", "bad name")]

    payload = json.loads(reporting.records_to_json(_records(), warnings))

    assert [record["outcome"] for record in payload["records"]] == ["mismatch", "missing", "unrequired"]
    assert payload["records"][0]["installed"] == {"name": "numpy", "version": "1.26.0", "direct_url": None}
    assert payload["records"][0]["violated"] == [">=2"]
    assert payload["records"][1]["installed"] is None
    assert payload["records"][2]["declared"] is None
    assert payload["warnings"] == [{"kind": "parse", "subject": "/site/x.dist-info", "message": "bad name"}]


def test_format_warnings() -> None:
    warnings = [ScanWarning(WarningKind.DISCOVERY, "/opt/python", "probe timed out after 5.0s")]

    assert reporting.format_warnings(warnings) == (
        "1 item skipped:\n  discovery: /opt/python: probe timed out after 5.0s"
    )
    assert reporting.format_warnings([]) == ""


def test_outcome_cells_are_colored_on_request() -> None:
    rows = reporting.validation_rows(_records())

    plain = reporting.render_table(reporting.VALIDATION_HEADERS, rows)
    colored = reporting.render_table(reporting.VALIDATION_HEADERS, rows, color=True)

    assert "\033[" not in plain
    lines = colored.splitlines()
    assert "\033[" not in lines[0]
    assert lines[1].endswith(reporting.OUTCOME_COLORS["mismatch"] + "mismatch (>=2)" + reporting.ENDC)
    assert reporting.OUTCOME_COLORS["missing"] + "missing" + reporting.ENDC in lines[2]
    assert reporting.OUTCOME_COLORS["unrequired"] + "unrequired" + reporting.ENDC in lines[3]
    stripped = colored.replace(reporting.ENDC, "")
    for code in reporting.OUTCOME_COLORS.values():
        stripped = stripped.replace(code, "")
    assert stripped == plain
