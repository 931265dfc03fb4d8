from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional, Sequence

from .config import ScanConfig, add_search_path, load_scan_config
from .dep_manifest import DepManifest
from .errors import FatalError, ManifestError
from .models import Outcome
from .reporting import (
    EXE_HEADERS,
    PACKAGE_HEADERS,
    Column,
    exe_rows,
    format_warnings,
    package_rows,
    records_to_json,
    write_rows,
)
from .scan_fs import ScanFS


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="envfetter",
        description="Audit the packages installed in every Python environment on this machine.",
    )
    parser.add_argument(
        "--exe",
        dest="executables",
        action="append",
        type=Path,
        help="Interpreter to scan instead of discovering them. Can be provided multiple times.",
    )
    parser.add_argument(
        "--search-path",
        dest="search_paths",
        action="append",
        type=Path,
        help="Additional directory to search for interpreters. Can be provided multiple times.",
    )
    parser.add_argument(
        "--no-defaults",
        action="store_true",
        help="Do not search PATH and the well-known installation prefixes.",
    )
    parser.add_argument(
        "--no-probe",
        action="store_true",
        help="Never run discovered interpreters; infer their site directories instead.",
    )
    parser.add_argument(
        "--add-search-path",
        metavar="DIR",
        help="Remember DIR as an extra search directory for future runs and exit.",
    )
    parser.add_argument(
        "--output",
        type=Path,
        help="Write a delimited text file instead of printing a table.",
    )
    parser.add_argument(
        "--delimiter",
        default=",",
        help="Field delimiter used with --output.",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Emit results as JSON instead of a table.",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        help="Set the logging level (DEBUG, INFO, WARNING, ERROR).",
    )

    subparsers = parser.add_subparsers(dest="command")
    subparsers.add_parser("exes", help="List discovered Python interpreters.")
    subparsers.add_parser("scan", help="List the packages installed in every environment.")
    search = subparsers.add_parser("search", help="Find installed packages by name pattern.")
    search.add_argument("pattern", help="Glob pattern matched against package names.")
    search.add_argument(
        "--case-sensitive",
        action="store_true",
        help="Match the pattern case-sensitively.",
    )
    validate = subparsers.add_parser(
        "validate",
        help="Compare installed packages against declared requirements.",
    )
    validate.add_argument(
        "--bound",
        action="append",
        type=Path,
        required=True,
        help="requirements.txt or pyproject.toml; later files override earlier ones.",
    )
    validate.add_argument(
        "--extra",
        dest="extras",
        action="append",
        default=[],
        help="pyproject.toml optional-dependency group to include.",
    )
    validate.add_argument(
        "--superset",
        action="store_true",
        help="Allow installed packages that are not declared.",
    )
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.log_level)

    if args.add_search_path:
        if add_search_path(args.add_search_path):
            print(f"Added search path: {args.add_search_path}")
        else:
            print(f"Search path already configured: {args.add_search_path}")
        return 0
    if args.command is None:
        parser.error("A command is required: exes, scan, search or validate.")

    manifest = None
    if args.command == "validate":
        for bound in args.bound:
            if not bound.exists():
                parser.error(f"Requirements file not found: {bound}")
        try:
            manifest = DepManifest.from_files(args.bound, extras=args.extras)
        except ManifestError as exc:
            parser.error(str(exc))
        for error in manifest.errors:
            logging.warning("Skipped requirement %s", error)

    config = load_scan_config(
        ScanConfig(
            extra_paths=tuple(args.search_paths or ()),
            include_defaults=not args.no_defaults,
            probe=not args.no_probe,
        )
    )
    try:
        scan = _build_scan(args.executables, config)
    except FatalError as exc:
        parser.error(str(exc))

    if manifest is not None:
        records = scan.validate(manifest, superset=args.superset)
        if args.json:
            print(records_to_json(records, scan.warnings))
        elif args.output:
            with args.output.open("w", encoding="utf-8", newline="") as handle:
                scan.report(records, stream=handle, delimiter=args.delimiter)
            _print_warnings(scan)
        else:
            if records:
                scan.report(records)
            else:
                print("No results.")
            _print_warnings(scan)
        failed = any(
            record.is_failure or record.outcome is Outcome.UNREQUIRED for record in records
        )
        return 1 if failed else 0

    if args.command == "exes":
        rows = exe_rows(scan.environments.values())
        headers = EXE_HEADERS
    elif args.command == "scan":
        rows = package_rows(scan.packages())
        headers = PACKAGE_HEADERS
    else:
        rows = package_rows(scan.search(args.pattern, case_insensitive=not args.case_sensitive))
        headers = PACKAGE_HEADERS

    if args.json:
        print(json.dumps([dict(zip((c.header for c in headers), row)) for row in rows], indent=2))
    else:
        _emit(args, headers, rows)
        _print_warnings(scan)
    return 0


def _configure_logging(level: str) -> None:
    numeric_level = getattr(logging, level.upper(), logging.WARNING)
    logging.basicConfig(level=numeric_level, format="%(levelname)s: %(message)s")


def _build_scan(executables: Optional[Sequence[Path]], config: ScanConfig) -> ScanFS:
    if not executables:
        return ScanFS.from_defaults(config)
    existing: List[Path] = []
    for candidate in executables:
        if not candidate.exists():
            logging.warning("Python interpreter not found: %s", candidate)
            continue
        existing.append(candidate)
    return ScanFS.from_exes(existing, config)


def _emit(args: argparse.Namespace, headers: Sequence[Column], rows: List[List[str]]) -> None:
    if args.output:
        with args.output.open("w", encoding="utf-8", newline="") as handle:
            write_rows(headers, rows, stream=handle, delimiter=args.delimiter)
        logging.info("Wrote %s rows to %s", len(rows), args.output)
        return
    if not rows:
        print("No results.")
        return
    write_rows(headers, rows)


def _print_warnings(scan: ScanFS) -> None:
    text = format_warnings(scan.warnings)
    if text:
        print(text, file=sys.stderr)


if __name__ == "__main__":
    sys.exit(main())
