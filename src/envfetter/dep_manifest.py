from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

import tomli

from .dep_spec import DepSpec, normalize_name
from .errors import ManifestError, RequirementParseError


LOGGER = logging.getLogger(__name__)

# "name @ url" and "name[extra] @ url" lines are already PEP 508 requirements.
_NAMED_URL_RE = re.compile(r"^[A-Za-z0-9._-]+\s*(\[[^\]]*\])?\s*@")
# A "#" starts a comment only at the start of a line or after whitespace, so
# "#egg=" fragments in URLs survive.
COMMENT_RE = re.compile(r"(^|\s+)#.*$")


class SourceFormat(str, Enum):
    REQUIREMENTS = "requirements"
    PYPROJECT = "pyproject"


@dataclass(frozen=True)
class RequirementSource:
    text: str
    format: SourceFormat = SourceFormat.REQUIREMENTS
    origin: str = "<text>"

    @classmethod
    def from_file(cls, path: Path) -> RequirementSource:
        source_format = (
            SourceFormat.PYPROJECT if path.suffix == ".toml" else SourceFormat.REQUIREMENTS
        )
        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise ManifestError(f"Cannot read requirement source {path}: {exc}") from exc
        return cls(text=text, format=source_format, origin=str(path))


@dataclass(frozen=True)
class ManifestLineError:
    origin: str
    line_number: int
    text: str
    message: str

    def __str__(self) -> str:
        return f"{self.origin}:{self.line_number}: {self.message}"


class DepManifest:
    """Declared requirements keyed by normalized name.

    A later declaration of the same normalized name replaces an earlier one,
    both inside a single source and when merging manifests.
    """

    def __init__(
        self,
        specs: Optional[Mapping[str, DepSpec]] = None,
        errors: Sequence[ManifestLineError] = (),
    ) -> None:
        self._specs: Dict[str, DepSpec] = dict(specs or {})
        self.errors: Tuple[ManifestLineError, ...] = tuple(errors)

    @classmethod
    def from_sources(
        cls,
        sources: Sequence[RequirementSource],
        extras: Sequence[str] = (),
    ) -> DepManifest:
        specs: Dict[str, DepSpec] = {}
        errors: List[ManifestLineError] = []
        for source in sources:
            if source.format is SourceFormat.PYPROJECT:
                lines = _pyproject_lines(source, extras, errors)
            else:
                lines = _requirement_lines(source, errors)
            for line_number, line in lines:
                try:
                    spec = DepSpec.parse(line, origin=source.origin)
                except RequirementParseError as exc:
                    LOGGER.warning("%s:%s: %s", source.origin, line_number, exc)
                    errors.append(
                        ManifestLineError(source.origin, line_number, line, exc.reason)
                    )
                    continue
                key = spec.normalized_name
                if key in specs:
                    LOGGER.debug("%s overrides earlier declaration of %s", source.origin, key)
                specs[key] = spec
        return cls(specs, errors)

    @classmethod
    def from_files(cls, paths: Sequence[Path], extras: Sequence[str] = ()) -> DepManifest:
        return cls.from_sources([RequirementSource.from_file(path) for path in paths], extras)

    def merge(self, other: DepManifest) -> DepManifest:
        specs = dict(self._specs)
        specs.update(other._specs)
        return DepManifest(specs, self.errors + other.errors)

    def lookup(self, name: str) -> Optional[DepSpec]:
        return self._specs.get(normalize_name(name))

    def names(self) -> List[str]:
        return sorted(self._specs)

    def __iter__(self) -> Iterator[DepSpec]:
        return (self._specs[key] for key in self.names())

    def __len__(self) -> int:
        return len(self._specs)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and normalize_name(name) in self._specs

    def __repr__(self) -> str:
        return f"<DepManifest: {len(self)} specs, {len(self.errors)} errors>"


def _requirement_lines(
    source: RequirementSource,
    errors: List[ManifestLineError],
) -> Iterator[Tuple[int, str]]:
    pending = ""
    start = 0
    for line_number, raw_line in enumerate(source.text.splitlines(), start=1):
        if not pending:
            start = line_number
        line = raw_line.rstrip()
        if line.endswith("\\"):
            pending += line[:-1] + " "
            continue
        line = _strip_comment(pending + line).strip()
        pending = ""
        if not line:
            continue
        if line.startswith("-e ") or line.startswith("--editable"):
            errors.append(
                ManifestLineError(source.origin, start, line, "editable requirements are not supported")
            )
            continue
        if line.startswith("-"):
            LOGGER.debug("%s:%s: skipping option line %s", source.origin, start, line)
            continue
        if "://" in line and _NAMED_URL_RE.match(line) is None:
            egg_line = _egg_requirement(line)
            if egg_line is None:
                errors.append(
                    ManifestLineError(source.origin, start, line, "URL requirement without #egg= name")
                )
                continue
            line = egg_line
        yield start, line
    if pending.strip():
        yield start, _strip_comment(pending).strip()


def _strip_comment(line: str) -> str:
    return COMMENT_RE.sub("", line)


def _egg_requirement(line: str) -> Optional[str]:
    if "#egg=" not in line:
        return None
    egg = line.split("#egg=", 1)[1].split("&", 1)[0].strip()
    if not egg:
        return None
    return f"{egg} @ {line}"


def _pyproject_lines(
    source: RequirementSource,
    extras: Sequence[str],
    errors: List[ManifestLineError],
) -> List[Tuple[int, str]]:
    try:
        document = tomli.loads(source.text)
    except tomli.TOMLDecodeError as exc:
        LOGGER.warning("Cannot decode %s: %s", source.origin, exc)
        errors.append(ManifestLineError(source.origin, 0, "", f"invalid TOML: {exc}"))
        return []
    project = document.get("project", {})
    if not isinstance(project, dict):
        errors.append(ManifestLineError(source.origin, 0, "", "[project] is not a table"))
        return []
    lines: List[Tuple[int, str]] = []
    dependencies = project.get("dependencies", [])
    lines.extend(_string_items(source, dependencies, "project.dependencies", errors))
    optional = project.get("optional-dependencies", {})
    for extra in extras:
        if not isinstance(optional, dict) or extra not in optional:
            errors.append(
                ManifestLineError(source.origin, 0, extra, f"unknown optional dependency group {extra!r}")
            )
            continue
        lines.extend(_string_items(source, optional[extra], f"optional-dependencies.{extra}", errors))
    return lines


def _string_items(
    source: RequirementSource,
    items: object,
    key: str,
    errors: List[ManifestLineError],
) -> List[Tuple[int, str]]:
    if not isinstance(items, list):
        errors.append(ManifestLineError(source.origin, 0, key, f"{key} is not an array"))
        return []
    lines: List[Tuple[int, str]] = []
    for index, item in enumerate(items, start=1):
        if not isinstance(item, str):
            errors.append(ManifestLineError(source.origin, index, repr(item), f"{key} entry is not a string"))
            continue
        lines.append((index, item))
    return lines
