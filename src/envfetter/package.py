from __future__ import annotations

import logging
from dataclasses import dataclass, field
from functools import total_ordering
from pathlib import Path
from typing import Any, Optional, Tuple

from packaging.utils import canonicalize_name

from .direct_url import DIRECT_URL_FILE, DirectUrlInfo
from .errors import ProvenanceParseError
from .version_spec import VersionSpec


LOGGER = logging.getLogger(__name__)

DIST_INFO_SUFFIX = ".dist-info"


def _split_dist_info_name(dir_name: str) -> Optional[Tuple[str, str]]:
    if not dir_name.endswith(DIST_INFO_SUFFIX):
        return None
    stem = dir_name[: -len(DIST_INFO_SUFFIX)]
    parts = stem.split("-")
    if len(parts) < 2:
        return None
    name = "-".join(parts[:-1])
    version = parts[-1]
    if not name or not version:
        return None
    return name, version


@total_ordering
@dataclass(frozen=True)
class Package:
    """One installed distribution. Identity is ``(name, version)``."""

    name: str
    version: VersionSpec
    direct_url: Optional[DirectUrlInfo] = field(default=None, compare=False)
    site: Optional[Path] = field(default=None, compare=False, repr=False)

    @classmethod
    def from_name_and_version(
        cls,
        name: str,
        version: str,
        direct_url: Optional[DirectUrlInfo] = None,
    ) -> Package:
        return cls(name=name, version=VersionSpec.parse(version), direct_url=direct_url)

    @classmethod
    def from_distribution_dir_name(cls, dir_name: str) -> Optional[Package]:
        parts = _split_dist_info_name(dir_name)
        if parts is None:
            return None
        return cls.from_name_and_version(*parts)

    @classmethod
    def from_path(cls, path: Path) -> Optional[Package]:
        parts = _split_dist_info_name(path.name)
        if parts is None or not path.is_dir():
            return None
        direct_url = None
        provenance = path / DIRECT_URL_FILE
        if provenance.is_file():
            try:
                direct_url = DirectUrlInfo.from_file(provenance)
            except ProvenanceParseError as exc:
                LOGGER.warning("Ignoring provenance for %s: %s", path, exc)
        name, version = parts
        return cls(
            name=name,
            version=VersionSpec.parse(version),
            direct_url=direct_url,
            site=path.parent,
        )

    @property
    def normalized_name(self) -> str:
        return canonicalize_name(self.name)

    def sort_key(self) -> Tuple[Any, ...]:
        if self.version.parsed is not None:
            version_key: Tuple[Any, ...] = (0, self.version.parsed)
        else:
            version_key = (1, self.version.raw)
        return (self.name.lower(), version_key, self.name)

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Package):
            return NotImplemented
        return self.sort_key() < other.sort_key()

    def __str__(self) -> str:
        return f"{self.name}-{self.version}"
