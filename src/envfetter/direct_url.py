"""Provenance of packages installed from somewhere other than an index.

Pip records this in a ``direct_url.json`` file inside the ``.dist-info``
directory (PEP 610). The document carries a ``url`` and exactly one of
``dir_info``, ``archive_info`` or ``vcs_info``.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

from .errors import ProvenanceParseError


DIRECT_URL_FILE = "direct_url.json"


class ProvenanceKind(str, Enum):
    LOCAL_DIR = "dir"
    ARCHIVE = "archive"
    VCS = "vcs"


_KIND_KEYS = {
    "dir_info": ProvenanceKind.LOCAL_DIR,
    "archive_info": ProvenanceKind.ARCHIVE,
    "vcs_info": ProvenanceKind.VCS,
}


@dataclass(frozen=True)
class DirectUrlInfo:
    kind: ProvenanceKind
    url: str
    editable: bool = False
    vcs: Optional[str] = None
    commit_id: Optional[str] = None
    requested_revision: Optional[str] = None
    archive_hash: Optional[str] = None

    @classmethod
    def parse(cls, contents: str) -> DirectUrlInfo:
        try:
            payload = json.loads(contents)
        except json.JSONDecodeError as exc:
            raise ProvenanceParseError(f"Malformed JSON: {exc}") from exc
        if not isinstance(payload, dict):
            raise ProvenanceParseError("Expected a JSON object")
        url = payload.get("url")
        if not isinstance(url, str) or not url.strip():
            raise ProvenanceParseError("Missing 'url'")

        present = [key for key in _KIND_KEYS if key in payload]
        if len(present) != 1:
            raise ProvenanceParseError(
                f"Expected exactly one of {', '.join(_KIND_KEYS)}, found {len(present)}"
            )
        key = present[0]
        info = payload[key]
        if not isinstance(info, dict):
            raise ProvenanceParseError(f"'{key}' must be an object")
        kind = _KIND_KEYS[key]

        if kind is ProvenanceKind.LOCAL_DIR:
            return cls(kind=kind, url=url, editable=bool(info.get("editable", False)))
        if kind is ProvenanceKind.ARCHIVE:
            return cls(kind=kind, url=url, archive_hash=_archive_hash(info))
        vcs = info.get("vcs")
        if not isinstance(vcs, str) or not vcs:
            raise ProvenanceParseError("'vcs_info' requires 'vcs'")
        return cls(
            kind=kind,
            url=url,
            vcs=vcs,
            commit_id=info.get("commit_id"),
            requested_revision=info.get("requested_revision"),
        )

    @classmethod
    def from_file(cls, path: Path) -> DirectUrlInfo:
        try:
            contents = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise ProvenanceParseError(f"Cannot read {path}: {exc}") from exc
        return cls.parse(contents)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"kind": self.kind.value, "url": self.url}
        if self.kind is ProvenanceKind.LOCAL_DIR:
            data["editable"] = self.editable
        elif self.kind is ProvenanceKind.ARCHIVE:
            if self.archive_hash:
                data["hash"] = self.archive_hash
        else:
            data["vcs"] = self.vcs
            if self.commit_id:
                data["commit_id"] = self.commit_id
            if self.requested_revision:
                data["requested_revision"] = self.requested_revision
        return data

    def __str__(self) -> str:
        if self.kind is ProvenanceKind.VCS:
            text = f"{self.vcs}+{self.url}"
            revision = self.commit_id or self.requested_revision
            return f"{text}@{revision}" if revision else text
        return self.url


def _archive_hash(info: Dict[str, Any]) -> Optional[str]:
    legacy = info.get("hash")
    if isinstance(legacy, str) and legacy:
        return legacy
    hashes = info.get("hashes")
    if isinstance(hashes, dict) and hashes:
        algorithm = sorted(hashes)[0]
        return f"{algorithm}={hashes[algorithm]}"
    return None
