from __future__ import annotations

import json

import pytest

from envfetter.direct_url import DirectUrlInfo, ProvenanceKind
from envfetter.errors import ProvenanceParseError


def test_editable_local_directory() -> None:
    info = DirectUrlInfo.parse(
        json.dumps({"url": "file:///home/user/project", "dir_info": {"editable": True}})
    )

    assert info.kind is ProvenanceKind.LOCAL_DIR
    assert info.editable
    assert str(info) == "file:///home/user/project"
    assert info.to_dict() == {"kind": "dir", "url": "file:///home/user/project", "editable": True}


def test_archive_with_hashes() -> None:
    info = DirectUrlInfo.parse(
        json.dumps(
            {
                "url": "https://example.com/pkg-1.0.tar.gz",
                "archive_info": {"hashes": {"sha256": "abc123"}},
            }
        )
    )

    assert info.kind is ProvenanceKind.ARCHIVE
    assert not info.editable
    assert info.archive_hash == "sha256=abc123"


def test_vcs_reference() -> None:
    info = DirectUrlInfo.parse(
        json.dumps(
            {
                "url": "https://github.com/org/repo.git",
                "vcs_info": {"vcs": "git", "commit_id": "deadbeef", "requested_revision": "main"},
            }
        )
    )

    assert info.kind is ProvenanceKind.VCS
    assert info.vcs == "git"
    assert info.commit_id == "deadbeef"
    assert info.requested_revision == "main"
    assert str(info) == "git+https://github.com/org/repo.git@deadbeef"


@pytest.mark.parametrize(
    "contents",
    [
        "{not json",
        "[]",
        json.dumps({"dir_info": {}}),
        json.dumps({"url": "file:///x"}),
        json.dumps({"url": "file:///x", "dir_info": {}, "archive_info": {}}),
        json.dumps({"url": "https://x/r.git", "vcs_info": {"commit_id": "abc"}}),
        json.dumps({"url": "file:///x", "dir_info": "editable"}),
    ],
)
def test_malformed_provenance_is_rejected(contents: str) -> None:
    with pytest.raises(ProvenanceParseError):
        DirectUrlInfo.parse(contents)


def test_unreadable_file_is_a_parse_error(tmp_path) -> None:
    with pytest.raises(ProvenanceParseError):
        DirectUrlInfo.from_file(tmp_path / "direct_url.json")
