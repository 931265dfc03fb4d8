from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Tuple, Union

from packaging.version import InvalidVersion, Version


LOGGER = logging.getLogger(__name__)

# Longest operators first so that tokenizing never splits "===" into "==" + "=".
OPERATORS: Tuple[str, ...] = ("===", "~=", "==", "!=", "<=", ">=", "<", ">")
WILDCARD_SUFFIX = ".*"

LocalSegment = Union[int, str]


def _pad(release: Tuple[int, ...], length: int) -> Tuple[int, ...]:
    if len(release) >= length:
        return release
    return release + (0,) * (length - len(release))


@dataclass(frozen=True, eq=False)
class VersionSpec:
    """A parsed release version, or an opaque fallback for unparseable text.

    Parsed values follow the PEP 440 grammar and total order. Opaque values
    (``parsed is None``) are equal only to opaque values with identical text
    and cannot be ordered against anything.
    """

    raw: str
    parsed: Optional[Version] = None

    @classmethod
    def parse(cls, text: str) -> VersionSpec:
        cleaned = text.strip()
        try:
            return cls(raw=cleaned, parsed=Version(cleaned))
        except InvalidVersion:
            LOGGER.debug("Treating %r as an opaque version", text)
            return cls(raw=cleaned)

    @property
    def is_opaque(self) -> bool:
        return self.parsed is None

    @property
    def release(self) -> Tuple[int, ...]:
        return self.parsed.release if self.parsed is not None else ()

    @property
    def pre(self) -> Optional[Tuple[str, int]]:
        return self.parsed.pre if self.parsed is not None else None

    @property
    def post(self) -> Optional[int]:
        return self.parsed.post if self.parsed is not None else None

    @property
    def dev(self) -> Optional[int]:
        return self.parsed.dev if self.parsed is not None else None

    @property
    def local(self) -> Tuple[LocalSegment, ...]:
        if self.parsed is None or self.parsed.local is None:
            return ()
        return tuple(
            int(part) if part.isdigit() else part
            for part in self.parsed.local.split(".")
        )

    @property
    def is_prerelease(self) -> bool:
        return self.parsed is not None and self.parsed.is_prerelease

    @property
    def wildcard_prefix(self) -> Optional[Version]:
        """The release prefix of a ``1.2.*`` style bound, if this is one."""
        if not self.is_opaque or not self.raw.endswith(WILDCARD_SUFFIX):
            return None
        try:
            return Version(self.raw[: -len(WILDCARD_SUFFIX)])
        except InvalidVersion:
            return None

    def satisfies(self, operator: str, bound: VersionSpec) -> bool:
        if operator == "===":
            return self.raw == bound.raw
        if operator not in OPERATORS:
            raise ValueError(f"Unknown operator {operator!r}")

        prefix = bound.wildcard_prefix
        if prefix is not None and operator in ("==", "!="):
            matched = self._matches_prefix(prefix)
            return matched if operator == "==" else not matched

        if self.parsed is None or bound.parsed is None:
            if operator == "==":
                return self == bound
            if operator == "!=":
                return self != bound
            return False

        if operator == "==":
            return _equals_public(self.parsed, bound.parsed)
        if operator == "!=":
            return not _equals_public(self.parsed, bound.parsed)
        if operator == "<":
            return self.parsed < bound.parsed
        if operator == "<=":
            return self.parsed <= bound.parsed
        if operator == ">":
            return self.parsed > bound.parsed
        if operator == ">=":
            return self.parsed >= bound.parsed
        return _compatible_with(self.parsed, bound.parsed)

    def _matches_prefix(self, prefix: Version) -> bool:
        if self.parsed is None:
            return False
        length = len(prefix.release)
        return _pad(self.release, length)[:length] == prefix.release

    def __str__(self) -> str:
        return str(self.parsed) if self.parsed is not None else self.raw

    def __repr__(self) -> str:
        return f"<VersionSpec: {self}>"

    def __hash__(self) -> int:
        if self.parsed is not None:
            return hash(self.parsed)
        return hash(("opaque", self.raw))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, VersionSpec):
            return NotImplemented
        if self.parsed is not None and other.parsed is not None:
            return self.parsed == other.parsed
        if self.parsed is None and other.parsed is None:
            return self.raw == other.raw
        return False

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, VersionSpec) or self.parsed is None or other.parsed is None:
            return NotImplemented
        return self.parsed < other.parsed

    def __le__(self, other: object) -> bool:
        if not isinstance(other, VersionSpec) or self.parsed is None or other.parsed is None:
            return NotImplemented
        return self.parsed <= other.parsed

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, VersionSpec) or self.parsed is None or other.parsed is None:
            return NotImplemented
        return self.parsed > other.parsed

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, VersionSpec) or self.parsed is None or other.parsed is None:
            return NotImplemented
        return self.parsed >= other.parsed


def _equals_public(candidate: Version, bound: Version) -> bool:
    if bound.local is None:
        return Version(candidate.public) == bound
    return candidate == bound


def _compatible_with(candidate: Version, bound: Version) -> bool:
    length = len(bound.release)
    if length < 2:
        return False
    prefix = bound.release[:-1]
    if _pad(candidate.release, length)[: len(prefix)] != prefix:
        return False
    return candidate >= bound
