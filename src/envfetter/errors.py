from __future__ import annotations


class EnvFetterError(Exception):
    """Base class for every error raised by envfetter."""


class ParseError(EnvFetterError):
    """Malformed input: a requirement line or a provenance file."""


class RequirementParseError(ParseError):
    def __init__(self, line: str, reason: str) -> None:
        super().__init__(f"Invalid requirement {line!r}: {reason}")
        self.line = line
        self.reason = reason


class ProvenanceParseError(ParseError):
    pass


class ManifestError(EnvFetterError):
    """A requirement source could not be read at all."""


class DiscoveryError(EnvFetterError):
    """A search root or a candidate interpreter could not be used."""


class AggregationError(EnvFetterError):
    """A package-installation directory could not be enumerated."""


class FatalError(EnvFetterError):
    """No search roots are usable; the scan cannot produce any result."""


ScanError = FatalError
