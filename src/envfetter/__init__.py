from __future__ import annotations

from .cli import main as main
from .config import ScanConfig, load_scan_config
from .dep_manifest import DepManifest, ManifestLineError, RequirementSource, SourceFormat
from .dep_spec import Constraint, DepSpec, normalize_name
from .direct_url import DirectUrlInfo, ProvenanceKind
from .errors import (
    AggregationError,
    DiscoveryError,
    EnvFetterError,
    FatalError,
    ManifestError,
    ParseError,
    ProvenanceParseError,
    RequirementParseError,
    ScanError,
)
from .exe_search import DiscoveryResult, ExeSearch, SearchRoot, discover
from .models import ClassificationRecord, Environment, Outcome, ScanWarning
from .package import Package
from .scan_fs import ScanFS, ScanState, classify
from .version_spec import VersionSpec

__all__ = [
    "AggregationError",
    "ClassificationRecord",
    "Constraint",
    "DepManifest",
    "DepSpec",
    "DirectUrlInfo",
    "DiscoveryError",
    "DiscoveryResult",
    "EnvFetterError",
    "Environment",
    "ExeSearch",
    "FatalError",
    "ManifestError",
    "ManifestLineError",
    "Outcome",
    "Package",
    "ParseError",
    "ProvenanceKind",
    "ProvenanceParseError",
    "RequirementParseError",
    "RequirementSource",
    "ScanConfig",
    "ScanError",
    "ScanFS",
    "ScanState",
    "ScanWarning",
    "SearchRoot",
    "SourceFormat",
    "VersionSpec",
    "classify",
    "discover",
    "load_scan_config",
    "main",
    "normalize_name",
]
