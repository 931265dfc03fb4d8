from __future__ import annotations

import logging
import os
import re
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from fnmatch import fnmatchcase
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, TextIO, Tuple

from .config import ScanConfig
from .dep_manifest import DepManifest
from .dep_spec import DepSpec
from .direct_url import DIRECT_URL_FILE
from .errors import AggregationError, DiscoveryError
from .exe_search import ExeSearch, interpreter_identity, probe_interpreter, venv_prefix
from .models import (
    ClassificationRecord,
    Environment,
    InterpreterProbe,
    Outcome,
    ScanWarning,
    WarningKind,
)
from .package import DIST_INFO_SUFFIX, Package
from . import reporting


LOGGER = logging.getLogger(__name__)

_VERSIONED_NAME_RE = re.compile(r"^python(\d+\.\d+)")


class ScanState(str, Enum):
    IDLE = "idle"
    DISCOVERING = "discovering"
    ENUMERATING = "enumerating"
    AGGREGATED = "aggregated"
    VALIDATED = "validated"


@dataclass
class EnumerationResult:
    executable: Path
    packages: Dict[str, Package] = field(default_factory=dict)
    site_dirs: Tuple[Path, ...] = ()
    python_version: Optional[str] = None
    warnings: List[ScanWarning] = field(default_factory=list)


def environment_prefix(executable: Path) -> Path:
    prefix = venv_prefix(executable)
    if prefix is not None:
        return prefix
    directory = Path(os.path.realpath(executable)).parent
    if directory.name in ("bin", "Scripts"):
        return directory.parent
    return directory


def infer_site_dirs(executable: Path) -> Tuple[Path, ...]:
    """Guess the package directories of an interpreter without running it."""
    prefix = environment_prefix(executable)
    match = _VERSIONED_NAME_RE.match(executable.name)
    version_glob = f"python{match.group(1)}" if match else "python*"
    patterns = [
        f"lib/{version_glob}/site-packages",
        f"lib64/{version_glob}/site-packages",
        f"lib/{version_glob}/dist-packages",
        "lib/python3/dist-packages",
        f"local/lib/{version_glob}/dist-packages",
        "Lib/site-packages",
    ]
    found: List[Path] = []
    for pattern in patterns:
        found.extend(path for path in sorted(prefix.glob(pattern)) if path.is_dir())
    return tuple(dict.fromkeys(found))


def classify(
    environment: Path,
    spec: Optional[DepSpec],
    package: Optional[Package],
) -> ClassificationRecord:
    if spec is None:
        return ClassificationRecord(environment, Outcome.UNREQUIRED, package=package)
    if package is None:
        return ClassificationRecord(environment, Outcome.MISSING, spec=spec)
    violated = spec.violations(package)
    if violated:
        return ClassificationRecord(environment, Outcome.MISMATCH, spec, package, violated)
    return ClassificationRecord(environment, Outcome.SATISFIED, spec, package)


class ScanFS:
    """Discovers environments, enumerates their packages and validates them.

    All state belongs to the instance; every scan is a fresh snapshot.
    """

    def __init__(self, config: Optional[ScanConfig] = None) -> None:
        self.config = config or ScanConfig()
        self.state = ScanState.IDLE
        self.environments: Dict[Path, Environment] = {}
        self.warnings: List[ScanWarning] = []
        self._probes: Dict[Path, InterpreterProbe] = {}

    @classmethod
    def from_defaults(cls, config: Optional[ScanConfig] = None) -> ScanFS:
        scan = cls(config)
        scan.state = ScanState.DISCOVERING
        discovery = ExeSearch(scan.config).discover()
        scan.warnings.extend(discovery.warnings)
        scan._probes.update(discovery.probes)
        scan.aggregate(discovery.executables)
        return scan

    @classmethod
    def from_exes(
        cls,
        executables: Iterable[Path],
        config: Optional[ScanConfig] = None,
    ) -> ScanFS:
        scan = cls(config)
        scan.aggregate(executables)
        return scan

    def aggregate(self, executables: Iterable[Path]) -> None:
        self.state = ScanState.ENUMERATING
        unique: Dict[Tuple[str, Optional[str]], Path] = {}
        for executable in executables:
            unique.setdefault(interpreter_identity(executable), executable)
        targets = sorted(unique.values(), key=str)
        total = len(targets)
        if total:
            LOGGER.info("Scanning %s environment%s", total, "" if total == 1 else "s")

        with ThreadPoolExecutor(max_workers=self.config.worker_count(total)) as executor:
            results = list(executor.map(self.enumerate_packages, targets))

        for result in results:
            self.warnings.extend(result.warnings)
            self.environments[result.executable] = Environment(
                executable=result.executable,
                packages=result.packages,
                site_dirs=result.site_dirs,
                python_version=result.python_version,
            )
        self.state = ScanState.AGGREGATED

    def enumerate_packages(self, executable: Path) -> EnumerationResult:
        result = EnumerationResult(executable=executable)
        probe = self._probes.get(executable)
        if probe is None and self.config.probe:
            try:
                probe = probe_interpreter(executable, self.config.probe_timeout)
            except DiscoveryError as exc:
                LOGGER.warning("Probe of %s failed, inferring site directories: %s", executable, exc)
                result.warnings.append(ScanWarning(WarningKind.DISCOVERY, str(executable), str(exc)))
        if probe is not None:
            result.python_version = probe.version
            result.site_dirs = probe.site_dirs
        else:
            result.site_dirs = infer_site_dirs(executable)

        for site_dir in result.site_dirs:
            self._enumerate_site(site_dir, result)
        LOGGER.debug("%s: %s packages", executable, len(result.packages))
        return result

    def _enumerate_site(self, site_dir: Path, result: EnumerationResult) -> None:
        try:
            names = _list_site(site_dir)
        except AggregationError as exc:
            LOGGER.warning("%s", exc)
            result.warnings.append(ScanWarning(WarningKind.AGGREGATION, str(site_dir), str(exc)))
            return

        for name in names:
            if not name.endswith(DIST_INFO_SUFFIX):
                continue
            path = site_dir / name
            package = Package.from_path(path)
            if package is None:
                LOGGER.warning("Skipping unparseable distribution %s", path)
                result.warnings.append(
                    ScanWarning(WarningKind.PARSE, str(path), "not a <name>-<version>.dist-info directory")
                )
                continue
            if package.direct_url is None and (path / DIRECT_URL_FILE).is_file():
                result.warnings.append(
                    ScanWarning(WarningKind.PARSE, str(path / DIRECT_URL_FILE), "unusable provenance file")
                )
            if package.version.is_opaque:
                LOGGER.debug("%s has a non-standard version %r", path, package.version.raw)
            key = package.normalized_name
            kept = result.packages.get(key)
            if kept is not None:
                message = f"shadowed by {kept} in {kept.site}"
                LOGGER.warning("Skipping %s: %s", path, message)
                result.warnings.append(ScanWarning(WarningKind.AGGREGATION, str(path), message))
                continue
            result.packages[key] = package

    def validate(self, manifest: DepManifest, superset: bool = False) -> List[ClassificationRecord]:
        records: List[ClassificationRecord] = []
        for executable, environment in self.environments.items():
            names = sorted(set(environment.packages) | set(manifest.names()))
            for name in names:
                record = classify(executable, manifest.lookup(name), environment.packages.get(name))
                if superset and record.outcome is Outcome.UNREQUIRED:
                    continue
                records.append(record)
        self.state = ScanState.VALIDATED
        return records

    def search(self, pattern: str, case_insensitive: bool = True) -> List[Tuple[Path, Package]]:
        needle = pattern.lower() if case_insensitive else pattern
        matches: List[Tuple[Path, Package]] = []
        for executable, environment in self.environments.items():
            for package in environment.sorted_packages():
                name = package.name.lower() if case_insensitive else package.name
                if fnmatchcase(name, needle):
                    matches.append((executable, package))
        return matches

    def packages(self) -> List[Tuple[Path, Package]]:
        return [
            (executable, package)
            for executable, environment in self.environments.items()
            for package in environment.sorted_packages()
        ]

    def report(
        self,
        records: Sequence[ClassificationRecord],
        stream: Optional[TextIO] = None,
        delimiter: Optional[str] = None,
    ) -> None:
        reporting.write_rows(
            reporting.VALIDATION_HEADERS,
            reporting.validation_rows(records),
            stream=stream,
            delimiter=delimiter,
        )


def _list_site(site_dir: Path) -> List[str]:
    try:
        with os.scandir(site_dir) as iterator:
            return sorted(entry.name for entry in iterator)
    except FileNotFoundError:
        LOGGER.debug("Site directory %s does not exist", site_dir)
        return []
    except OSError as exc:
        raise AggregationError(f"Cannot read site directory {site_dir}: {exc}") from exc
