from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from .dep_spec import Constraint, DepSpec
from .package import Package


class Outcome(str, Enum):
    SATISFIED = "satisfied"
    MISMATCH = "mismatch"
    MISSING = "missing"
    UNREQUIRED = "unrequired"


class WarningKind(str, Enum):
    PARSE = "parse"
    DISCOVERY = "discovery"
    AGGREGATION = "aggregation"


@dataclass(frozen=True)
class ScanWarning:
    kind: WarningKind
    subject: str
    message: str

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.subject}: {self.message}"


@dataclass(frozen=True)
class InterpreterProbe:
    executable: Path
    version: Optional[str]
    site_dirs: Tuple[Path, ...] = ()


@dataclass(frozen=True)
class Environment:
    executable: Path
    packages: Dict[str, Package] = field(default_factory=dict)
    site_dirs: Tuple[Path, ...] = ()
    python_version: Optional[str] = None

    def sorted_packages(self) -> List[Package]:
        return [self.packages[key] for key in sorted(self.packages)]


@dataclass(frozen=True)
class ClassificationRecord:
    environment: Path
    outcome: Outcome
    spec: Optional[DepSpec] = None
    package: Optional[Package] = None
    violated: Tuple[Constraint, ...] = ()

    def __post_init__(self) -> None:
        if self.spec is None and self.package is None:
            raise ValueError("A classification needs a spec, a package, or both")

    @property
    def name(self) -> str:
        source = self.spec if self.spec is not None else self.package
        return source.normalized_name

    @property
    def is_failure(self) -> bool:
        return self.outcome in (Outcome.MISMATCH, Outcome.MISSING)
