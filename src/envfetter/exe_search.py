from __future__ import annotations

import json
import logging
import os
import re
import subprocess
import sys
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set, Tuple

from .config import ScanConfig
from .errors import DiscoveryError, FatalError
from .models import InterpreterProbe, ScanWarning, WarningKind


LOGGER = logging.getLogger(__name__)

if sys.platform == "win32":
    EXE_NAME_RE = re.compile(r"^python(\d+(\.\d+)?)?\.exe$", re.IGNORECASE)
    BIN_DIRS = ("", "Scripts")
else:
    EXE_NAME_RE = re.compile(r"^python(\d+(\.\d+)?)?$")
    BIN_DIRS = ("", "bin")

# Directories that never hold environments; descending into them only costs time.
SKIP_DIRS = {
    "__pycache__",
    "include",
    "lib",
    "Lib",
    "lib64",
    "libs",
    "node_modules",
    "pkgs",
    "share",
    "site-packages",
    ".git",
}

# sysconfig alone misses distro directories such as /usr/lib/python3/dist-packages.
PROBE_SCRIPT = """\
import json, site, sys, sysconfig
paths = sysconfig.get_paths()
dirs = [paths["purelib"], paths["platlib"]] + list(site.getsitepackages())
if sys.prefix == sys.base_prefix:
    dirs.append(site.getusersitepackages())
print(json.dumps({"version": "%d.%d.%d" % tuple(sys.version_info[:3]), "site": dirs}))
"""

Identity = Tuple[str, Optional[str]]


@dataclass(frozen=True)
class SearchRoot:
    path: Path
    depth: int = 0


@dataclass
class DiscoveryResult:
    executables: List[Path] = field(default_factory=list)
    probes: Dict[Path, InterpreterProbe] = field(default_factory=dict)
    warnings: List[ScanWarning] = field(default_factory=list)


def is_python_name(name: str) -> bool:
    return EXE_NAME_RE.match(name) is not None


def venv_prefix(executable: Path) -> Optional[Path]:
    try:
        prefix = executable.parent.resolve().parent
    except (OSError, RuntimeError):
        return None
    if (prefix / "pyvenv.cfg").is_file():
        return prefix
    return None


def interpreter_identity(executable: Path) -> Identity:
    """Two paths with equal identity run the same interpreter on the same environment.

    Symlinks and repeated PATH entries collapse onto the real executable; an
    interpreter inside a virtual environment stays distinct from the base
    interpreter it links to.
    """
    real = os.path.realpath(executable)
    prefix = venv_prefix(executable)
    return real, (str(prefix) if prefix is not None else None)


def default_search_roots(config: ScanConfig) -> List[SearchRoot]:
    roots: List[SearchRoot] = []
    if config.include_defaults:
        for path_entry in os.environ.get("PATH", "").split(os.pathsep):
            if path_entry:
                roots.append(SearchRoot(Path(path_entry)))
        for variable in ("VIRTUAL_ENV", "CONDA_PREFIX"):
            value = os.environ.get(variable)
            if value:
                roots.append(SearchRoot(Path(value)))
        roots.extend(SearchRoot(path) for path in _conda_environment_paths())
        roots.extend(_well_known_roots())
    roots.extend(SearchRoot(path, config.search_depth) for path in config.extra_paths)
    return roots


def _conda_environment_paths() -> List[Path]:
    registry = Path.home() / ".conda" / "environments.txt"
    try:
        lines = registry.read_text(encoding="utf-8").splitlines()
    except (OSError, UnicodeDecodeError):
        return []
    return [Path(line.strip()) for line in lines if line.strip()]


def _well_known_roots() -> Iterable[SearchRoot]:
    home = Path.home()
    conda_prefixes = ["miniconda3", "anaconda3", "miniforge3", "mambaforge"]
    if sys.platform == "win32":
        local_app_data = Path(os.environ.get("LOCALAPPDATA", home / "AppData" / "Local"))
        yield SearchRoot(local_app_data / "Programs" / "Python", 1)
        for prefix in [Path("C:/ProgramData/Anaconda3"), Path("C:/ProgramData/miniconda3")]:
            yield SearchRoot(prefix)
            yield SearchRoot(prefix / "envs", 1)
        for name in conda_prefixes:
            yield SearchRoot(home / name)
            yield SearchRoot(home / name / "envs", 1)
        yield SearchRoot(home / ".pyenv" / "pyenv-win" / "versions", 1)
        yield SearchRoot(home / ".virtualenvs", 1)
        return
    for directory in ["/usr/bin", "/usr/local/bin", "/opt/homebrew/bin", "/opt/local/bin"]:
        yield SearchRoot(Path(directory))
    yield SearchRoot(Path("/Library/Frameworks/Python.framework/Versions"), 1)
    yield SearchRoot(Path("/opt/conda"))
    yield SearchRoot(Path("/opt/conda/envs"), 1)
    for name in conda_prefixes:
        yield SearchRoot(home / name)
        yield SearchRoot(home / name / "envs", 1)
    yield SearchRoot(home / ".pyenv" / "versions", 1)
    yield SearchRoot(home / ".virtualenvs", 1)
    yield SearchRoot(home / ".local" / "share" / "virtualenvs", 1)
    yield SearchRoot(home / ".local" / "pipx" / "venvs", 1)
    yield SearchRoot(home / ".local" / "bin")


def probe_interpreter(executable: Path, timeout: float) -> InterpreterProbe:
    try:
        result = subprocess.run(
            [str(executable), "-E", "-s", "-c", PROBE_SCRIPT],
            capture_output=True,
            text=True,
            check=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired as exc:
        raise DiscoveryError(f"probe timed out after {timeout}s") from exc
    except (subprocess.SubprocessError, OSError) as exc:
        raise DiscoveryError(f"probe failed: {exc}") from exc
    try:
        payload = json.loads(result.stdout.strip().splitlines()[-1])
        version = payload["version"]
        site_dirs = tuple(dict.fromkeys(Path(item) for item in payload["site"]))
    except (IndexError, KeyError, TypeError, json.JSONDecodeError) as exc:
        raise DiscoveryError(f"unexpected probe output {result.stdout!r}") from exc
    return InterpreterProbe(executable=executable, version=version, site_dirs=site_dirs)


class ExeSearch:
    """Finds Python interpreters under a set of search roots.

    Each root is listed itself and through its ``bin`` (``Scripts`` on
    Windows) directory; a root with ``depth > 0`` also has its subdirectories
    explored, down to that many levels. Canonical directories already visited
    are never entered again, so symlink cycles terminate.
    """

    def __init__(self, config: ScanConfig, roots: Optional[List[SearchRoot]] = None) -> None:
        self.config = config
        self.roots = roots if roots is not None else default_search_roots(config)
        self._excluded = {_canonical(path) for path in config.exclude_paths}
        self._reset()

    def _reset(self) -> None:
        self._visited: Set[Path] = set()
        self._listed: Set[Path] = set()
        self._identities: Dict[Identity, Path] = {}
        self._warnings: List[ScanWarning] = []

    def discover(self) -> DiscoveryResult:
        self._reset()
        usable = [root for root in self.roots if root.path.is_dir()]
        if not usable:
            raise FatalError("No usable search roots: none of the configured directories exist")
        for root in usable:
            self._walk(root.path, root.depth)

        candidates = sorted(self._identities.values(), key=str)
        LOGGER.info("Found %s candidate interpreter%s", len(candidates), "" if len(candidates) == 1 else "s")
        result = DiscoveryResult(warnings=list(self._warnings))
        if not self.config.probe:
            result.executables = candidates
            return result

        with ThreadPoolExecutor(max_workers=self.config.worker_count(len(candidates))) as executor:
            outcomes = list(executor.map(self._probe, candidates))
        for executable, outcome in zip(candidates, outcomes):
            if isinstance(outcome, InterpreterProbe):
                result.executables.append(executable)
                result.probes[executable] = outcome
            else:
                LOGGER.warning("Skipping interpreter %s: %s", executable, outcome)
                result.warnings.append(ScanWarning(WarningKind.DISCOVERY, str(executable), str(outcome)))
        return result

    def _probe(self, executable: Path) -> object:
        try:
            return probe_interpreter(executable, self.config.probe_timeout)
        except DiscoveryError as exc:
            return exc

    def _walk(self, directory: Path, depth: int) -> None:
        canonical = _canonical(directory)
        if canonical in self._visited or self._is_excluded(canonical):
            return
        self._visited.add(canonical)
        for bin_name in BIN_DIRS:
            bin_dir = directory / bin_name if bin_name else directory
            if not self._collect(bin_dir) and not bin_name:
                return
        if depth <= 0:
            return
        for child in self._subdirectories(directory):
            self._walk(child, depth - 1)

    def _collect(self, bin_dir: Path) -> bool:
        """List one directory for interpreters; False only if it could not be read."""
        canonical = _canonical(bin_dir)
        if canonical in self._listed or not bin_dir.is_dir():
            return True
        self._listed.add(canonical)
        try:
            with os.scandir(bin_dir) as iterator:
                names = sorted(entry.name for entry in iterator)
        except OSError as exc:
            self._warn(bin_dir, exc)
            return False
        for name in names:
            if not is_python_name(name):
                continue
            candidate = bin_dir / name
            if not candidate.is_file() or not os.access(candidate, os.X_OK):
                continue
            identity = interpreter_identity(candidate)
            if identity in self._identities:
                LOGGER.debug("%s duplicates %s", candidate, self._identities[identity])
                continue
            self._identities[identity] = candidate
        return True

    def _subdirectories(self, directory: Path) -> List[Path]:
        try:
            with os.scandir(directory) as iterator:
                entries = sorted(iterator, key=lambda entry: entry.name)
        except OSError as exc:
            self._warn(directory, exc)
            return []
        children = []
        for entry in entries:
            if entry.name in SKIP_DIRS or entry.name in BIN_DIRS:
                continue
            try:
                if entry.is_dir():
                    children.append(Path(entry.path))
            except OSError:
                continue
        return children

    def _is_excluded(self, canonical: Path) -> bool:
        return any(canonical == excluded or excluded in canonical.parents for excluded in self._excluded)

    def _warn(self, path: Path, exc: Exception) -> None:
        LOGGER.warning("Cannot read %s: %s", path, exc)
        self._warnings.append(ScanWarning(WarningKind.DISCOVERY, str(path), str(exc)))


def _canonical(path: Path) -> Path:
    try:
        return path.resolve()
    except (OSError, RuntimeError):
        return path.absolute()


def discover(config: Optional[ScanConfig] = None) -> DiscoveryResult:
    return ExeSearch(config or ScanConfig()).discover()
