from __future__ import annotations

import configparser
import logging
import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from platformdirs import user_config_path


LOGGER = logging.getLogger(__name__)

APP_NAME = "envfetter"
SEARCH_SECTION = "search"
SCAN_SECTION = "scan"
EXTRA_PATHS_KEY = "extra_paths"
EXCLUDE_PATHS_KEY = "exclude_paths"
WORKERS_KEY = "workers"
PROBE_KEY = "probe"
PROBE_TIMEOUT_KEY = "probe_timeout"
DEPTH_KEY = "depth"

DEFAULT_PROBE_TIMEOUT = 5.0
DEFAULT_SEARCH_DEPTH = 2
MAX_WORKERS = 8


@dataclass(frozen=True)
class ScanConfig:
    """Everything a scan needs to know about where and how to look.

    ``include_defaults`` adds PATH, environment variables and the well-known
    installation prefixes to ``extra_paths``.
    """

    extra_paths: Tuple[Path, ...] = ()
    exclude_paths: Tuple[Path, ...] = ()
    include_defaults: bool = True
    probe: bool = True
    probe_timeout: float = DEFAULT_PROBE_TIMEOUT
    search_depth: int = DEFAULT_SEARCH_DEPTH
    workers: Optional[int] = None

    def worker_count(self, tasks: int) -> int:
        limit = self.workers if self.workers and self.workers > 0 else MAX_WORKERS
        return max(1, min(limit, tasks))


def _config_file() -> Path:
    directory = Path(user_config_path(APP_NAME, ensure_exists=True))
    directory.mkdir(parents=True, exist_ok=True)
    return directory / "settings.ini"


def load_scan_config(base: Optional[ScanConfig] = None) -> ScanConfig:
    config = base or ScanConfig()
    parser = _read_config()
    if parser is None:
        return config
    extra = tuple(Path(item) for item in _split_paths(parser, SEARCH_SECTION, EXTRA_PATHS_KEY))
    exclude = tuple(Path(item) for item in _split_paths(parser, SEARCH_SECTION, EXCLUDE_PATHS_KEY))
    config = replace(
        config,
        extra_paths=config.extra_paths + extra,
        exclude_paths=config.exclude_paths + exclude,
    )
    if SCAN_SECTION not in parser:
        return config
    section = parser[SCAN_SECTION]
    try:
        if WORKERS_KEY in section:
            config = replace(config, workers=section.getint(WORKERS_KEY))
        if PROBE_KEY in section:
            config = replace(config, probe=section.getboolean(PROBE_KEY))
        if PROBE_TIMEOUT_KEY in section:
            config = replace(config, probe_timeout=section.getfloat(PROBE_TIMEOUT_KEY))
        if DEPTH_KEY in section:
            config = replace(config, search_depth=section.getint(DEPTH_KEY))
    except ValueError as exc:
        LOGGER.warning("Ignoring invalid [%s] settings: %s", SCAN_SECTION, exc)
    return config


def load_search_paths() -> List[str]:
    parser = _read_config()
    if parser is None:
        return []
    return _split_paths(parser, SEARCH_SECTION, EXTRA_PATHS_KEY)


def save_search_paths(paths: Iterable[str]) -> None:
    normalized = []
    for path in paths:
        if not path:
            continue
        stripped = str(path).strip()
        if not stripped:
            continue
        normalized.append(stripped)
    parser = _load_or_create()
    if normalized:
        parser[SEARCH_SECTION][EXTRA_PATHS_KEY] = os.pathsep.join(normalized)
    elif EXTRA_PATHS_KEY in parser[SEARCH_SECTION]:
        del parser[SEARCH_SECTION][EXTRA_PATHS_KEY]
    _write_config(parser)


def add_search_path(path: str) -> bool:
    current = load_search_paths()
    normalized = str(path).strip()
    if not normalized or normalized in current:
        return False
    current.append(normalized)
    save_search_paths(current)
    return True


def _split_paths(parser: configparser.ConfigParser, section: str, key: str) -> List[str]:
    if section not in parser:
        return []
    raw_value = parser[section].get(key, "")
    if not raw_value:
        return []
    return [item for item in (part.strip() for part in raw_value.split(os.pathsep)) if item]


def _load_or_create() -> configparser.ConfigParser:
    parser = _read_config()
    if parser is None:
        parser = configparser.ConfigParser()
    if SEARCH_SECTION not in parser:
        parser[SEARCH_SECTION] = {}
    return parser


def _read_config() -> Optional[configparser.ConfigParser]:
    file_path = _config_file()
    if not file_path.exists():
        return None
    parser = configparser.ConfigParser()
    try:
        parser.read(file_path, encoding="utf-8")
    except configparser.Error as exc:
        LOGGER.warning("Ignoring unreadable settings file %s: %s", file_path, exc)
        return None
    return parser


def _write_config(parser: configparser.ConfigParser) -> None:
    file_path = _config_file()
    with file_path.open("w", encoding="utf-8") as handle:
        parser.write(handle)
