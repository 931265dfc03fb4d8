from __future__ import annotations

import sys
from pathlib import Path
from typing import Callable, Sequence

ROOT_DIR = Path(__file__).resolve().parents[1]
SRC_DIR = ROOT_DIR / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

import pytest

from envfetter import config
from envfetter.config import ScanConfig


MakeEnv = Callable[..., Path]


@pytest.fixture(autouse=True)
def _isolated_settings(tmp_path, monkeypatch) -> Path:
    # Never read or write the real user settings file.
    settings_path = tmp_path / "settings" / "settings.ini"
    settings_path.parent.mkdir()
    monkeypatch.setattr(config, "_config_file", lambda: settings_path)
    return settings_path


def _build_env(
    root: Path,
    distributions: Sequence[str] = (),
    python_version: str = "3.11",
    venv: bool = True,
) -> Path:
    bin_dir = root / "bin"
    bin_dir.mkdir(parents=True)
    executable = bin_dir / "python"
    executable.write_text("#!/bin/sh\nexit 1\n")
    executable.chmod(0o755)
    if venv:
        (root / "pyvenv.cfg").write_text("home = /usr/bin\n")
    site_dir = root / "lib" / f"python{python_version}" / "site-packages"
    site_dir.mkdir(parents=True)
    for distribution in distributions:
        (site_dir / distribution).mkdir()
    return executable


@pytest.fixture
def make_env() -> MakeEnv:
    """Build a fake environment: ``bin/python`` plus ``.dist-info`` directories."""
    return _build_env


@pytest.fixture
def offline_config() -> Callable[..., ScanConfig]:
    def factory(*paths: Path, **overrides) -> ScanConfig:
        options = dict(extra_paths=tuple(paths), include_defaults=False, probe=False)
        options.update(overrides)
        return ScanConfig(**options)

    return factory
