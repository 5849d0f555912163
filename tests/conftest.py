"""Pytest configuration and fixtures for CodeMap CLI tests."""

import shutil
import tempfile
from pathlib import Path
from typing import Callable, Dict, Generator

import pytest


@pytest.fixture(autouse=True)
def config_file(monkeypatch) -> Generator[Path, None, None]:
    """Point the global config at a throwaway file so no test reads ~/.codemap."""
    tmp = Path(tempfile.mkdtemp())
    path = tmp / "config.toml"
    monkeypatch.setattr("codemap_cli.config.CONFIG_FILE", path)
    yield path
    shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    tmp = Path(tempfile.mkdtemp())
    yield tmp
    shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture
def sample_project_path() -> Path:
    """Get path to sample test project (read-only)."""
    return Path(__file__).parent / "fixtures" / "sample_project"


@pytest.fixture
def sample_project(temp_dir: Path, sample_project_path: Path) -> Path:
    """Writable copy of the sample project."""
    target = temp_dir / "sample_project"
    shutil.copytree(sample_project_path, target)
    return target


@pytest.fixture
def make_project(temp_dir: Path) -> Callable[[Dict[str, str]], Path]:
    """Write a small project from {relative path: text} and return its root.

    Text is written as bytes so line endings are kept exactly.
    """
    def _make(files: Dict[str, str]) -> Path:
        root = temp_dir / "project"
        root.mkdir(parents=True, exist_ok=True)
        for rel, text in files.items():
            path = root / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(text.encode("utf-8"))
        return root
    return _make
