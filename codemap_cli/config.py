"""Configuration paths and analysis defaults for CodeMap."""

from __future__ import annotations

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Tuple

BASE_DIR = Path(os.environ.get("CODEMAP_HOME", str(Path.home() / ".codemap"))).expanduser()
CONFIG_FILE = BASE_DIR / "config.toml"

# Per-project state lives next to the sources, like .git
PROJECT_STATE_DIR = ".codemap"
LAYOUT_FILE = "layout.json"
HISTORY_FILE = "history.json"
REPORT_FILE = "last_analysis.json"

INCLUDE_EXTENSIONS: Tuple[str, ...] = (".ts", ".tsx", ".js", ".jsx")
IGNORE_DIRS: Tuple[str, ...] = (
    "node_modules", ".next", "dist", "build", ".git",
    "coverage", "__tests__", "__mocks__", PROJECT_STATE_DIR,
)

# Suffixes tried, in order, when resolving an import specifier to a file node.
RESOLVE_SUFFIXES: Tuple[str, ...] = (
    "", ".ts", ".tsx", ".js", ".jsx",
    "/index.ts", "/index.tsx", "/index.js", "/index.jsx",
)

DEFAULT_ALIAS_PREFIX = "@/"
DEFAULT_ALIAS_ROOT = "src/"
DEFAULT_COUPLING_THRESHOLD = 15
DEFAULT_DRIFT_WINDOW = 5
DEFAULT_HISTORY_LIMIT = 500


@dataclass
class AnalysisSettings:
    """Tunable knobs for one analysis session."""

    include_extensions: Tuple[str, ...] = INCLUDE_EXTENSIONS
    ignore_dirs: Tuple[str, ...] = IGNORE_DIRS
    alias_prefix: str = DEFAULT_ALIAS_PREFIX
    alias_root: str = DEFAULT_ALIAS_ROOT
    coupling_threshold: int = DEFAULT_COUPLING_THRESHOLD
    drift_window: int = DEFAULT_DRIFT_WINDOW
    history_limit: int = DEFAULT_HISTORY_LIMIT

    @classmethod
    def keys(cls) -> Tuple[str, ...]:
        return tuple(f.name for f in fields(cls))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "include_extensions": list(self.include_extensions),
            "ignore_dirs": list(self.ignore_dirs),
            "alias_prefix": self.alias_prefix,
            "alias_root": self.alias_root,
            "coupling_threshold": self.coupling_threshold,
            "drift_window": self.drift_window,
            "history_limit": self.history_limit,
        }


def ensure_base_dirs() -> None:
    """Create base directory for global configuration if needed."""
    BASE_DIR.mkdir(parents=True, exist_ok=True)


def project_state_dir(project_root: Path) -> Path:
    return project_root / PROJECT_STATE_DIR
