"""Per-project state kept under ``<root>/.codemap/``.

- ``layout.json``: user-placed node positions, merged on every save.
- ``history.json``: applied patch history so ``cmap patch rollback`` works
  across invocations.
- ``last_analysis.json``: the most recent GraphAnalysisResult.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional

from .config import HISTORY_FILE, LAYOUT_FILE, REPORT_FILE, project_state_dir
from .models import GraphAnalysisResult, Patch

logger = logging.getLogger(__name__)


class ProjectState:
    """Read and write the JSON state files of one project."""

    def __init__(self, project_root: Path) -> None:
        self.project_root = Path(project_root)
        self.state_dir = project_state_dir(self.project_root)

    @property
    def layout_path(self) -> Path:
        return self.state_dir / LAYOUT_FILE

    @property
    def history_path(self) -> Path:
        return self.state_dir / HISTORY_FILE

    @property
    def report_path(self) -> Path:
        return self.state_dir / REPORT_FILE

    def _read(self, path: Path) -> Optional[Any]:
        if not path.exists():
            return None
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Ignoring unreadable %s: %s", path, exc)
            return None

    def _write(self, path: Path, payload: Any) -> None:
        self.state_dir.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")

    # ------------------------------------------------------------------
    # Layout
    # ------------------------------------------------------------------

    def load_positions(self) -> Dict[str, Dict[str, float]]:
        payload = self._read(self.layout_path) or {}
        positions = payload.get("userPositions", {})
        return positions if isinstance(positions, dict) else {}

    def save_positions(self, positions: Mapping[str, Mapping[str, float]]) -> Dict[str, Dict[str, float]]:
        """Merge *positions* into the saved ones and return the merged map."""
        merged = self.load_positions()
        for node_id, pos in positions.items():
            merged[node_id] = {"x": float(pos["x"]), "y": float(pos["y"])}
        self._write(self.layout_path, {"userPositions": merged})
        return merged

    # ------------------------------------------------------------------
    # Patch history
    # ------------------------------------------------------------------

    def load_history(self) -> List[Patch]:
        payload = self._read(self.history_path) or []
        history = []
        for entry in payload:
            try:
                history.append(Patch.from_dict(entry))
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning("Dropping malformed history entry %r: %s", entry, exc)
        return history

    def save_history(self, patches: Iterable[Patch]) -> None:
        self._write(self.history_path, [p.to_dict() for p in patches])

    def clear_history(self) -> None:
        if self.history_path.exists():
            self.history_path.unlink()

    # ------------------------------------------------------------------
    # Last analysis
    # ------------------------------------------------------------------

    def save_report(self, result: GraphAnalysisResult) -> None:
        self._write(self.report_path, result.to_dict())

    def load_report(self) -> Optional[Dict[str, Any]]:
        return self._read(self.report_path)
