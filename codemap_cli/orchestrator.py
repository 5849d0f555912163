"""Analysis session coordinating scanner, graph, analyzers and patch engine."""

from __future__ import annotations

import asyncio
import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, List, Mapping, Optional, Union

from .coherence import CoherenceAnalyzer, coherence_score
from .config import AnalysisSettings
from .config_manager import load_settings
from .graph import DependencyGraph
from .impact import ImpactAnalyzer
from .layout import apply_saved_positions, grid_layout
from .models import (
    ChangeDescriptor,
    GraphAnalysisResult,
    GraphMetadata,
    ImpactReport,
    Location,
    Patch,
    PatchApplyResult,
)
from .patch_engine import PatchEngine
from .scanner import SourceScanner
from .storage import ProjectState

logger = logging.getLogger(__name__)


class AnalysisOrchestrator:
    """One caller-owned session over a project root.

    Sessions share no mutable state; two orchestrators on the same root
    each hold their own graph and patch history.
    """

    def __init__(
        self,
        project_root: Path,
        settings: Optional[AnalysisSettings] = None,
        persist_history: bool = False,
    ) -> None:
        self.project_root = Path(project_root).resolve()
        self.settings = settings or AnalysisSettings()
        self.state = ProjectState(self.project_root)
        self.scanner = SourceScanner(self.project_root, self.settings)
        self.graph: Optional[DependencyGraph] = None
        self.result: Optional[GraphAnalysisResult] = None
        self.impact_analyzer: Optional[ImpactAnalyzer] = None
        self.persist_history = persist_history
        self.patch_engine = PatchEngine(
            self.project_root,
            drift_window=self.settings.drift_window,
            history_limit=self.settings.history_limit,
        )
        if persist_history:
            self.patch_engine.load_history(self.state.load_history())

    # ------------------------------------------------------------------
    # Analysis
    # ------------------------------------------------------------------

    def analyze(self, cancel_event: Optional[threading.Event] = None) -> GraphAnalysisResult:
        """Full rebuild: scan, resolve, check coherence, lay out."""
        nodes = self.scanner.scan(cancel_event=cancel_event)
        graph = DependencyGraph(self.settings).build(nodes)
        issues = CoherenceAnalyzer(graph).analyze()

        node_list = list(graph.nodes.values())
        grid_layout(node_list)
        restored = apply_saved_positions(node_list, self.state.load_positions())
        if restored:
            logger.debug("Restored %d saved node position(s)", restored)

        result = GraphAnalysisResult(
            nodes=node_list,
            edges=list(graph.edges),
            groups=graph.groups(),
            metadata=GraphMetadata(
                project_name=self.project_root.name,
                project_path=str(self.project_root),
                analyzed_at=datetime.now(timezone.utc).isoformat(),
                total_files=len(node_list) + len(self.scanner.errors),
                total_nodes=len(node_list),
                total_edges=len(graph.edges),
                coherence_score=coherence_score(issues),
                issues=issues,
            ),
        )
        self.graph = graph
        self.result = result
        self.impact_analyzer = ImpactAnalyzer(graph, self.project_root)
        logger.info(
            "Analyzed %s: %d nodes, %d edges, score %d",
            self.project_root, len(node_list), len(graph.edges), result.metadata.coherence_score,
        )
        return result

    async def analyze_async(self, cancel_event: Optional[threading.Event] = None) -> GraphAnalysisResult:
        """Same as analyze() but off the event loop thread."""
        return await asyncio.to_thread(self.analyze, cancel_event)

    def _require_graph(self) -> DependencyGraph:
        if self.graph is None:
            self.analyze()
        return self.graph

    # ------------------------------------------------------------------
    # Impact and patching
    # ------------------------------------------------------------------

    def impact(self, change: Union[ChangeDescriptor, Mapping[str, Any]]) -> ImpactReport:
        self._require_graph()
        return self.impact_analyzer.analyze_impact(change)

    def preview(self, patches: Iterable[Patch]) -> str:
        return self.patch_engine.preview(patches)

    def apply(self, patches: Iterable[Patch]) -> PatchApplyResult:
        result = self.patch_engine.apply_patches(patches)
        self._persist()
        return result

    def rollback(self, patch_ids: Optional[Iterable[str]] = None) -> PatchApplyResult:
        result = self.patch_engine.rollback(patch_ids)
        self._persist()
        return result

    def history(self) -> List[Patch]:
        return self.patch_engine.get_history()

    def clear_history(self) -> None:
        self.patch_engine.clear_history()
        if self.persist_history:
            self.state.clear_history()

    def _persist(self) -> None:
        if self.persist_history:
            self.state.save_history(self.patch_engine.get_history())

    # ------------------------------------------------------------------
    # Presentation helpers
    # ------------------------------------------------------------------

    def locate(self, node_id: str) -> Location:
        """Absolute file location for an "open file" action."""
        node = self._require_graph().get_node(node_id)
        return Location(str(self.project_root / node.path), node.line)

    def save_positions(self, positions: Mapping[str, Mapping[str, float]]) -> None:
        merged = self.state.save_positions(positions)
        if self.graph is not None:
            apply_saved_positions(self.graph.nodes.values(), merged)


def open_session(
    project_root: Path,
    persist_history: bool = False,
    overrides: Optional[Mapping[str, Any]] = None,
) -> AnalysisOrchestrator:
    """Session with settings from config.toml plus *overrides*.

    Raises:
        ConfigError: The config file or an override is invalid.
    """
    settings = load_settings(dict(overrides) if overrides else None)
    return AnalysisOrchestrator(project_root, settings=settings, persist_history=persist_history)
