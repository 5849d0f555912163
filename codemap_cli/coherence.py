"""Structural health checks over a DependencyGraph."""

from __future__ import annotations

import logging
from typing import Dict, Iterable, Iterator, List, Optional, Set, Tuple

from .graph import DependencyGraph
from .models import SEVERITY_PENALTIES, CoherenceIssue, ExportKind, IssueKind, NodeKind, Severity

logger = logging.getLogger(__name__)


def coherence_score(issues: Iterable[CoherenceIssue]) -> int:
    """100 minus a fixed penalty per issue, clamped to [0, 100]."""
    score = 100 - sum(SEVERITY_PENALTIES[issue.severity] for issue in issues)
    return max(0, min(100, score))


class CoherenceAnalyzer:
    """Finds cycles, unused exports, orphans and highly coupled nodes."""

    def __init__(self, graph: DependencyGraph, coupling_threshold: Optional[int] = None) -> None:
        self.graph = graph
        if coupling_threshold is None:
            coupling_threshold = graph.settings.coupling_threshold
        self.coupling_threshold = coupling_threshold

    def analyze(self) -> List[CoherenceIssue]:
        issues: List[CoherenceIssue] = []
        issues.extend(self._cycle_issues())
        issues.extend(self._unused_export_issues())
        issues.extend(self._orphan_issues())
        issues.extend(self._coupling_issues())
        logger.debug("Coherence analysis found %d issue(s)", len(issues))
        return issues

    def score(self, issues: Optional[List[CoherenceIssue]] = None) -> int:
        return coherence_score(self.analyze() if issues is None else issues)

    # ------------------------------------------------------------------
    # Cycles
    # ------------------------------------------------------------------

    def find_cycles(self) -> List[List[str]]:
        """Every distinct cycle met by a DFS, each closed (first id repeated last)."""
        graph = self.graph
        visited: Set[str] = set()
        cycles: List[List[str]] = []
        seen: Set[Tuple[str, ...]] = set()

        for root in graph.nodes:
            if root in visited:
                continue
            path: List[str] = [root]
            on_stack: Set[str] = {root}
            visited.add(root)
            stack: List[Iterator[str]] = [iter(self._targets(root))]
            while stack:
                target = next(stack[-1], None)
                if target is None:
                    stack.pop()
                    on_stack.discard(path.pop())
                    continue
                if target in on_stack:
                    cycle = path[path.index(target):]
                    key = self._canonical(cycle)
                    if key not in seen:
                        seen.add(key)
                        cycles.append(cycle + [target])
                elif target not in visited:
                    visited.add(target)
                    on_stack.add(target)
                    path.append(target)
                    stack.append(iter(self._targets(target)))
        return cycles

    def _targets(self, node_id: str) -> List[str]:
        return [edge.target for edge in self.graph.outgoing_edges(node_id)]

    @staticmethod
    def _canonical(cycle: List[str]) -> Tuple[str, ...]:
        pivot = cycle.index(min(cycle))
        return tuple(cycle[pivot:] + cycle[:pivot])

    def _cycle_issues(self) -> List[CoherenceIssue]:
        issues = []
        for cycle in self.find_cycles():
            names = " → ".join(self.graph.nodes[node_id].name for node_id in cycle)
            issues.append(CoherenceIssue(
                issue_id=f"circular-{'-'.join(cycle)}",
                kind=IssueKind.CIRCULAR_DEPENDENCY,
                severity=Severity.HIGH,
                node_ids=cycle,
                message=f"Circular dependency: {names}",
                suggestion="Extract shared logic to a separate module",
            ))
        return issues

    # ------------------------------------------------------------------
    # Other checks
    # ------------------------------------------------------------------

    def _unused_export_issues(self) -> List[CoherenceIssue]:
        imported: Set[str] = {imp.name for node in self.graph.nodes.values() for imp in node.imports}
        issues = []
        for node in self.graph.nodes.values():
            reported: Dict[str, None] = {}
            for export in node.exports:
                if export.kind == ExportKind.DEFAULT or export.name in imported or export.name in reported:
                    continue
                reported[export.name] = None
                issues.append(CoherenceIssue(
                    issue_id=f"unused-export-{node.node_id}-{export.name}",
                    kind=IssueKind.UNUSED_EXPORT,
                    severity=Severity.LOW,
                    node_ids=[node.node_id],
                    message=f"Unused export: {export.name} in {node.name}",
                    suggestion="Consider removing if not needed",
                ))
        return issues

    def _orphan_issues(self) -> List[CoherenceIssue]:
        issues = []
        for node in self.graph.nodes.values():
            if node.kind == NodeKind.API or self.graph.degree(node.node_id) > 0:
                continue
            issues.append(CoherenceIssue(
                issue_id=f"orphan-{node.node_id}",
                kind=IssueKind.ORPHANED_FILE,
                severity=Severity.MEDIUM,
                node_ids=[node.node_id],
                message=f"Orphaned file: {node.name} has no connections",
                suggestion="This file might be unused or missing imports",
            ))
        return issues

    def _coupling_issues(self) -> List[CoherenceIssue]:
        issues = []
        for node in self.graph.nodes.values():
            degree = self.graph.degree(node.node_id)
            if degree <= self.coupling_threshold:
                continue
            issues.append(CoherenceIssue(
                issue_id=f"god-object-{node.node_id}",
                kind=IssueKind.GOD_OBJECT,
                severity=Severity.MEDIUM,
                node_ids=[node.node_id],
                message=f"High coupling: {node.name} has {degree} connections",
                suggestion="Consider splitting into smaller modules",
            ))
        return issues
