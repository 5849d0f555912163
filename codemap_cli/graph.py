"""Dependency graph over scanned CodeNodes.

Nodes live in a dict keyed by id and edges in a flat list; adjacency is kept
as outgoing/incoming lists of edge ids so nothing holds a direct reference
to another node.
"""

from __future__ import annotations

import logging
import posixpath
from collections import defaultdict
from typing import Dict, Iterable, List, Optional

from .config import RESOLVE_SUFFIXES, AnalysisSettings
from .errors import NodeNotFoundError
from .models import CodeNode, Edge, EdgeKind, ImportKind, NodeGroup
from .scanner import path_to_id

logger = logging.getLogger(__name__)

GROUP_COLORS = ["#3b82f6", "#10b981", "#f59e0b", "#ef4444", "#8b5cf6", "#ec4899", "#06b6d4"]


class DependencyGraph:
    """Resolved import graph for one analysis run."""

    def __init__(self, settings: Optional[AnalysisSettings] = None) -> None:
        self.settings = settings or AnalysisSettings()
        self.nodes: Dict[str, CodeNode] = {}
        self.edges: List[Edge] = []
        self._edge_index: Dict[str, Edge] = {}
        self._outgoing: Dict[str, List[str]] = defaultdict(list)
        self._incoming: Dict[str, List[str]] = defaultdict(list)

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    def clear(self) -> None:
        self.nodes.clear()
        self.edges.clear()
        self._edge_index.clear()
        self._outgoing.clear()
        self._incoming.clear()

    def add_node(self, node: CodeNode) -> None:
        if node.node_id in self.nodes:
            logger.warning(
                "Duplicate node id %s (%s and %s); keeping the first",
                node.node_id, self.nodes[node.node_id].path, node.path,
            )
            return
        self.nodes[node.node_id] = node

    def add_edge(self, source: str, target: str, kind: EdgeKind, label: str = "") -> Edge:
        if source not in self.nodes:
            raise NodeNotFoundError(source)
        if target not in self.nodes:
            raise NodeNotFoundError(target)
        base = f"{source}->{target}:{kind.value}:{label}"
        edge_id = base
        suffix = 1
        while edge_id in self._edge_index:
            suffix += 1
            edge_id = f"{base}#{suffix}"
        edge = Edge(edge_id=edge_id, source=source, target=target, kind=kind, label=label)
        self.edges.append(edge)
        self._edge_index[edge_id] = edge
        self._outgoing[source].append(edge_id)
        self._incoming[target].append(edge_id)
        return edge

    def build(self, nodes: Iterable[CodeNode]) -> "DependencyGraph":
        """Rebuild the whole graph from scratch for *nodes*."""
        self.clear()
        for node in nodes:
            self.add_node(node)
        for node in self.nodes.values():
            for imp in node.imports:
                target = self.resolve_import(imp.source, node.path)
                if target is None:
                    continue
                kind = EdgeKind.USES_TYPE if imp.kind == ImportKind.TYPE else EdgeKind.IMPORTS
                self.add_edge(node.node_id, target, kind, imp.name)
        logger.debug("Built graph: %d nodes, %d edges", len(self.nodes), len(self.edges))
        return self

    # ------------------------------------------------------------------
    # Import resolution
    # ------------------------------------------------------------------

    def resolve_import(self, specifier: str, containing_path: str) -> Optional[str]:
        """Map an import specifier to a node id, or None for packages and misses."""
        alias = self.settings.alias_prefix
        if specifier.startswith("./") or specifier.startswith("../"):
            base = posixpath.normpath(posixpath.join(posixpath.dirname(containing_path), specifier))
        elif alias and specifier.startswith(alias):
            base = posixpath.normpath(posixpath.join(self.settings.alias_root, specifier[len(alias):]))
        else:
            return None
        if base.startswith("../"):
            return None
        for suffix in RESOLVE_SUFFIXES:
            candidate = path_to_id(base + suffix)
            if candidate in self.nodes:
                return candidate
        return None

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_node(self, node_id: str) -> CodeNode:
        try:
            return self.nodes[node_id]
        except KeyError:
            raise NodeNotFoundError(node_id) from None

    def find_node(self, node_id: str) -> Optional[CodeNode]:
        return self.nodes.get(node_id)

    def outgoing_edges(self, node_id: str) -> List[Edge]:
        return [self._edge_index[e] for e in self._outgoing.get(node_id, [])]

    def incoming_edges(self, node_id: str) -> List[Edge]:
        return [self._edge_index[e] for e in self._incoming.get(node_id, [])]

    def dependents(self, node_id: str) -> List[str]:
        """Unique ids of nodes with an edge into *node_id*, in edge order."""
        self.get_node(node_id)
        seen: Dict[str, None] = {}
        for edge in self.incoming_edges(node_id):
            seen.setdefault(edge.source, None)
        return list(seen)

    def dependencies(self, node_id: str) -> List[str]:
        """Unique ids of nodes *node_id* has an edge into, in edge order."""
        self.get_node(node_id)
        seen: Dict[str, None] = {}
        for edge in self.outgoing_edges(node_id):
            seen.setdefault(edge.target, None)
        return list(seen)

    def degree(self, node_id: str) -> int:
        return len(self._incoming.get(node_id, [])) + len(self._outgoing.get(node_id, []))

    def groups(self) -> List[NodeGroup]:
        """Top-level directories holding at least two nodes (root files group as ".")."""
        by_dir: Dict[str, List[str]] = {}
        for node in self.nodes.values():
            parts = node.path.split("/")
            top = parts[0] if len(parts) > 1 else "."
            by_dir.setdefault(top, []).append(node.node_id)
        groups = []
        for name, node_ids in by_dir.items():
            if len(node_ids) < 2:
                continue
            groups.append(NodeGroup(
                group_id=f"group-{name}",
                name=name,
                node_ids=node_ids,
                color=GROUP_COLORS[len(groups) % len(GROUP_COLORS)],
            ))
        return groups

    def __len__(self) -> int:
        return len(self.nodes)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self.nodes
