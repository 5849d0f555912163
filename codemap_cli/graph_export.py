"""Graph export helpers for JSON and Graphviz DOT outputs."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Dict, List

from .models import CodeNode, Edge, EdgeKind, GraphAnalysisResult


def export_json(result: GraphAnalysisResult, output_file: Path) -> None:
    output_file.write_text(json.dumps(result.to_dict(), indent=2, ensure_ascii=False), encoding="utf-8")


def export_dot(result: GraphAnalysisResult, output_file: Path, focus: str = "") -> None:
    output_file.write_text(render_dot(result, focus), encoding="utf-8")


def render_dot(result: GraphAnalysisResult, focus: str = "") -> str:
    nodes = {node.node_id: node for node in result.nodes}
    selected = _focused_subgraph(nodes, result.edges, focus)

    lines = ["digraph CodeMap {"]
    lines.append("  rankdir=LR;")
    lines.append('  node [shape=box, style="rounded,filled", fontcolor=white];')

    for node_id in selected["nodes"]:
        node = nodes[node_id]
        label = f"{node.kind.value}\\n{_esc(node.name)}"
        lines.append(f'  "{_esc(node_id)}" [label="{label}", fillcolor="{node.style.color}"];')

    for edge in selected["edges"]:
        style = ', style="dashed"' if edge.kind == EdgeKind.USES_TYPE else ""
        lines.append(
            f'  "{_esc(edge.source)}" -> "{_esc(edge.target)}" '
            f'[label="{_esc(edge.label)}", penwidth={edge.weight / 3:.1f}{style}];'
        )

    lines.append("}")
    return "\n".join(lines) + "\n"


def _focused_subgraph(nodes: Dict[str, CodeNode], edges: List[Edge], focus: str) -> Dict[str, List]:
    if not focus:
        return {"nodes": list(nodes.keys()), "edges": edges}

    focus_ids = {
        node_id
        for node_id, node in nodes.items()
        if focus in node_id or focus in node.name or focus in node.path
    }

    if not focus_ids:
        return {"nodes": list(nodes.keys()), "edges": edges}

    edge_subset = [e for e in edges if e.source in focus_ids or e.target in focus_ids]
    node_subset = set(focus_ids)
    for e in edge_subset:
        node_subset.add(e.source)
        node_subset.add(e.target)
    return {"nodes": sorted(node_subset), "edges": edge_subset}


def _esc(text: str) -> str:
    return text.replace("\\", "\\\\").replace('"', '\\"')
