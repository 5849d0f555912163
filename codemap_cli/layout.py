"""Cosmetic grid layout: one band of rows per node kind."""

from __future__ import annotations

import math
from typing import Dict, Iterable, List, Mapping

from .models import CodeNode, NodeKind, require_exhaustive

HORIZONTAL_SPACING = 300
VERTICAL_SPACING = 150
NODES_PER_ROW = 5
BAND_GAP = 100

LAYOUT_ORDER: Dict[NodeKind, int] = {
    kind: rank
    for rank, kind in enumerate([
        NodeKind.TYPE,
        NodeKind.INTERFACE,
        NodeKind.CONTEXT,
        NodeKind.HOOK,
        NodeKind.COMPONENT,
        NodeKind.API,
        NodeKind.FUNCTION,
        NodeKind.CLASS,
        NodeKind.ENUM,
        NodeKind.CONSTANT,
        NodeKind.FILE,
    ])
}
require_exhaustive(LAYOUT_ORDER, NodeKind, "LAYOUT_ORDER")


def grid_layout(nodes: Iterable[CodeNode]) -> None:
    """Assign x/y in place, kinds stacked top to bottom in LAYOUT_ORDER."""
    by_kind: Dict[NodeKind, List[CodeNode]] = {}
    for node in nodes:
        by_kind.setdefault(node.kind, []).append(node)

    current_y = 0
    for kind in sorted(by_kind, key=LAYOUT_ORDER.__getitem__):
        band = by_kind[kind]
        for i, node in enumerate(band):
            node.x = float((i % NODES_PER_ROW) * HORIZONTAL_SPACING)
            node.y = float(current_y + (i // NODES_PER_ROW) * VERTICAL_SPACING)
        current_y += math.ceil(len(band) / NODES_PER_ROW) * VERTICAL_SPACING + BAND_GAP


def apply_saved_positions(nodes: Iterable[CodeNode], positions: Mapping[str, Mapping[str, float]]) -> int:
    """Override computed positions with user-placed ones; returns how many applied."""
    count = 0
    for node in nodes:
        saved = positions.get(node.node_id)
        if not saved:
            continue
        node.x = float(saved.get("x", node.x))
        node.y = float(saved.get("y", node.y))
        count += 1
    return count
