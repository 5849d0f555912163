"""Tests for DependencyGraph construction, resolution and queries."""

from pathlib import Path

import pytest

from codemap_cli.config import AnalysisSettings
from codemap_cli.errors import NodeNotFoundError
from codemap_cli.graph import DependencyGraph
from codemap_cli.models import CodeNode, EdgeKind, NodeKind
from codemap_cli.scanner import SourceScanner, path_to_id


def _node(path: str, kind: NodeKind = NodeKind.FILE) -> CodeNode:
    return CodeNode(node_id=path_to_id(path), kind=kind, name=Path(path).stem, path=path)


@pytest.fixture
def sample_graph(sample_project_path: Path) -> DependencyGraph:
    return DependencyGraph().build(SourceScanner(sample_project_path).scan())


class TestBuild:
    """Tests for building the graph from the sample project."""

    def test_counts(self, sample_graph: DependencyGraph):
        assert len(sample_graph) == 8
        assert len(sample_graph.edges) == 6

    def test_type_import_becomes_uses_type(self, sample_graph: DependencyGraph):
        edges = sample_graph.outgoing_edges("src-components-UserCard_tsx")
        kinds = {(e.target, e.kind, e.label) for e in edges}

        assert ("src-types-user_ts", EdgeKind.USES_TYPE, "User") in kinds
        assert ("src-lib-format_ts", EdgeKind.IMPORTS, "formatName") in kinds
        # 'react' is a package and never becomes an edge
        assert len(edges) == 2

    def test_dependents_and_dependencies(self, sample_graph: DependencyGraph):
        assert set(sample_graph.dependents("src-types-user_ts")) == {
            "src-app-api-users-route_ts",
            "src-components-UserCard_tsx",
            "src-hooks-useUser_ts",
        }
        assert sample_graph.dependencies("src-lib-a_ts") == ["src-lib-b_ts"]
        assert sample_graph.dependents("src-legacy-orphan_ts") == []

    def test_degree(self, sample_graph: DependencyGraph):
        assert sample_graph.degree("src-types-user_ts") == 3
        assert sample_graph.degree("src-legacy-orphan_ts") == 0

    def test_groups(self, sample_graph: DependencyGraph):
        groups = sample_graph.groups()

        assert [g.name for g in groups] == ["src"]
        assert groups[0].group_id == "group-src"
        assert len(groups[0].node_ids) == 8

    def test_rebuild_replaces_previous_graph(self, sample_graph: DependencyGraph):
        sample_graph.build([_node("only.ts")])
        assert len(sample_graph) == 1
        assert sample_graph.edges == []


class TestResolveImport:
    """Tests for import specifier resolution."""

    def test_relative_alias_and_index(self):
        graph = DependencyGraph()
        for path in ("src/app.ts", "src/lib/index.ts", "src/util.tsx", "src/types/user.ts"):
            graph.add_node(_node(path))

        assert graph.resolve_import("./lib", "src/app.ts") == "src-lib-index_ts"
        assert graph.resolve_import("./util", "src/app.ts") == "src-util_tsx"
        assert graph.resolve_import("@/types/user", "src/app.ts") == "src-types-user_ts"
        assert graph.resolve_import("../util", "src/lib/index.ts") == "src-util_tsx"

    def test_packages_misses_and_escapes(self):
        graph = DependencyGraph()
        graph.add_node(_node("src/app.ts"))

        assert graph.resolve_import("react", "src/app.ts") is None
        assert graph.resolve_import("./missing", "src/app.ts") is None
        assert graph.resolve_import("../../outside", "src/app.ts") is None

    def test_custom_alias(self):
        graph = DependencyGraph(AnalysisSettings(alias_prefix="~/", alias_root="app/"))
        graph.add_node(_node("app/x.ts"))

        assert graph.resolve_import("~/x", "app/y.ts") == "app-x_ts"
        assert graph.resolve_import("@/x", "app/y.ts") is None


class TestEdgesAndNodes:
    """Tests for low-level node/edge operations."""

    def test_get_node_missing(self):
        graph = DependencyGraph()

        with pytest.raises(NodeNotFoundError) as exc_info:
            graph.get_node("nope")
        assert "Node not found: nope" in str(exc_info.value)
        assert isinstance(exc_info.value, KeyError)
        assert graph.find_node("nope") is None

    def test_add_edge_requires_both_endpoints(self):
        graph = DependencyGraph()
        graph.add_node(_node("a.ts"))

        with pytest.raises(NodeNotFoundError):
            graph.add_edge("a_ts", "b_ts", EdgeKind.IMPORTS)

    def test_duplicate_edge_ids_are_suffixed(self):
        graph = DependencyGraph()
        graph.add_node(_node("a.ts"))
        graph.add_node(_node("b.ts"))

        first = graph.add_edge("a_ts", "b_ts", EdgeKind.IMPORTS, "x")
        second = graph.add_edge("a_ts", "b_ts", EdgeKind.IMPORTS, "x")

        assert first.edge_id != second.edge_id
        assert second.edge_id.endswith("#2")
        assert graph.dependencies("a_ts") == ["b_ts"]

    def test_duplicate_node_keeps_first(self):
        graph = DependencyGraph()
        first = _node("a.ts")
        graph.add_node(first)
        graph.add_node(_node("a.ts", NodeKind.CLASS))

        assert graph.get_node("a_ts") is first
        assert "a_ts" in graph
