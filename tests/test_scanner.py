"""Tests for source discovery, classification and import/export extraction."""

import threading
from pathlib import Path

import pytest

from codemap_cli.errors import AnalysisCancelled, ParseError
from codemap_cli.models import CodeNode, ExportKind, ImportKind, NodeKind
from codemap_cli.scanner import (
    Extractor,
    SourceScanner,
    classify,
    extract_exports,
    extract_imports,
    import_statements,
    path_to_id,
)


class TestPathToId:
    """Tests for node id derivation."""

    def test_separators_and_dots(self):
        assert path_to_id("src/types/user.ts") == "src-types-user_ts"
        assert path_to_id("src\\lib\\a.b.ts") == "src-lib-a_b_ts"


class TestExtractImports:
    """Tests for import statement parsing."""

    def test_default_named_and_inline_type(self):
        imports = extract_imports("import React, { useState, type FC } from 'react';\n")

        assert [(i.name, i.kind) for i in imports] == [
            ("React", ImportKind.DEFAULT),
            ("useState", ImportKind.NAMED),
            ("FC", ImportKind.TYPE),
        ]
        assert all(i.source == "react" for i in imports)

    def test_namespace_and_type_only(self):
        text = "import * as utils from './utils';\nimport type { User } from '@/types/user';\n"
        imports = extract_imports(text)

        assert imports[0].name == "utils"
        assert imports[0].kind == ImportKind.NAMESPACE
        assert imports[1].name == "User"
        assert imports[1].kind == ImportKind.TYPE
        assert imports[1].line == 2

    def test_aliased_specifier_keeps_original_name(self):
        imports = extract_imports("import { Foo as Bar } from './foo';")
        assert imports[0].name == "Foo"

    def test_multiline_import(self):
        text = "import {\n  a,\n  b,\n} from './ab';\n"
        imports = extract_imports(text)

        assert [i.name for i in imports] == ["a", "b"]
        assert all(i.line == 1 for i in imports)

    def test_reexports_count_as_imports(self):
        text = "export { Foo, Bar as Baz } from './foo';\nexport * from './all';\n"
        imports = extract_imports(text)

        assert [(i.name, i.source) for i in imports] == [
            ("Foo", "./foo"),
            ("Bar", "./foo"),
            ("*", "./all"),
        ]

    def test_side_effect_import_ignored(self):
        assert extract_imports("import './styles.css';\n") == []

    def test_import_statements_spans(self):
        text = "import { a } from './a';\nimport {\n  b,\n} from './b';\n"
        spans = [(first, last, source) for first, last, source, _ in import_statements(text)]
        assert spans == [(1, 1, "./a"), (2, 4, "./b")]


class TestExtractExports:
    """Tests for export parsing."""

    def test_export_forms(self):
        text = (
            "export default function App() {}\n"
            "export interface Props { a: string }\n"
            "export type Id = string;\n"
            "export const MAX = 3;\n"
            "const a = 1, b = 2;\n"
            "export { a, b as bee };\n"
        )
        exports = extract_exports(text)

        assert [(e.name, e.kind) for e in exports] == [
            ("App", ExportKind.DEFAULT),
            ("Props", ExportKind.INTERFACE),
            ("Id", ExportKind.TYPE),
            ("MAX", ExportKind.NAMED),
            ("a", ExportKind.NAMED),
            ("bee", ExportKind.NAMED),
        ]
        assert exports[3].line == 4

    def test_anonymous_default(self):
        exports = extract_exports("export default {\n  key: 1,\n};\n")
        assert exports[0].name == "default"
        assert exports[0].kind == ExportKind.DEFAULT

    def test_default_class_extends(self):
        exports = extract_exports("export default class extends Base {}\n")
        assert exports[0].name == "default"

    def test_as_default_in_braces(self):
        exports = extract_exports("const x = 1;\nexport { x as default };\n")
        assert exports[0].kind == ExportKind.DEFAULT
        assert exports[0].name == "x"


class TestClassify:
    """Tests for node kind classification."""

    @pytest.mark.parametrize(
        "path, text, expected",
        [
            ("src/app/api/users/route.ts", "export function GET() {}", NodeKind.API),
            ("src/hooks/thing.ts", "export const x = 1;", NodeKind.HOOK),
            ("src/useAuth.ts", "export function useAuth() {}", NodeKind.HOOK),
            ("src/AuthContext.tsx", "export const AuthContext = 1;", NodeKind.CONTEXT),
            ("src/types/index.ts", "export const x = 1;", NodeKind.TYPE),
            ("src/user.types.ts", "export const x = 1;", NodeKind.TYPE),
            ("src/Button.tsx", "export const Button = () => {\n  return (<button />);\n};", NodeKind.COMPONENT),
            ("src/store.ts", "export class Store {}", NodeKind.CLASS),
            ("src/shape.ts", "export interface Shape {}", NodeKind.INTERFACE),
            ("src/id.ts", "export type Id = { value: number };", NodeKind.TYPE),
            ("src/color.ts", "export enum Color { Red }", NodeKind.ENUM),
            ("src/urls.ts", "export const API_URL = 'x';", NodeKind.CONSTANT),
            ("src/go.ts", "export function go() {}", NodeKind.FUNCTION),
            ("src/plain.js", "const x = 1;", NodeKind.FILE),
        ],
    )
    def test_rules(self, path, text, expected):
        assert classify(path, text) == expected


class TestSourceScanner:
    """Tests for SourceScanner over the sample project."""

    def test_discover_skips_node_modules(self, sample_project_path: Path):
        scanner = SourceScanner(sample_project_path)
        rels = [scanner.relative(p) for p in scanner.discover()]

        assert "src/types/user.ts" in rels
        assert not any(r.startswith("node_modules") for r in rels)
        assert rels == sorted(rels)

    def test_scan_all_nodes(self, sample_project_path: Path):
        nodes = SourceScanner(sample_project_path).scan()
        assert len(nodes) == 8

    def test_interface_fields(self, sample_project_path: Path):
        node = SourceScanner(sample_project_path).scan_file(Path("src/types/user.ts"))

        assert node.kind == NodeKind.TYPE
        assert [f.name for f in node.fields] == ["id", "name", "email"]
        assert node.fields[1].line == 3
        assert node.fields[2].optional is True

    def test_component_props(self, sample_project_path: Path):
        node = SourceScanner(sample_project_path).scan_file(Path("src/components/UserCard.tsx"))

        assert node.kind == NodeKind.COMPONENT
        assert node.node_id == "src-components-UserCard_tsx"
        assert [p.name for p in node.props] == ["user", "compact"]
        assert node.props[1].required is False
        assert node.line == 10
        assert node.lines_of_code == 13

    def test_api_methods(self, sample_project_path: Path):
        node = SourceScanner(sample_project_path).scan_file(Path("src/app/api/users/route.ts"))

        assert node.kind == NodeKind.API
        assert [m.name for m in node.methods] == ["GET", "POST"]
        assert node.methods[0].is_async is True
        assert node.methods[1].params == ["request: Request"]

    def test_hook(self, sample_project_path: Path):
        node = SourceScanner(sample_project_path).scan_file(Path("src/hooks/useUser.ts"))

        assert node.kind == NodeKind.HOOK
        assert node.methods[0].name == "useUser"

    def test_class_facts(self, make_project):
        root = make_project({
            "store.ts": (
                "export class Store {\n"
                "  private count: number = 0;\n"
                "  name?: string;\n"
                "\n"
                "  async load(id: string): Promise<void> {\n"
                "    if (id) {\n"
                "      return;\n"
                "    }\n"
                "  }\n"
                "\n"
                "  reset() {\n"
                "    this.count = 0;\n"
                "  }\n"
                "}\n"
            ),
        })
        node = SourceScanner(root).scan_file(Path("store.ts"))

        assert node.kind == NodeKind.CLASS
        assert [m.name for m in node.methods] == ["load", "reset"]
        assert node.methods[0].is_async is True
        assert node.methods[0].return_type == "Promise<void>"
        assert [(f.name, f.optional) for f in node.fields] == [("count", False), ("name", True)]

    def test_unreadable_file_is_skipped(self, make_project):
        root = make_project({"good.ts": "export const x = 1;\n"})
        (root / "bad.ts").write_bytes(b"\xff\xfe\x00bad")

        scanner = SourceScanner(root)
        nodes = scanner.scan()

        assert [n.path for n in nodes] == ["good.ts"]
        assert len(scanner.errors) == 1
        assert scanner.errors[0].path == "bad.ts"

    def test_colliding_ids_report_parse_error(self, make_project):
        root = make_project({
            "src/a-b.ts": "export const x = 1;\n",
            "src/a/b.ts": "export const y = 2;\n",
        })

        scanner = SourceScanner(root)
        nodes = scanner.scan()

        assert [n.path for n in nodes] == ["src/a-b.ts"]
        assert [e.path for e in scanner.errors] == ["src/a/b.ts"]
        assert "src-a-b_ts" in scanner.errors[0].reason

    def test_extractor_failure_becomes_parse_error(self, make_project):
        class Broken(Extractor):
            def extract(self, relative_path: str, text: str) -> CodeNode:
                raise RuntimeError("boom")

        root = make_project({"a.ts": "const a = 1;\n"})
        with pytest.raises(ParseError, match="boom"):
            SourceScanner(root, extractor=Broken()).scan_file(Path("a.ts"))

    def test_cancelled_scan(self, sample_project_path: Path):
        event = threading.Event()
        event.set()
        with pytest.raises(AnalysisCancelled):
            SourceScanner(sample_project_path).scan(cancel_event=event)
