"""Source scanner: discovers JS/TS files and turns each into a CodeNode.

Extraction is plain text scanning, not a real parser. It is
tolerant: a construct it does not recognise is simply not reported.
A different ``Extractor`` (e.g. one backed by a real TypeScript parser) can
be plugged into ``SourceScanner`` without touching the graph or analyzers.
"""

from __future__ import annotations

import logging
import os
import re
import threading
from abc import ABC, abstractmethod
from pathlib import Path, PurePosixPath
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from .config import AnalysisSettings
from .errors import AnalysisCancelled, ParseError
from .models import (
    CodeNode,
    ExportInfo,
    ExportKind,
    FieldInfo,
    ImportInfo,
    ImportKind,
    MethodInfo,
    NodeKind,
    PropInfo,
    require_exhaustive,
)

logger = logging.getLogger(__name__)

HTTP_METHODS: Tuple[str, ...] = ("GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS")


def path_to_id(relative_path: str) -> str:
    """Deterministic node id for a project-relative path."""
    return re.sub(r"[\\/]", "-", relative_path).replace(".", "_")


def line_of(text: str, offset: int) -> int:
    return text.count("\n", 0, offset) + 1


# ===================================================================
# Regex catalogue
# ===================================================================

_IMPORT_RE = re.compile(
    r"^[ \t]*import\s+(?P<type>type\s+)?(?P<clause>[\w${*][^;'\"]*?)\s*"
    r"\bfrom\s*['\"](?P<source>[^'\"]+)['\"]",
    re.MULTILINE,
)
_REEXPORT_RE = re.compile(
    r"^[ \t]*export\s+(?P<type>type\s+)?(?P<clause>\*(?:\s+as\s+[\w$]+)?|\{[^}]*\})\s*"
    r"from\s*['\"](?P<source>[^'\"]+)['\"]",
    re.MULTILINE,
)
_EXPORT_BRACES_RE = re.compile(
    r"^[ \t]*export\s+(?P<type>type\s+)?\{(?P<body>[^}]*)\}(?!\s*from\b)",
    re.MULTILINE,
)
_EXPORT_DEFAULT_RE = re.compile(
    r"^\s*export\s+default\s+(?:async\s+)?(?:(?:abstract\s+)?class\b|function\b\s*\*?)?\s*([A-Za-z_$][\w$]*)?"
)
_EXPORT_INTERFACE_RE = re.compile(r"^\s*export\s+(?:declare\s+)?interface\s+([\w$]+)")
_EXPORT_TYPE_RE = re.compile(r"^\s*export\s+(?:declare\s+)?type\s+([\w$]+)\s*(?:<[^=]*>)?\s*=")
_EXPORT_DECL_RE = re.compile(
    r"^\s*export\s+(?:declare\s+)?(?:async\s+)?"
    r"(?:abstract\s+class|const\s+enum|function\s*\*?|const|let|var|class|enum)\s+\*?\s*([A-Za-z_$][\w$]*)"
)

_COMPLEXITY_PATTERNS = [
    re.compile(r"\bif\s*\("),
    re.compile(r"\belse\s+if\s*\("),
    re.compile(r"\bfor\s*\("),
    re.compile(r"\bwhile\s*\("),
    re.compile(r"\bcase\s+"),
    re.compile(r"\bcatch\s*\("),
    re.compile(r"\?\?"),
    re.compile(r"(?<!\?)\?(?![?.:])"),
    re.compile(r"&&"),
    re.compile(r"\|\|"),
]

_HOOK_NAME_RE = re.compile(r"^use[A-Z\-_]")
_RENDER_RE = re.compile(r"return\s*\(?\s*<|React\.FC\b|:\s*FC<")
_MARKUP_RE = re.compile(r"</[\w.]*>|/>")
_CLASS_RE = re.compile(r"^\s*(?:export\s+)?(?:default\s+)?(?:abstract\s+)?class\s+[\w$]+", re.MULTILINE)
_INTERFACE_RE = re.compile(r"\bexport\s+(?:declare\s+)?interface\s+[\w$]+")
_TYPE_ALIAS_RE = re.compile(r"\bexport\s+(?:declare\s+)?type\s+[\w$]+\s*(?:<[^=]*>)?\s*=")
_ENUM_RE = re.compile(r"\bexport\s+(?:const\s+)?enum\s+[\w$]+")
_CONSTANT_RE = re.compile(r"\bexport\s+const\s+[A-Z][A-Z0-9_]*\s*(?::[^=]+)?=")
_FUNCTION_RE = re.compile(r"\bexport\s+(?:default\s+)?(?:async\s+)?function\b")

_PROPS_BODY_RE = re.compile(r"(?:interface|type)\s+\w*Props\w*\s*(?:=\s*)?\{([^}]+)\}")
_TYPE_BODY_RE = re.compile(r"(?:interface|type)\s+\w+\s*(?:<[^>{]*>)?\s*(?:extends\s+[^{]+)?(?:=\s*)?\{([^}]+)\}")
_MEMBER_RE = re.compile(r"^\s*(?:readonly\s+)?([\w$]+)(\?)?\s*:\s*([^;,]+)")
_HOOK_CALL_RE = re.compile(r"\b(use[A-Z]\w*)\s*\(")
_HOOK_DECL_RE = re.compile(r"export\s+(?:default\s+)?(?:async\s+)?function\s+(use\w+)\s*\(([^)]*)\)")
_CLASS_METHOD_RE = re.compile(r"(async\s+)?([\w$]+)\s*\(([^)]*)\)\s*(?::\s*([\w$<>\[\]]+))?\s*\{")
_CLASS_FIELD_RE = re.compile(
    r"^\s*(?:(?:private|public|protected|readonly|static|declare)\s+)*([\w$]+)(\?)?\s*:\s*([^;=]+)"
)
_NOT_METHODS = {"function", "if", "for", "while", "switch", "catch", "return", "with"}
_NOT_EXPORT_NAMES = {"extends", "new", "function", "class", "async", "await"}
_NOT_FIELDS = {"case", "default", "return", "else"}


def _split_params(raw: str) -> List[str]:
    return [p.strip() for p in raw.split(",") if p.strip()]


def _complexity(text: str) -> int:
    return 1 + sum(len(p.findall(text)) for p in _COMPLEXITY_PATTERNS)


# ===================================================================
# Import / export extraction
# ===================================================================

def _brace_specifiers(body: str) -> Iterable[Tuple[str, str, bool]]:
    """Yield (original, local, inline_type) for each ``a as b`` specifier."""
    for raw in body.split(","):
        spec = re.sub(r"/\*.*?\*/|//[^\n]*", "", raw, flags=re.DOTALL).strip()
        if not spec:
            continue
        inline_type = False
        if re.match(r"type\s+[\w$]", spec):
            inline_type = True
            spec = spec[4:].strip()
        parts = re.split(r"\s+as\s+", spec)
        original = parts[0].strip()
        local = parts[-1].strip()
        if original:
            yield original, local, inline_type


def _clause_imports(clause: str, source: str, line: int, type_only: bool) -> List[ImportInfo]:
    clause = clause.strip()
    found: List[ImportInfo] = []
    default_kind = ImportKind.TYPE if type_only else ImportKind.DEFAULT

    ns = re.match(r"\*\s*as\s+([\w$]+)", clause)
    if ns:
        kind = ImportKind.TYPE if type_only else ImportKind.NAMESPACE
        return [ImportInfo(ns.group(1), source, kind, line)]

    rest = clause
    default = re.match(r"([A-Za-z_$][\w$]*)\s*(?:,|$)", clause)
    if default:
        found.append(ImportInfo(default.group(1), source, default_kind, line))
        rest = clause[default.end():].strip()

    ns = re.match(r"\*\s*as\s+([\w$]+)", rest)
    if ns:
        kind = ImportKind.TYPE if type_only else ImportKind.NAMESPACE
        found.append(ImportInfo(ns.group(1), source, kind, line))
    elif rest.startswith("{"):
        body = rest[1:rest.rfind("}")] if "}" in rest else rest[1:]
        for original, _local, inline_type in _brace_specifiers(body):
            kind = ImportKind.TYPE if (type_only or inline_type) else ImportKind.NAMED
            found.append(ImportInfo(original, source, kind, line))
    return found


def import_statements(text: str) -> List[Tuple[int, int, str, str]]:
    """(first_line, last_line, source, statement) for every import and re-export."""
    found = []
    for regex in (_IMPORT_RE, _REEXPORT_RE):
        for match in regex.finditer(text):
            found.append((
                line_of(text, match.start()),
                line_of(text, match.end()),
                match.group("source"),
                match.group(0).strip(),
            ))
    found.sort()
    return found


def extract_imports(text: str) -> List[ImportInfo]:
    """All import statements and re-exports, in source order."""
    found: List[Tuple[int, int, ImportInfo]] = []
    for match in _IMPORT_RE.finditer(text):
        line = line_of(text, match.start())
        for info in _clause_imports(match.group("clause"), match.group("source"), line, bool(match.group("type"))):
            found.append((match.start(), len(found), info))
    for match in _REEXPORT_RE.finditer(text):
        line = line_of(text, match.start())
        clause = match.group("clause")
        source = match.group("source")
        type_only = bool(match.group("type"))
        if clause.startswith("*"):
            alias = re.match(r"\*\s+as\s+([\w$]+)", clause)
            found.append((match.start(), len(found), ImportInfo(
                alias.group(1) if alias else "*", source, ImportKind.NAMESPACE, line,
            )))
            continue
        for original, _exported, inline_type in _brace_specifiers(clause[1:-1]):
            kind = ImportKind.TYPE if (type_only or inline_type) else ImportKind.NAMED
            found.append((match.start(), len(found), ImportInfo(original, source, kind, line)))
    found.sort(key=lambda item: (item[0], item[1]))
    return [info for _, _, info in found]


def _brace_exports(text: str) -> List[Tuple[int, ExportInfo]]:
    found: List[Tuple[int, ExportInfo]] = []
    for regex, body_group in ((_EXPORT_BRACES_RE, "body"), (_REEXPORT_RE, "clause")):
        for match in regex.finditer(text):
            body = match.group(body_group)
            if body.startswith("*"):
                continue
            if body.startswith("{"):
                body = body[1:-1]
            line = line_of(text, match.start())
            type_only = bool(match.group("type"))
            for original, exported, inline_type in _brace_specifiers(body):
                if exported == "default":
                    found.append((match.start(), ExportInfo(original, ExportKind.DEFAULT, line)))
                else:
                    kind = ExportKind.TYPE if (type_only or inline_type) else ExportKind.NAMED
                    found.append((match.start(), ExportInfo(exported, kind, line)))
    return found


def extract_exports(text: str) -> List[ExportInfo]:
    """Declared and listed exports, in source order."""
    found: List[Tuple[int, ExportInfo]] = []
    offset = 0
    for number, line in enumerate(text.split("\n"), start=1):
        info: Optional[ExportInfo] = None
        match = _EXPORT_DEFAULT_RE.match(line)
        if match:
            name = match.group(1)
            if not name or name in _NOT_EXPORT_NAMES:
                name = "default"
            info = ExportInfo(name, ExportKind.DEFAULT, number)
        elif _EXPORT_INTERFACE_RE.match(line):
            info = ExportInfo(_EXPORT_INTERFACE_RE.match(line).group(1), ExportKind.INTERFACE, number)
        elif _EXPORT_TYPE_RE.match(line):
            info = ExportInfo(_EXPORT_TYPE_RE.match(line).group(1), ExportKind.TYPE, number)
        elif _EXPORT_DECL_RE.match(line):
            info = ExportInfo(_EXPORT_DECL_RE.match(line).group(1), ExportKind.NAMED, number)
        if info is not None:
            found.append((offset, info))
        offset += len(line) + 1
    found.extend(_brace_exports(text))
    found.sort(key=lambda item: item[0])
    return [info for _, info in found]


# ===================================================================
# Classification and kind-specific facts
# ===================================================================

def classify(relative_path: str, text: str) -> NodeKind:
    """Pick a node kind; the first matching rule wins."""
    path = PurePosixPath(relative_path)
    dirs = [part.lower() for part in path.parts[:-1]]
    file_name = path.name
    stem = path.stem

    if "api" in dirs:
        return NodeKind.API
    if _HOOK_NAME_RE.match(stem) or "hooks" in dirs:
        return NodeKind.HOOK
    if "context" in stem.lower() or "provider" in stem.lower():
        return NodeKind.CONTEXT
    if "types" in dirs or ".types." in file_name:
        return NodeKind.TYPE
    if _RENDER_RE.search(text) and _MARKUP_RE.search(text):
        return NodeKind.COMPONENT
    if _CLASS_RE.search(text):
        return NodeKind.CLASS
    if _INTERFACE_RE.search(text):
        return NodeKind.INTERFACE
    if _TYPE_ALIAS_RE.search(text):
        return NodeKind.TYPE
    if _ENUM_RE.search(text):
        return NodeKind.ENUM
    if _CONSTANT_RE.search(text):
        return NodeKind.CONSTANT
    if _FUNCTION_RE.search(text):
        return NodeKind.FUNCTION
    return NodeKind.FILE


def _members(body: str, first_line: int) -> List[Tuple[int, re.Match]]:
    found = []
    for index, line in enumerate(body.split("\n")):
        match = _MEMBER_RE.match(line)
        if match:
            found.append((first_line + index, match))
    return found


def _component_facts(node: CodeNode, text: str) -> None:
    match = _PROPS_BODY_RE.search(text)
    if match:
        for _line, member in _members(match.group(1), line_of(text, match.start(1))):
            node.props.append(PropInfo(member.group(1), member.group(3).strip(), required=not member.group(2)))
    for hook in _HOOK_CALL_RE.findall(text):
        if hook not in node.hooks:
            node.hooks.append(hook)


def _type_facts(node: CodeNode, text: str) -> None:
    match = _TYPE_BODY_RE.search(text)
    if not match:
        return
    for line, member in _members(match.group(1), line_of(text, match.start(1))):
        node.fields.append(FieldInfo(member.group(1), member.group(3).strip(), bool(member.group(2)), line))


def _api_facts(node: CodeNode, text: str) -> None:
    for verb in HTTP_METHODS:
        match = re.search(rf"export\s+(async\s+)?function\s+{verb}\b\s*\(([^)]*)\)", text)
        if match:
            node.methods.append(MethodInfo(
                name=verb,
                params=_split_params(match.group(2)),
                return_type="Response",
                is_async=bool(match.group(1)),
                line=line_of(text, match.start()),
            ))


def _hook_facts(node: CodeNode, text: str) -> None:
    match = _HOOK_DECL_RE.search(text)
    if match:
        node.methods.append(MethodInfo(
            name=match.group(1),
            params=_split_params(match.group(2)),
            is_async="async" in match.group(0).split("function")[0],
            line=line_of(text, match.start()),
        ))


def _class_facts(node: CodeNode, text: str) -> None:
    for match in _CLASS_METHOD_RE.finditer(text):
        name = match.group(2)
        if name in _NOT_METHODS:
            continue
        node.methods.append(MethodInfo(
            name=name,
            params=_split_params(match.group(3)),
            return_type=match.group(4) or "unknown",
            is_async=bool(match.group(1)),
            line=line_of(text, match.start(2)),
        ))
    for number, line in enumerate(text.split("\n"), start=1):
        stripped = line.strip()
        if "(" in line or stripped.endswith((",", "{")):
            continue
        match = _CLASS_FIELD_RE.match(line)
        if match and match.group(1) not in _NOT_FIELDS:
            node.fields.append(FieldInfo(match.group(1), match.group(3).strip(), bool(match.group(2)), number))


def _no_facts(node: CodeNode, text: str) -> None:
    return None


_KIND_EXTRACTORS: Dict[NodeKind, Callable[[CodeNode, str], None]] = {
    NodeKind.FILE: _no_facts,
    NodeKind.COMPONENT: _component_facts,
    NodeKind.FUNCTION: _no_facts,
    NodeKind.TYPE: _type_facts,
    NodeKind.INTERFACE: _type_facts,
    NodeKind.API: _api_facts,
    NodeKind.HOOK: _hook_facts,
    NodeKind.CONTEXT: _no_facts,
    NodeKind.CLASS: _class_facts,
    NodeKind.ENUM: _no_facts,
    NodeKind.CONSTANT: _no_facts,
}
require_exhaustive(_KIND_EXTRACTORS, NodeKind, "_KIND_EXTRACTORS")


# ===================================================================
# Extractor interface
# ===================================================================

class Extractor(ABC):
    """Turns one file's text into a CodeNode."""

    @abstractmethod
    def extract(self, relative_path: str, text: str) -> CodeNode:
        ...


class RegexExtractor(Extractor):
    """Default extractor built on the regex catalogue above."""

    def extract(self, relative_path: str, text: str) -> CodeNode:
        kind = classify(relative_path, text)
        exports = extract_exports(text)
        node = CodeNode(
            node_id=path_to_id(relative_path),
            kind=kind,
            name=PurePosixPath(relative_path).stem,
            path=relative_path,
            line=exports[0].line if exports else 1,
            lines_of_code=len(text.splitlines()),
            complexity=_complexity(text),
            imports=extract_imports(text),
            exports=exports,
        )
        _KIND_EXTRACTORS[kind](node, text)
        return node


# ===================================================================
# Scanner
# ===================================================================

class SourceScanner:
    """Walks a project and produces one CodeNode per source file."""

    def __init__(
        self,
        project_root: Path,
        settings: Optional[AnalysisSettings] = None,
        extractor: Optional[Extractor] = None,
    ) -> None:
        self.project_root = Path(project_root).resolve()
        self.settings = settings or AnalysisSettings()
        self.extractor = extractor or RegexExtractor()
        self.errors: List[ParseError] = []

    def discover(self) -> List[Path]:
        """Source files under the root, sorted by relative path."""
        extensions = set(self.settings.include_extensions)
        ignored = set(self.settings.ignore_dirs)
        files = []
        for dirpath, dirnames, filenames in os.walk(self.project_root):
            # Prune ignored directories so node_modules is never walked
            dirnames[:] = [d for d in dirnames if d not in ignored]
            for filename in filenames:
                if os.path.splitext(filename)[1] in extensions:
                    files.append(Path(dirpath) / filename)
        return sorted(files, key=lambda p: p.relative_to(self.project_root).as_posix())

    def relative(self, file_path: Path) -> str:
        return Path(file_path).relative_to(self.project_root).as_posix()

    def scan_file(self, file_path: Path) -> CodeNode:
        """Scan one file; raises ParseError when it cannot be read or extracted."""
        file_path = Path(file_path)
        if not file_path.is_absolute():
            file_path = self.project_root / file_path
        relative = self.relative(file_path)
        try:
            with open(file_path, "r", encoding="utf-8", newline="") as f:
                text = f.read()
        except (OSError, UnicodeDecodeError) as exc:
            raise ParseError(relative, str(exc)) from exc
        try:
            return self.extractor.extract(relative, text)
        except Exception as exc:
            raise ParseError(relative, f"{type(exc).__name__}: {exc}") from exc

    def scan(self, cancel_event: Optional[threading.Event] = None) -> List[CodeNode]:
        """Scan every discovered file, skipping (and logging) the ones that fail.

        Args:
            cancel_event: Checked between files; when set the scan stops with
                AnalysisCancelled.
        """
        self.errors = []
        nodes: List[CodeNode] = []
        claimed: Dict[str, str] = {}
        for file_path in self.discover():
            if cancel_event is not None and cancel_event.is_set():
                raise AnalysisCancelled(f"Scan of {self.project_root} cancelled")
            try:
                node = self.scan_file(file_path)
                # "a-b.ts" and "a/b.ts" flatten to the same id
                if node.node_id in claimed:
                    raise ParseError(
                        node.path, f"node id {node.node_id} is already used by {claimed[node.node_id]}",
                    )
            except ParseError as exc:
                logger.warning("%s", exc)
                self.errors.append(exc)
                continue
            claimed[node.node_id] = node.path
            nodes.append(node)
        logger.debug("Scanned %d file(s), %d skipped", len(nodes), len(self.errors))
        return nodes
