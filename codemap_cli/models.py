"""Core data models shared by scanning, analysis and patching layers.

Every model serializes to the JSON shapes consumed by presentation layers
via ``to_dict()``; field names there are camelCase and stable.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Union


class NodeKind(str, Enum):
    FILE = "file"
    COMPONENT = "component"
    FUNCTION = "function"
    TYPE = "type"
    INTERFACE = "interface"
    API = "api"
    HOOK = "hook"
    CONTEXT = "context"
    CLASS = "class"
    ENUM = "enum"
    CONSTANT = "constant"


class ImportKind(str, Enum):
    DEFAULT = "default"
    NAMED = "named"
    NAMESPACE = "namespace"
    TYPE = "type"


class ExportKind(str, Enum):
    DEFAULT = "default"
    NAMED = "named"
    INTERFACE = "interface"
    TYPE = "type"


class EdgeKind(str, Enum):
    IMPORTS = "imports"
    USES_TYPE = "uses-type"
    CALLS = "calls"
    RENDERS = "renders"
    PROVIDES_CONTEXT = "provides-context"
    CONSUMES_CONTEXT = "consumes-context"
    HAS_FIELD = "has-field"
    REFERENCES = "references"


class IssueKind(str, Enum):
    CIRCULAR_DEPENDENCY = "circular-dependency"
    UNUSED_EXPORT = "unused-export"
    ORPHANED_FILE = "orphaned-file"
    GOD_OBJECT = "god-object"


class Severity(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"


class ChangeKind(str, Enum):
    RENAME = "rename"
    ADD_FIELD = "add-field"
    REMOVE_FIELD = "remove-field"
    CHANGE_TYPE = "change-type"
    DELETE = "delete"


class ImpactKind(str, Enum):
    UPDATE_IMPORT = "update-import"
    UPDATE_USAGE = "update-usage"
    TYPE_MISMATCH = "type-mismatch"
    MISSING_FIELD = "missing-field"
    BREAKING = "breaking"


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class PatchOperation(str, Enum):
    REPLACE = "replace"
    DELETE = "delete"
    INSERT = "insert"


# ---------------------------------------------------------------------------
# Presentation tables (exhaustive over NodeKind / EdgeKind)
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class NodeStyle:
    color: str
    icon: str


NODE_STYLES: Dict[NodeKind, NodeStyle] = {
    NodeKind.FILE: NodeStyle("#6b7280", "📄"),
    NodeKind.COMPONENT: NodeStyle("#3b82f6", "⚛"),
    NodeKind.FUNCTION: NodeStyle("#10b981", "ƒ"),
    NodeKind.TYPE: NodeStyle("#8b5cf6", "T"),
    NodeKind.INTERFACE: NodeStyle("#8b5cf6", "I"),
    NodeKind.API: NodeStyle("#f59e0b", "🔌"),
    NodeKind.HOOK: NodeStyle("#ec4899", "🪝"),
    NodeKind.CONTEXT: NodeStyle("#06b6d4", "🌐"),
    NodeKind.CLASS: NodeStyle("#ef4444", "📦"),
    NodeKind.ENUM: NodeStyle("#84cc16", "E"),
    NodeKind.CONSTANT: NodeStyle("#f97316", "C"),
}

EDGE_WEIGHTS: Dict[EdgeKind, int] = {
    EdgeKind.IMPORTS: 5,
    EdgeKind.USES_TYPE: 4,
    EdgeKind.CALLS: 7,
    EdgeKind.RENDERS: 6,
    EdgeKind.PROVIDES_CONTEXT: 7,
    EdgeKind.CONSUMES_CONTEXT: 6,
    EdgeKind.HAS_FIELD: 3,
    EdgeKind.REFERENCES: 2,
}

SEVERITY_PENALTIES: Dict[Severity, int] = {
    Severity.CRITICAL: 15,
    Severity.HIGH: 10,
    Severity.MEDIUM: 5,
    Severity.LOW: 2,
    Severity.INFO: 1,
}


def require_exhaustive(table: Mapping[Any, Any], enum_cls: type, name: str) -> None:
    """Fail at import time when a per-kind table misses an enum member."""
    missing = [member.value for member in enum_cls if member not in table]
    if missing:
        raise RuntimeError(f"{name} does not handle: {', '.join(missing)}")


require_exhaustive(NODE_STYLES, NodeKind, "NODE_STYLES")
require_exhaustive(EDGE_WEIGHTS, EdgeKind, "EDGE_WEIGHTS")
require_exhaustive(SEVERITY_PENALTIES, Severity, "SEVERITY_PENALTIES")


# ---------------------------------------------------------------------------
# Code facts
# ---------------------------------------------------------------------------

@dataclass
class Location:
    """Represents a location in source code."""
    file_path: str
    line: int
    column: int = 0

    def __str__(self) -> str:
        return f"{self.file_path}:{self.line}"

    def to_dict(self) -> Dict[str, Any]:
        return {"path": self.file_path, "line": self.line, "column": self.column}


@dataclass
class ImportInfo:
    name: str
    source: str
    kind: ImportKind
    line: int

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "from": self.source, "type": self.kind.value, "line": self.line}


@dataclass
class ExportInfo:
    name: str
    kind: ExportKind
    line: int

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "type": self.kind.value, "line": self.line}


@dataclass
class FieldInfo:
    name: str
    type: str
    optional: bool = False
    line: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"name": self.name, "type": self.type, "optional": self.optional}
        if self.line is not None:
            payload["line"] = self.line
        return payload


@dataclass
class PropInfo:
    name: str
    type: str
    required: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "type": self.type, "required": self.required}


@dataclass
class MethodInfo:
    name: str
    params: List[str] = field(default_factory=list)
    return_type: str = "unknown"
    is_async: bool = False
    line: int = 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "params": list(self.params),
            "returnType": self.return_type,
            "async": self.is_async,
            "line": self.line,
        }


@dataclass
class CodeNode:
    """One source file's primary construct, tagged with a semantic kind."""
    node_id: str
    kind: NodeKind
    name: str
    path: str
    line: int = 1
    lines_of_code: int = 0
    complexity: int = 1
    imports: List[ImportInfo] = field(default_factory=list)
    exports: List[ExportInfo] = field(default_factory=list)
    fields: List[FieldInfo] = field(default_factory=list)
    props: List[PropInfo] = field(default_factory=list)
    methods: List[MethodInfo] = field(default_factory=list)
    hooks: List[str] = field(default_factory=list)
    x: float = 0.0
    y: float = 0.0

    @property
    def style(self) -> NodeStyle:
        return NODE_STYLES[self.kind]

    @property
    def export_names(self) -> List[str]:
        return [e.name for e in self.exports]

    def location(self) -> Location:
        """Where a presentation layer should open this node."""
        return Location(self.path, self.line)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.node_id,
            "type": self.kind.value,
            "name": self.name,
            "path": self.path,
            "line": self.line,
            "position": {"x": self.x, "y": self.y},
            "linesOfCode": self.lines_of_code,
            "complexity": self.complexity,
            "imports": [i.to_dict() for i in self.imports],
            "exports": [e.to_dict() for e in self.exports],
            "fields": [f.to_dict() for f in self.fields],
            "props": [p.to_dict() for p in self.props],
            "methods": [m.to_dict() for m in self.methods],
            "hooks": list(self.hooks),
            "style": {"color": self.style.color, "icon": self.style.icon},
        }


@dataclass
class Edge:
    edge_id: str
    source: str
    target: str
    kind: EdgeKind
    label: str = ""

    @property
    def weight(self) -> int:
        return EDGE_WEIGHTS[self.kind]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.edge_id,
            "source": self.source,
            "target": self.target,
            "type": self.kind.value,
            "label": self.label,
            "weight": self.weight,
        }


@dataclass
class NodeGroup:
    group_id: str
    name: str
    node_ids: List[str]
    color: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.group_id, "name": self.name, "nodeIds": list(self.node_ids), "color": self.color}


# ---------------------------------------------------------------------------
# Coherence
# ---------------------------------------------------------------------------

@dataclass
class CoherenceIssue:
    issue_id: str
    kind: IssueKind
    severity: Severity
    node_ids: List[str]
    message: str
    suggestion: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "id": self.issue_id,
            "type": self.kind.value,
            "severity": self.severity.value,
            "nodeIds": list(self.node_ids),
            "message": self.message,
        }
        if self.suggestion:
            payload["suggestion"] = self.suggestion
        return payload


@dataclass
class GraphMetadata:
    project_name: str
    project_path: str
    analyzed_at: str
    total_files: int
    total_nodes: int
    total_edges: int
    coherence_score: int
    issues: List[CoherenceIssue] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "projectName": self.project_name,
            "projectPath": self.project_path,
            "analyzedAt": self.analyzed_at,
            "totalFiles": self.total_files,
            "totalNodes": self.total_nodes,
            "totalEdges": self.total_edges,
            "coherenceScore": self.coherence_score,
            "issues": [i.to_dict() for i in self.issues],
        }


@dataclass
class GraphAnalysisResult:
    nodes: List[CodeNode]
    edges: List[Edge]
    groups: List[NodeGroup]
    metadata: GraphMetadata

    def to_dict(self) -> Dict[str, Any]:
        return {
            "nodes": [n.to_dict() for n in self.nodes],
            "edges": [e.to_dict() for e in self.edges],
            "groups": [g.to_dict() for g in self.groups],
            "metadata": self.metadata.to_dict(),
        }


# ---------------------------------------------------------------------------
# Impact analysis
# ---------------------------------------------------------------------------

@dataclass
class ValueDescriptor:
    name: Optional[str] = None
    type: Optional[str] = None

    @classmethod
    def coerce(cls, value: Union[None, str, Mapping[str, Any], "ValueDescriptor"]) -> Optional["ValueDescriptor"]:
        if value is None or isinstance(value, ValueDescriptor):
            return value
        if isinstance(value, str):
            return cls(name=value)
        return cls(name=value.get("name"), type=value.get("type"))

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in (("name", self.name), ("type", self.type)) if v is not None}


@dataclass
class ChangeDescriptor:
    node_id: str
    change_type: ChangeKind
    before: Optional[ValueDescriptor] = None
    after: Optional[ValueDescriptor] = None

    def __post_init__(self) -> None:
        self.change_type = ChangeKind(self.change_type)
        self.before = ValueDescriptor.coerce(self.before)
        self.after = ValueDescriptor.coerce(self.after)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "ChangeDescriptor":
        return cls(
            node_id=payload["nodeId"],
            change_type=ChangeKind(payload["changeType"]),
            before=payload.get("before"),
            after=payload.get("after"),
        )

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"nodeId": self.node_id, "changeType": self.change_type.value}
        if self.before is not None:
            payload["before"] = self.before.to_dict()
        if self.after is not None:
            payload["after"] = self.after.to_dict()
        return payload


@dataclass
class AffectedNode:
    node_id: str
    node_name: str
    path: str
    impact_type: ImpactKind
    description: str
    line: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "nodeId": self.node_id,
            "nodeName": self.node_name,
            "path": self.path,
            "impactType": self.impact_type.value,
            "description": self.description,
        }
        if self.line is not None:
            payload["line"] = self.line
        return payload


@dataclass
class BreakingChange:
    node_id: str
    path: str
    line: int
    current_code: str
    reason: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "nodeId": self.node_id,
            "path": self.path,
            "line": self.line,
            "currentCode": self.current_code,
            "reason": self.reason,
        }


@dataclass
class SuggestedFix:
    node_id: str
    path: str
    line: int
    description: str
    old_code: str
    new_code: str
    auto_fixable: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "nodeId": self.node_id,
            "path": self.path,
            "line": self.line,
            "description": self.description,
            "oldCode": self.old_code,
            "newCode": self.new_code,
            "autoFixable": self.auto_fixable,
        }


@dataclass
class ImpactReport:
    target_node: str
    change: ChangeDescriptor
    direct_impact: List[AffectedNode] = field(default_factory=list)
    transitive_impact: List[AffectedNode] = field(default_factory=list)
    breaking_changes: List[BreakingChange] = field(default_factory=list)
    suggested_fixes: List[SuggestedFix] = field(default_factory=list)
    risk_level: RiskLevel = RiskLevel.LOW

    @property
    def requires_confirmation(self) -> bool:
        return self.risk_level == RiskLevel.CRITICAL

    def to_patches(self, auto_only: bool = True) -> List["Patch"]:
        """Turn suggested fixes into patches for the PatchEngine.

        Args:
            auto_only: Skip fixes that are suggestions only.
        """
        prefix = self.change.change_type.value
        patches: List[Patch] = []
        seen: Dict[str, int] = {}
        for fix in self.suggested_fixes:
            if auto_only and not fix.auto_fixable:
                continue
            base = f"{prefix}-{fix.node_id}-{fix.line}"
            count = seen.get(base, 0)
            seen[base] = count + 1
            patches.append(Patch(
                patch_id=base if count == 0 else f"{base}-{count}",
                path=fix.path,
                line=fix.line,
                old_code=fix.old_code,
                new_code=fix.new_code,
                description=fix.description,
                auto_fixable=fix.auto_fixable,
            ))
        return patches

    def to_dict(self) -> Dict[str, Any]:
        return {
            "targetNode": self.target_node,
            "change": self.change.to_dict(),
            "directImpact": [a.to_dict() for a in self.direct_impact],
            "transitiveImpact": [a.to_dict() for a in self.transitive_impact],
            "breakingChanges": [b.to_dict() for b in self.breaking_changes],
            "suggestedFixes": [s.to_dict() for s in self.suggested_fixes],
            "riskLevel": self.risk_level.value,
        }


# ---------------------------------------------------------------------------
# Patching
# ---------------------------------------------------------------------------

@dataclass
class Patch:
    """A single-line replacement, deletion or (rollback-only) insertion."""
    patch_id: str
    path: str
    line: int
    old_code: str
    new_code: str
    description: str = ""
    auto_fixable: bool = True
    applied: bool = False
    error: Optional[str] = None
    operation: Optional[PatchOperation] = None
    # Neighbouring lines recorded when a delete is applied; None at a file edge.
    context_before: Optional[str] = None
    context_after: Optional[str] = None

    def __post_init__(self) -> None:
        if self.operation is None:
            self.operation = PatchOperation.DELETE if self.new_code == "" else PatchOperation.REPLACE
        else:
            self.operation = PatchOperation(self.operation)

    def inverse(self) -> "Patch":
        """Build the patch that undoes this one once it has been applied."""
        if self.operation == PatchOperation.DELETE:
            operation = PatchOperation.INSERT
        elif self.operation == PatchOperation.INSERT:
            operation = PatchOperation.DELETE
        else:
            operation = PatchOperation.REPLACE
        return Patch(
            patch_id=f"rollback-{self.patch_id}",
            path=self.path,
            line=self.line,
            old_code=self.new_code,
            new_code=self.old_code,
            description=f"Rollback: {self.description}",
            auto_fixable=self.auto_fixable,
            operation=operation,
            context_before=self.context_before,
            context_after=self.context_after,
        )

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Patch":
        return cls(
            patch_id=payload["id"],
            path=payload["path"],
            line=int(payload["line"]),
            old_code=payload.get("oldCode", ""),
            new_code=payload.get("newCode", ""),
            description=payload.get("description", ""),
            auto_fixable=bool(payload.get("autoFixable", True)),
            applied=bool(payload.get("applied", False)),
            error=payload.get("error"),
            operation=payload.get("operation"),
            context_before=payload.get("contextBefore"),
            context_after=payload.get("contextAfter"),
        )

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "id": self.patch_id,
            "path": self.path,
            "line": self.line,
            "oldCode": self.old_code,
            "newCode": self.new_code,
            "description": self.description,
            "autoFixable": self.auto_fixable,
            "applied": self.applied,
            "operation": self.operation.value,
        }
        if self.error is not None:
            payload["error"] = self.error
        if self.context_before is not None:
            payload["contextBefore"] = self.context_before
        if self.context_after is not None:
            payload["contextAfter"] = self.context_after
        return payload


@dataclass
class PatchApplyResult:
    success: bool
    patches_applied: List[Patch] = field(default_factory=list)
    patches_failed: List[Patch] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    files_modified: List[str] = field(default_factory=list)

    def __str__(self) -> str:
        if self.success:
            return f"✅ Applied {len(self.patches_applied)} patch(es) to {len(self.files_modified)} file(s)"
        return f"❌ {len(self.patches_failed)} patch(es) failed: {'; '.join(self.errors)}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "patchesApplied": [p.to_dict() for p in self.patches_applied],
            "patchesFailed": [p.to_dict() for p in self.patches_failed],
            "errors": list(self.errors),
            "filesModified": list(self.files_modified),
        }
