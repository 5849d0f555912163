"""Blast-radius simulation for a proposed change to one node.

Only direct dependents (nodes with an edge into the target) are examined
line by line. Their own dependents are listed as transitive impact and are
never patched.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from .errors import InvalidChangeError
from .graph import DependencyGraph
from .models import (
    AffectedNode,
    BreakingChange,
    ChangeDescriptor,
    ChangeKind,
    CodeNode,
    ExportKind,
    ImpactKind,
    ImpactReport,
    Patch,
    RiskLevel,
    SuggestedFix,
    require_exhaustive,
)
from .scanner import import_statements

logger = logging.getLogger(__name__)

_STRING_IDIOMS = (".length", ".charAt", ".split")
_ARITHMETIC_RE = re.compile(r"[+\-*/]")
_BINDING_BLOCK_RE = re.compile(
    r"\b(?:const|let|var)\s*\{(?P<decl>[^}]*)\}\s*="
    r"|[(,]\s*\{(?P<param>[^}]*)\}\s*[=:),]"
)
# Quoted module specifier of an import, re-export or dynamic import.
_SPECIFIER_RE = re.compile(r"""\b(?:from|import)\s*\(?\s*(["'])[^"'\n]*\1""")


def identifier_re(name: str) -> "re.Pattern[str]":
    """Whole-identifier match; ``$`` and ``_`` count as identifier characters."""
    return re.compile(rf"(?<![\w$]){re.escape(name)}(?![\w$])")


def property_access_re(field_name: str) -> "re.Pattern[str]":
    return re.compile(rf"(?:\?\.|\.){re.escape(field_name)}(?![\w$])")


def rename_identifier(line: str, old_name: str, new_name: str) -> Optional[str]:
    """Rename whole-identifier uses on *line*, leaving module specifiers alone.

    Returns None when nothing outside a specifier matched.
    """
    protected = [m.span() for m in _SPECIFIER_RE.finditer(line)]
    hits = []

    def swap(match: "re.Match[str]") -> str:
        if any(start <= match.start() < end for start, end in protected):
            return match.group(0)
        hits.append(match.start())
        return new_name

    new_line = identifier_re(old_name).sub(swap, line)
    return new_line if hits else None


def might_conflict(line: str, old_type: str, new_type: str) -> bool:
    """Conservative guess whether *line* breaks when a field changes type."""
    swapped = ("string" in old_type and "number" in new_type) or (
        "number" in old_type and "string" in new_type
    )
    if swapped and (any(idiom in line for idiom in _STRING_IDIOMS) or _ARITHMETIC_RE.search(line)):
        return True
    return "|" in old_type or "|" in new_type


def calculate_risk(direct_count: int, breaking_count: int, change_type: ChangeKind) -> RiskLevel:
    if breaking_count > 5 or (change_type == ChangeKind.DELETE and direct_count > 3):
        return RiskLevel.CRITICAL
    if breaking_count > 0 or direct_count > 10:
        return RiskLevel.HIGH
    if direct_count > 5:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


@dataclass
class _NodeImpact:
    affected: Optional[AffectedNode] = None
    breaking: List[BreakingChange] = field(default_factory=list)
    fixes: List[SuggestedFix] = field(default_factory=list)


@dataclass
class _Context:
    """Everything a per-change handler needs about one dependent."""
    dependent: CodeNode
    target: CodeNode
    change: ChangeDescriptor
    lines: List[str]
    text: str
    resolves_to_target: Callable[[str], bool]

    def affected(self, impact_type: ImpactKind, description: str, line: Optional[int] = None) -> AffectedNode:
        return AffectedNode(
            node_id=self.dependent.node_id,
            node_name=self.dependent.name,
            path=self.dependent.path,
            impact_type=impact_type,
            description=description,
            line=line,
        )

    def breaking(self, line: int, reason: str) -> BreakingChange:
        return BreakingChange(
            node_id=self.dependent.node_id,
            path=self.dependent.path,
            line=line,
            current_code=self.lines[line - 1],
            reason=reason,
        )

    def fix(self, line: int, description: str, new_code: str, auto_fixable: bool) -> SuggestedFix:
        return SuggestedFix(
            node_id=self.dependent.node_id,
            path=self.dependent.path,
            line=line,
            description=description,
            old_code=self.lines[line - 1],
            new_code=new_code,
            auto_fixable=auto_fixable,
        )


# ===================================================================
# Per-change handlers
# ===================================================================

def _rename(ctx: _Context) -> _NodeImpact:
    old_name = ctx.change.before.name
    new_name = ctx.change.after.name
    result = _NodeImpact()
    for number, line in enumerate(ctx.lines, start=1):
        new_line = rename_identifier(line, old_name, new_name)
        if new_line is not None:
            result.fixes.append(ctx.fix(number, f"Rename {old_name} to {new_name}", new_line, True))
    if result.fixes:
        result.affected = ctx.affected(
            ImpactKind.UPDATE_IMPORT,
            f"{len(result.fixes)} reference(s) to {old_name} need updating",
            result.fixes[0].line,
        )
    return result


def _add_field(ctx: _Context) -> _NodeImpact:
    field_name = ctx.change.after.name
    field_type = ctx.change.after.type or "unknown"
    type_names = [ctx.target.name] + [
        e.name for e in ctx.target.exports
        if e.kind in (ExportKind.INTERFACE, ExportKind.TYPE) and e.name != ctx.target.name
    ]
    pattern = re.compile(r":\s*(" + "|".join(re.escape(n) for n in type_names) + r")\s*=\s*\{")
    result = _NodeImpact()
    for number, line in enumerate(ctx.lines, start=1):
        match = pattern.search(line)
        if match:
            result.fixes.append(ctx.fix(
                number,
                f"Consider adding {field_name}: {field_type} to {match.group(1)} object",
                line,
                False,
            ))
    if result.fixes:
        result.affected = ctx.affected(
            ImpactKind.MISSING_FIELD,
            f"May need to add {field_name} to {ctx.target.name} usages",
            result.fixes[0].line,
        )
    return result


def _remove_field(ctx: _Context) -> _NodeImpact:
    field_name = ctx.change.before.name
    access = property_access_re(field_name)
    bare = re.compile(rf"(?<![.\w$]){re.escape(field_name)}(?![\w$])")
    result = _NodeImpact()
    for number, line in enumerate(ctx.lines, start=1):
        if access.search(line):
            result.breaking.append(ctx.breaking(number, f"Uses removed field .{field_name}"))
            result.fixes.append(ctx.fix(number, f"Remove usage of .{field_name}", access.sub("", line), True))
        for block in _BINDING_BLOCK_RE.finditer(line):
            body = block.group("decl") if block.group("decl") is not None else block.group("param")
            if bare.search(body):
                result.breaking.append(ctx.breaking(number, f"Destructures removed field {field_name}"))
                break
    if result.breaking:
        result.affected = ctx.affected(
            ImpactKind.BREAKING,
            f"{len(result.breaking)} usage(s) of removed field {field_name}",
            result.breaking[0].line,
        )
    return result


def _change_type(ctx: _Context) -> _NodeImpact:
    field_name = ctx.change.before.name
    old_type = ctx.change.before.type or ""
    new_type = (ctx.change.after.type if ctx.change.after else None) or ""
    access = property_access_re(field_name)
    result = _NodeImpact()
    usages = 0
    for number, line in enumerate(ctx.lines, start=1):
        if not access.search(line):
            continue
        usages += 1
        if might_conflict(line, old_type, new_type):
            result.breaking.append(ctx.breaking(
                number, f"Type change: {field_name} changed from {old_type} to {new_type}",
            ))
            description = f"Update usage for new type {new_type}"
        else:
            description = f"Check usage of {field_name} against new type {new_type}"
        result.fixes.append(ctx.fix(number, description, line, False))
    if result.breaking:
        description = f"{len(result.breaking)} potential type conflict(s)"
    else:
        description = f"Uses {field_name} which changed from {old_type} to {new_type}"
    if usages:
        result.affected = ctx.affected(ImpactKind.TYPE_MISMATCH, description, result.fixes[0].line)
    return result


def _delete(ctx: _Context) -> _NodeImpact:
    result = _NodeImpact()
    name = ctx.target.name
    for first, last, source, statement in import_statements(ctx.text):
        if not ctx.resolves_to_target(source):
            continue
        result.breaking.append(ctx.breaking(first, f"Imports deleted module {name}"))
        line = ctx.lines[first - 1].strip()
        single = first == last and line.rstrip(";").strip() == statement.rstrip(";").strip()
        if single:
            result.fixes.append(ctx.fix(first, f"Remove import of deleted {name}", "", True))
        else:
            result.fixes.append(ctx.fix(
                first, f"Remove import of deleted {name} (lines {first}-{last}) by hand", "", False,
            ))
    if result.breaking:
        result.affected = ctx.affected(ImpactKind.BREAKING, f"Imports deleted {name}", result.breaking[0].line)
    return result


_HANDLERS: Dict[ChangeKind, Callable[[_Context], _NodeImpact]] = {
    ChangeKind.RENAME: _rename,
    ChangeKind.ADD_FIELD: _add_field,
    ChangeKind.REMOVE_FIELD: _remove_field,
    ChangeKind.CHANGE_TYPE: _change_type,
    ChangeKind.DELETE: _delete,
}
require_exhaustive(_HANDLERS, ChangeKind, "_HANDLERS")


# ===================================================================
# Analyzer
# ===================================================================

class ImpactAnalyzer:
    """Predicts which dependents break for a ChangeDescriptor."""

    def __init__(self, graph: DependencyGraph, project_root: Path) -> None:
        self.graph = graph
        self.project_root = Path(project_root)

    def analyze_impact(self, change: Union[ChangeDescriptor, Mapping[str, Any]]) -> ImpactReport:
        """Build an ImpactReport for *change*.

        Raises:
            NodeNotFoundError: The target id is not in the graph.
            InvalidChangeError: The descriptor lacks data its change type needs.
        """
        if not isinstance(change, ChangeDescriptor):
            change = ChangeDescriptor.from_dict(change)
        target = self.graph.get_node(change.node_id)
        change = self._validate(change, target)

        report = ImpactReport(target_node=target.node_id, change=change)
        dependents = self.graph.dependents(target.node_id)
        for dependent_id in dependents:
            dependent = self.graph.nodes[dependent_id]
            text = self._read(dependent)
            if text is None:
                continue
            ctx = _Context(
                dependent=dependent,
                target=target,
                change=change,
                lines=text.split("\n"),
                text=text,
                resolves_to_target=self._resolver(dependent, target),
            )
            impact = _HANDLERS[change.change_type](ctx)
            if impact.affected is not None:
                report.direct_impact.append(impact.affected)
            report.breaking_changes.extend(impact.breaking)
            report.suggested_fixes.extend(impact.fixes)

        visited = {target.node_id, *dependents}
        for dependent_id in dependents:
            via = self.graph.nodes[dependent_id]
            for second_id in self.graph.dependents(dependent_id):
                if second_id in visited:
                    continue
                visited.add(second_id)
                second = self.graph.nodes[second_id]
                report.transitive_impact.append(AffectedNode(
                    node_id=second.node_id,
                    node_name=second.name,
                    path=second.path,
                    impact_type=ImpactKind.UPDATE_USAGE,
                    description=f"Transitively affected through {via.name}",
                ))

        report.risk_level = calculate_risk(
            len(report.direct_impact), len(report.breaking_changes), change.change_type,
        )
        logger.info(
            "Impact of %s on %s: %d direct, %d transitive, %d breaking, risk %s",
            change.change_type.value, target.node_id, len(report.direct_impact),
            len(report.transitive_impact), len(report.breaking_changes), report.risk_level.value,
        )
        return report

    def rename_patches(self, node_id: str, old_name: str, new_name: str) -> List[Patch]:
        """Shortcut: auto-fixable patches for renaming *old_name* across dependents."""
        report = self.analyze_impact(ChangeDescriptor(
            node_id=node_id, change_type=ChangeKind.RENAME, before=old_name, after=new_name,
        ))
        return report.to_patches()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _validate(change: ChangeDescriptor, target: CodeNode) -> ChangeDescriptor:
        kind = change.change_type
        if kind == ChangeKind.RENAME:
            if change.after is None or not change.after.name:
                raise InvalidChangeError("rename requires after.name (the new identifier)")
            if change.before is None or not change.before.name:
                raise InvalidChangeError("rename requires before.name (the identifier being renamed)")
            if change.before.name == change.after.name:
                raise InvalidChangeError(f"rename of {change.before.name} to itself changes nothing")
        elif kind == ChangeKind.ADD_FIELD:
            if change.after is None or not change.after.name:
                raise InvalidChangeError("add-field requires after.name (the new field)")
        elif kind in (ChangeKind.REMOVE_FIELD, ChangeKind.CHANGE_TYPE):
            if change.before is None or not change.before.name:
                raise InvalidChangeError(f"{kind.value} requires before.name (the field)")
        return change

    def _resolver(self, dependent: CodeNode, target: CodeNode) -> Callable[[str], bool]:
        def resolves(source: str) -> bool:
            return self.graph.resolve_import(source, dependent.path) == target.node_id
        return resolves

    def _read(self, node: CodeNode) -> Optional[str]:
        path = self.project_root / node.path
        try:
            with open(path, "r", encoding="utf-8", newline="") as f:
                return f.read()
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("Skipping %s during impact analysis: %s", node.path, exc)
            return None

