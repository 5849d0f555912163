"""Typer-based CLI for CodeMap dependency and impact analysis."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from . import __version__
from .cli_health import health_dashboard
from .cli_patch import patch_app, print_apply_result
from .config_manager import load_settings, save_setting
from .errors import CodeMapError, ConfigError, InvalidChangeError, NodeNotFoundError
from .graph_export import export_dot, export_json
from .models import ChangeDescriptor, ChangeKind, ImpactReport, NodeKind, RiskLevel, ValueDescriptor
from .orchestrator import AnalysisOrchestrator, open_session

console = Console()

app = typer.Typer(
    help="🗺️ CodeMap CLI — dependency graph, coherence and change impact for JS/TS projects.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)
config_app = typer.Typer(help="⚙️ Show and edit analysis settings")

app.add_typer(patch_app, name="patch")
app.add_typer(config_app, name="config")
app.command("health")(health_dashboard)

RISK_COLORS = {
    RiskLevel.LOW: "green",
    RiskLevel.MEDIUM: "yellow",
    RiskLevel.HIGH: "red",
    RiskLevel.CRITICAL: "bold red",
}
SEVERITY_COLORS = {
    "critical": "bold red",
    "high": "red",
    "medium": "yellow",
    "low": "cyan",
    "info": "dim",
}


def version_callback(value: bool):
    """Print version and exit."""
    if value:
        typer.echo(f"CodeMap CLI v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(False, "--verbose", help="Log debug output to stderr."),
):
    """CodeMap CLI: see what a change breaks before you make it."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def _session(root: Path, persist_history: bool = False) -> AnalysisOrchestrator:
    try:
        return open_session(root, persist_history=persist_history)
    except ConfigError as exc:
        raise typer.BadParameter(str(exc)) from exc


def _analyzed(root: Path, persist_history: bool = False) -> AnalysisOrchestrator:
    session = _session(root, persist_history)
    try:
        session.analyze()
    except CodeMapError as exc:
        console.print(f"[red]✗[/red] {exc}")
        raise typer.Exit(1) from exc
    return session


ROOT_ARGUMENT = typer.Argument(Path("."), exists=True, file_okay=False, help="Project root.")


@app.command("analyze")
def analyze(
    root: Path = ROOT_ARGUMENT,
    as_json: bool = typer.Option(False, "--json", help="Print the full analysis as JSON."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Also write the JSON to this file."),
):
    """Build the dependency graph and report coherence issues."""
    session = _analyzed(root)
    result = session.result
    session.state.save_report(result)
    if output:
        export_json(result, output)
        if not as_json:
            console.print(f"[dim]Wrote {output}[/dim]")

    if as_json:
        typer.echo(json.dumps(result.to_dict(), indent=2, ensure_ascii=False))
        return

    meta = result.metadata
    color = "green" if meta.coherence_score >= 80 else "yellow" if meta.coherence_score >= 60 else "red"
    console.print(Panel.fit(
        f"[bold {color}]{meta.coherence_score}/100[/bold {color}]\n"
        f"{meta.total_files} files · {meta.total_nodes} nodes · {meta.total_edges} edges",
        title=f"[bold]{meta.project_name}[/bold]",
        border_style=color,
    ))

    if session.scanner.errors:
        console.print(f"[yellow]⚠ {len(session.scanner.errors)} file(s) could not be scanned[/yellow]")
        for error in session.scanner.errors:
            console.print(f"  [dim]{error}[/dim]")

    if not meta.issues:
        console.print("[green]✓ No coherence issues found.[/green]")
        return

    table = Table(title="Coherence Issues", show_header=True)
    table.add_column("Severity", width=10)
    table.add_column("Type", style="cyan")
    table.add_column("Message")
    for issue in meta.issues:
        sev = issue.severity.value
        table.add_row(f"[{SEVERITY_COLORS[sev]}]{sev}[/{SEVERITY_COLORS[sev]}]", issue.kind.value, issue.message)
    console.print(table)


@app.command("nodes")
def list_nodes(
    root: Path = ROOT_ARGUMENT,
    kind: Optional[str] = typer.Option(None, "--kind", "-k", help="Only show nodes of this kind."),
):
    """List graph nodes."""
    wanted = None
    if kind:
        try:
            wanted = NodeKind(kind)
        except ValueError:
            raise typer.BadParameter(
                f"Unknown kind '{kind}'. Choose from: {', '.join(k.value for k in NodeKind)}"
            ) from None
    session = _analyzed(root)

    table = Table(show_header=True)
    table.add_column("", width=2)
    table.add_column("ID", style="cyan")
    table.add_column("Kind")
    table.add_column("Path", style="dim")
    table.add_column("LOC", justify="right")
    table.add_column("Cx", justify="right")
    table.add_column("Deg", justify="right")
    shown = 0
    for node in session.result.nodes:
        if wanted and node.kind != wanted:
            continue
        shown += 1
        table.add_row(
            node.style.icon, node.node_id, node.kind.value, node.path,
            str(node.lines_of_code), str(node.complexity), str(session.graph.degree(node.node_id)),
        )
    console.print(table)
    console.print(f"[dim]{shown} node(s)[/dim]")


@app.command("deps")
def deps(
    node_id: str = typer.Argument(..., help="Node id (see 'cmap nodes')."),
    root: Path = ROOT_ARGUMENT,
):
    """Show what a node depends on and what depends on it."""
    session = _analyzed(root)
    graph = session.graph
    try:
        node = graph.get_node(node_id)
    except NodeNotFoundError as exc:
        raise typer.BadParameter(str(exc)) from exc

    console.print(f"[bold]{node.style.icon} {node.name}[/bold] [dim]({node.kind.value}, {node.path})[/dim]")
    console.print("\n[bold]Depends on:[/bold]")
    for edge in graph.outgoing_edges(node_id):
        console.print(f"  → {edge.target} [dim]{edge.kind.value} {edge.label}[/dim]")
    if not graph.outgoing_edges(node_id):
        console.print("  [dim](nothing)[/dim]")
    console.print("\n[bold]Used by:[/bold]")
    for edge in graph.incoming_edges(node_id):
        console.print(f"  ← {edge.source} [dim]{edge.kind.value} {edge.label}[/dim]")
    if not graph.incoming_edges(node_id):
        console.print("  [dim](nothing)[/dim]")


@app.command("locate")
def locate(
    node_id: str = typer.Argument(..., help="Node id."),
    root: Path = ROOT_ARGUMENT,
):
    """Print path:line for a node, for editors to open."""
    session = _analyzed(root)
    try:
        typer.echo(str(session.locate(node_id)))
    except NodeNotFoundError as exc:
        raise typer.BadParameter(str(exc)) from exc


def _print_report(report: ImpactReport) -> None:
    color = RISK_COLORS[report.risk_level]
    console.print(Panel.fit(
        f"Risk: [{color}]{report.risk_level.value.upper()}[/{color}]\n"
        f"Direct: {len(report.direct_impact)} · Transitive: {len(report.transitive_impact)} · "
        f"Breaking: {len(report.breaking_changes)} · Fixes: {len(report.suggested_fixes)}",
        title=f"[bold]{report.change.change_type.value} {report.target_node}[/bold]",
        border_style=color,
    ))

    if report.direct_impact:
        table = Table(title="Directly affected", show_header=True)
        table.add_column("Node", style="cyan")
        table.add_column("Impact")
        table.add_column("Description")
        for affected in report.direct_impact:
            table.add_row(affected.path, affected.impact_type.value, affected.description)
        console.print(table)

    if report.breaking_changes:
        table = Table(title="Breaking changes", show_header=True)
        table.add_column("Location", style="red")
        table.add_column("Code")
        table.add_column("Reason")
        for brk in report.breaking_changes:
            table.add_row(f"{brk.path}:{brk.line}", brk.current_code.strip(), brk.reason)
        console.print(table)

    if report.suggested_fixes:
        table = Table(title="Suggested fixes", show_header=True)
        table.add_column("Location", style="cyan")
        table.add_column("Auto", width=4)
        table.add_column("Change")
        for fix in report.suggested_fixes:
            if fix.new_code == "":
                change = f"[red]- {fix.old_code.strip()}[/red]"
            elif fix.new_code != fix.old_code:
                change = f"[red]- {fix.old_code.strip()}[/red]\n[green]+ {fix.new_code.strip()}[/green]"
            else:
                change = fix.description
            table.add_row(f"{fix.path}:{fix.line}", "✓" if fix.auto_fixable else "—", change)
        console.print(table)

    if report.transitive_impact:
        console.print("\n[bold]Transitively affected:[/bold]")
        for affected in report.transitive_impact:
            console.print(f"  • {affected.path} [dim]{affected.description}[/dim]")


@app.command("impact")
def impact(
    node_id: str = typer.Argument(..., help="Target node id."),
    change_type: str = typer.Argument(..., help="rename | add-field | remove-field | change-type | delete"),
    before_name: Optional[str] = typer.Option(None, "--before-name", help="Old identifier or field name."),
    before_type: Optional[str] = typer.Option(None, "--before-type", help="Old field type."),
    after_name: Optional[str] = typer.Option(None, "--after-name", help="New identifier or field name."),
    after_type: Optional[str] = typer.Option(None, "--after-type", help="New field type."),
    root: Path = typer.Option(Path("."), "--root", "-r", exists=True, file_okay=False, help="Project root."),
    as_json: bool = typer.Option(False, "--json", help="Print the report as JSON."),
    apply: bool = typer.Option(False, "--apply", help="Apply auto-fixable patches."),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation."),
):
    """Predict what a change breaks; optionally apply the mechanical fixes."""
    try:
        kind = ChangeKind(change_type)
    except ValueError:
        raise typer.BadParameter(
            f"Unknown change type '{change_type}'. Choose from: {', '.join(k.value for k in ChangeKind)}"
        ) from None

    before = ValueDescriptor(before_name, before_type) if (before_name or before_type) else None
    after = ValueDescriptor(after_name, after_type) if (after_name or after_type) else None
    session = _analyzed(root, persist_history=apply)
    try:
        report = session.impact(ChangeDescriptor(node_id, kind, before=before, after=after))
    except (NodeNotFoundError, InvalidChangeError) as exc:
        raise typer.BadParameter(str(exc)) from exc

    if as_json:
        typer.echo(json.dumps(report.to_dict(), indent=2, ensure_ascii=False))
    else:
        _print_report(report)

    if not apply:
        return
    patches = report.to_patches()
    if not patches:
        console.print("[yellow]No auto-fixable patches to apply.[/yellow]")
        return
    if report.requires_confirmation:
        console.print("[bold red]⚠ This change carries CRITICAL risk.[/bold red]")
    if not yes and not typer.confirm(f"\n❓ Apply {len(patches)} patch(es)?", default=False):
        console.print("[dim]Cancelled.[/dim]")
        return
    result = session.apply(patches)
    print_apply_result(result)
    if not result.success:
        raise typer.Exit(1)


@app.command("export")
def export(
    root: Path = ROOT_ARGUMENT,
    fmt: str = typer.Option("json", "--format", "-f", help="json | dot"),
    output: Path = typer.Option(..., "--output", "-o", help="Output file."),
    focus: str = typer.Option("", "--focus", help="Only nodes matching this text and their neighbours (dot)."),
):
    """Export the analysed graph."""
    fmt = fmt.lower()
    if fmt not in ("json", "dot"):
        raise typer.BadParameter("Format must be 'json' or 'dot'.")
    session = _analyzed(root)
    if fmt == "json":
        export_json(session.result, output)
    else:
        export_dot(session.result, output, focus=focus)
    typer.echo(f"Exported {fmt} graph to {output}")


@config_app.command("show")
def config_show():
    """Show effective analysis settings."""
    try:
        settings = load_settings()
    except ConfigError as exc:
        raise typer.BadParameter(str(exc)) from exc
    table = Table(show_header=True)
    table.add_column("Key", style="cyan")
    table.add_column("Value")
    for key, value in settings.to_dict().items():
        table.add_row(key, ", ".join(value) if isinstance(value, list) else str(value))
    console.print(table)


@config_app.command("set")
def config_set(
    key: str = typer.Argument(..., help="Setting name (see 'cmap config show')."),
    value: List[str] = typer.Argument(..., help="Value; lists may be comma separated."),
):
    """Persist one analysis setting to config.toml."""
    raw = value[0] if len(value) == 1 else value
    try:
        settings = save_setting(key, raw)
    except ConfigError as exc:
        raise typer.BadParameter(str(exc)) from exc
    shown = getattr(settings, key)
    if isinstance(shown, tuple):
        shown = ", ".join(shown)
    console.print(f"[green]✓[/green] {key} = {shown}")


if __name__ == "__main__":
    app()
