"""Project health dashboard for CodeMap CLI."""

from __future__ import annotations

from collections import Counter
from pathlib import Path
from typing import List

import typer
from rich.console import Console
from rich.panel import Panel
from rich.progress import BarColumn, Progress, TextColumn
from rich.table import Table

from .errors import CodeMapError, ConfigError
from .models import IssueKind, Severity
from .orchestrator import AnalysisOrchestrator, open_session

console = Console()

TOP_COUPLED = 5


def _render_bar(percentage: float) -> str:
    """Render a simple text progress bar."""
    filled = int(percentage / 10)
    empty = 10 - filled
    bar = "█" * filled + "░" * empty
    return f"[{_score_color(percentage)}]{bar}[/{_score_color(percentage)}] {percentage:.0f}%"


def _score_color(score: float) -> str:
    if score >= 80:
        return "green"
    elif score >= 60:
        return "yellow"
    return "red"


def _generate_recommendations(session: AnalysisOrchestrator) -> List[str]:
    """Generate actionable recommendations."""
    issues = session.result.metadata.issues
    by_kind = Counter(issue.kind for issue in issues)
    recs = []

    if by_kind[IssueKind.CIRCULAR_DEPENDENCY]:
        recs.append(
            f"Break {by_kind[IssueKind.CIRCULAR_DEPENDENCY]} circular dependenc(ies) by extracting "
            "shared code into its own module."
        )
    if by_kind[IssueKind.GOD_OBJECT]:
        recs.append(
            f"Split {by_kind[IssueKind.GOD_OBJECT]} highly coupled module(s). "
            "Run 'cmap deps <id>' to see who uses them."
        )
    if by_kind[IssueKind.ORPHANED_FILE]:
        recs.append(
            f"Review {by_kind[IssueKind.ORPHANED_FILE]} orphaned file(s); they may be dead code."
        )
    if by_kind[IssueKind.UNUSED_EXPORT]:
        recs.append(
            f"Remove or use {by_kind[IssueKind.UNUSED_EXPORT]} unused export(s). "
            "Run 'cmap impact <id> delete' before deleting anything."
        )

    if not recs:
        recs.append("No structural issues found. 🎉")

    return recs


def health_dashboard(
    root: Path = typer.Argument(Path("."), exists=True, file_okay=False, help="Project root."),
):
    """🏥 Project health dashboard.

    Shows the coherence score, issues per severity, the most coupled
    modules, and recommendations.

    Example:
      cmap health ./web
    """
    try:
        session = open_session(root)
    except ConfigError as exc:
        raise typer.BadParameter(str(exc)) from exc

    console.print(f"\n[bold cyan]🏥 Analyzing project health for '{session.project_root.name}'...[/bold cyan]\n")

    with Progress(
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        console=console,
    ) as progress:
        task = progress.add_task("[cyan]Scanning sources...", total=1)
        try:
            session.analyze()
        except CodeMapError as exc:
            console.print(f"[red]✗[/red] {exc}")
            raise typer.Exit(1) from exc
        progress.advance(task)

    meta = session.result.metadata
    graph = session.graph
    color = _score_color(meta.coherence_score)

    console.print(
        Panel.fit(
            f"[bold {color}]{meta.coherence_score}%[/bold {color}]",
            title="[bold]Coherence Score[/bold]",
            border_style=color,
        )
    )

    # ── Issues by severity ───────────────────────────────────
    counts = Counter(issue.severity for issue in meta.issues)
    table = Table(title="\nIssues", show_header=True, show_lines=False)
    table.add_column("Severity", style="cyan", width=10)
    table.add_column("Count", justify="right", width=6)
    for severity in Severity:
        table.add_row(severity.value, str(counts[severity]))
    console.print(table)

    # ── Most coupled modules ─────────────────────────────────
    ranked = sorted(graph.nodes.values(), key=lambda n: graph.degree(n.node_id), reverse=True)
    ranked = [n for n in ranked if graph.degree(n.node_id) > 0][:TOP_COUPLED]
    if ranked:
        top = max(graph.degree(n.node_id) for n in ranked)
        table = Table(title="\nMost Coupled", show_header=True)
        table.add_column("Node", style="cyan")
        table.add_column("In", justify="right")
        table.add_column("Out", justify="right")
        table.add_column("Share", width=24)
        for node in ranked:
            degree = graph.degree(node.node_id)
            table.add_row(
                f"{node.style.icon} {node.path}",
                str(len(graph.incoming_edges(node.node_id))),
                str(len(graph.outgoing_edges(node.node_id))),
                _render_bar(100 * degree / top),
            )
        console.print(table)

    console.print("\n[bold]Recommendations[/bold]")
    for rec in _generate_recommendations(session):
        console.print(f"  • {rec}")
