"""Patch application, preview and rollback commands for CodeMap CLI."""

from __future__ import annotations

import json
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.syntax import Syntax
from rich.table import Table

from .errors import ConfigError
from .models import Patch, PatchApplyResult
from .orchestrator import AnalysisOrchestrator, open_session

console = Console()

patch_app = typer.Typer(help="🩹 Apply, preview and roll back patches")

ROOT_OPTION = typer.Option(Path("."), "--root", "-r", exists=True, file_okay=False, help="Project root.")


def _session(root: Path) -> AnalysisOrchestrator:
    try:
        return open_session(root, persist_history=True)
    except ConfigError as exc:
        raise typer.BadParameter(str(exc)) from exc


def load_patch_file(patch_file: Path) -> List[Patch]:
    """Read patches from JSON: a list, an object with ``patches``, or an impact report."""
    try:
        payload = json.loads(patch_file.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise typer.BadParameter(f"Cannot read {patch_file}: {exc}") from exc

    if isinstance(payload, dict):
        if "patches" in payload:
            payload = payload["patches"]
        elif "suggestedFixes" in payload:
            prefix = payload.get("change", {}).get("changeType", "fix")
            payload = [
                {
                    "id": f"{prefix}-{fix['nodeId']}-{fix['line']}",
                    **fix,
                }
                for fix in payload["suggestedFixes"]
                if fix.get("autoFixable")
            ]
    if not isinstance(payload, list):
        raise typer.BadParameter(f"{patch_file} does not contain a list of patches")
    try:
        return [Patch.from_dict(entry) for entry in payload]
    except (KeyError, TypeError, ValueError) as exc:
        raise typer.BadParameter(f"Malformed patch in {patch_file}: {exc}") from exc


def print_apply_result(result: PatchApplyResult) -> None:
    if result.patches_applied:
        console.print(
            f"[green]✓ Applied {len(result.patches_applied)} patch(es) "
            f"to {len(result.files_modified)} file(s)[/green]"
        )
        for patch in result.patches_applied:
            console.print(f"  [dim]{patch.patch_id} → {patch.path}:{patch.line}[/dim]")
    for patch in result.patches_failed:
        console.print(f"[red]✗ {patch.patch_id}[/red] {patch.path}:{patch.line} — {patch.error}")
    for error in result.errors:
        console.print(f"[red]✗[/red] {error}")
    if not result.patches_applied and not result.patches_failed and not result.errors:
        console.print("[yellow]Nothing to do.[/yellow]")


@patch_app.command("apply")
def apply_patches(
    patch_file: Path = typer.Argument(..., exists=True, dir_okay=False, help="JSON file with patches."),
    root: Path = ROOT_OPTION,
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation."),
):
    """Apply patches from a JSON file.

    Example:
      cmap patch apply fixes.json --root ./web
    """
    patches = load_patch_file(patch_file)
    if not patches:
        console.print("[yellow]No patches in file.[/yellow]")
        return
    if not yes and not typer.confirm(f"❓ Apply {len(patches)} patch(es)?", default=False):
        console.print("[dim]Cancelled.[/dim]")
        return
    result = _session(root).apply(patches)
    print_apply_result(result)
    if not result.success:
        raise typer.Exit(1)


@patch_app.command("preview")
def preview_patches(
    patch_file: Path = typer.Argument(..., exists=True, dir_okay=False, help="JSON file with patches."),
    root: Path = ROOT_OPTION,
):
    """Show the unified diff a patch file would produce, without writing."""
    patches = load_patch_file(patch_file)
    diff = _session(root).preview(patches)
    if not diff:
        console.print("[yellow]No changes.[/yellow]")
        return
    console.print(Syntax(diff, "diff", theme="ansi_dark", word_wrap=True))


@patch_app.command("rollback")
def rollback(
    patch_ids: Optional[List[str]] = typer.Argument(None, help="History ids to revert (default: all)."),
    root: Path = ROOT_OPTION,
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation."),
):
    """Revert applied patches, newest first."""
    session = _session(root)
    history = session.history()
    if not history:
        console.print("[yellow]No patch history to roll back.[/yellow]")
        return
    count = len(patch_ids) if patch_ids else len(history)
    if not yes and not typer.confirm(f"❓ Roll back {count} patch(es)?", default=False):
        console.print("[dim]Cancelled.[/dim]")
        return
    result = session.rollback(patch_ids or None)
    print_apply_result(result)
    if not result.success:
        raise typer.Exit(1)


@patch_app.command("history")
def show_history(root: Path = ROOT_OPTION):
    """List applied patches that can be rolled back."""
    history = _session(root).history()
    if not history:
        console.print("[yellow]No patches applied yet.[/yellow]")
        return
    table = Table(title="Patch History", show_header=True)
    table.add_column("#", style="dim", width=4)
    table.add_column("ID", style="cyan")
    table.add_column("Location")
    table.add_column("Op", width=8)
    table.add_column("Description")
    for i, patch in enumerate(history, start=1):
        table.add_row(str(i), patch.patch_id, f"{patch.path}:{patch.line}", patch.operation.value, patch.description)
    console.print(table)


@patch_app.command("clear-history")
def clear_history(
    root: Path = ROOT_OPTION,
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation."),
):
    """Forget applied patches (files are not touched)."""
    session = _session(root)
    if not session.history():
        console.print("[yellow]No history to clear.[/yellow]")
        return
    if yes or typer.confirm("Clear all patch history?", default=False):
        session.clear_history()
        console.print("[green]✓ History cleared.[/green]")
    else:
        console.print("[dim]Cancelled.[/dim]")
