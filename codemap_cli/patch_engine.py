"""PatchEngine for applying, previewing and rolling back single-line patches.

The engine is the only component that writes source files. Each file is
read whole, mutated in memory and written back. Line terminators are kept
as found so a full rollback restores every file byte for byte.
"""

from __future__ import annotations

import difflib
import logging
from collections import deque
from dataclasses import replace
from pathlib import Path
from typing import Deque, Dict, Iterable, List, Optional, Tuple

from .config import DEFAULT_DRIFT_WINDOW, DEFAULT_HISTORY_LIMIT
from .errors import FileMissingError, PatchDriftError, PatchRangeError, RollbackPartialFailure
from .models import Patch, PatchApplyResult, PatchOperation

logger = logging.getLogger(__name__)


def create_diff(original: str, modified: str, filename: str = "file") -> str:
    """Create unified diff between two versions.

    Args:
        original: Original content
        modified: Modified content
        filename: Name of file for diff header

    Returns:
        Unified diff string
    """
    diff = difflib.unified_diff(
        original.splitlines(),
        modified.splitlines(),
        fromfile=f"a/{filename}",
        tofile=f"b/{filename}",
        lineterm="",
    )
    return "\n".join(diff)


def find_matching_line(lines: List[str], target_code: str, expected_line: int, window: int) -> int:
    """Index of the nearest line whose trimmed text equals *target_code*, or -1.

    Offsets 0..window are tried in turn, checking above before below.
    """
    target = target_code.strip()
    expected = expected_line - 1
    for offset in range(window + 1):
        for index in (expected - offset, expected + offset):
            if 0 <= index < len(lines) and lines[index].strip() == target:
                return index
    return -1


def find_insertion_point(
    lines: List[str],
    before: Optional[str],
    after: Optional[str],
    expected_line: int,
    window: int,
) -> int:
    """Index at which a deleted line fits back between its old neighbours, or -1.

    A None neighbour means the line sat at that edge of the file. Offsets
    are tried nearest first, as in find_matching_line.
    """
    def fits(index: int) -> bool:
        if before is None:
            if index != 0:
                return False
        elif index == 0 or lines[index - 1].strip() != before.strip():
            return False
        if after is None:
            return index == len(lines)
        return index < len(lines) and lines[index].strip() == after.strip()

    expected = expected_line - 1
    for offset in range(window + 1):
        for index in (expected - offset, expected + offset):
            if 0 <= index <= len(lines) and fits(index):
                return index
    return -1


class PatchEngine:
    """Applies patches under one project root and keeps their history."""

    def __init__(
        self,
        project_root: Path,
        drift_window: int = DEFAULT_DRIFT_WINDOW,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
    ) -> None:
        self.project_root = Path(project_root)
        self.drift_window = drift_window
        self.history_limit = history_limit
        self._history: Deque[Patch] = deque(maxlen=history_limit)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def apply_patches(self, patches: Iterable[Patch]) -> PatchApplyResult:
        """Apply *patches*; within each file they run in descending line order.

        The caller's Patch objects are never modified. Applied copies carry
        the line actually touched and the exact text before and after, and
        are appended to the history.
        """
        return self._apply(list(patches), ordered=False, record=True)

    def preview(self, patches: Iterable[Patch]) -> str:
        """Unified diff of what apply_patches would do, without writing."""
        diffs: Dict[str, Tuple[str, str]] = {}
        result = self._apply(list(patches), ordered=False, record=False, diffs=diffs)
        chunks = [create_diff(before, after, path) for path, (before, after) in diffs.items()]
        for patch in result.patches_failed:
            chunks.append(f"# {patch.patch_id} would fail: {patch.error}")
        return "\n".join(chunk for chunk in chunks if chunk)

    def rollback(self, patch_ids: Optional[Iterable[str]] = None) -> PatchApplyResult:
        """Revert the given history ids (all of them when None or empty).

        Inverses run in exact reverse application order. Only ids whose
        inverse applied are removed from the history.
        """
        errors: List[str] = []
        wanted = list(dict.fromkeys(patch_ids)) if patch_ids is not None else []
        if not wanted:
            chosen = list(self._history)
        else:
            known = {p.patch_id for p in self._history}
            for missing in (i for i in wanted if i not in known):
                errors.append(f"Patch not found in history: {missing}")
            chosen = [p for p in self._history if p.patch_id in wanted]

        chosen.reverse()
        inverses = [patch.inverse() for patch in chosen]
        pending: Dict[Tuple[str, str], List[Patch]] = {}
        for original, inverse in zip(chosen, inverses):
            pending.setdefault((inverse.patch_id, inverse.path), []).append(original)

        result = self._apply(inverses, ordered=True, record=False)

        reverted = set()
        for inverse in result.patches_applied:
            reverted.add(id(pending[(inverse.patch_id, inverse.path)].pop(0)))
        if reverted:
            self._history = deque(
                (p for p in self._history if id(p) not in reverted), maxlen=self.history_limit,
            )
        if result.patches_failed:
            failed_ids = [p.patch_id[len("rollback-"):] for p in result.patches_failed]
            errors.append(str(RollbackPartialFailure(failed_ids)))
            logger.warning("Rollback left %d patch(es) in history", len(failed_ids))

        result.errors = errors + result.errors
        result.success = not result.patches_failed and not result.errors
        return result

    def get_history(self) -> List[Patch]:
        return [replace(p) for p in self._history]

    def load_history(self, patches: Iterable[Patch]) -> None:
        """Replace the history, e.g. with entries persisted by a previous run."""
        self._history = deque(maxlen=self.history_limit)
        self._record(patches)

    def clear_history(self) -> None:
        self._history.clear()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _record(self, patches: Iterable[Patch]) -> None:
        for patch in patches:
            if self.history_limit and len(self._history) == self.history_limit:
                logger.info("Patch history full (%d); evicting %s", self.history_limit, self._history[0].patch_id)
            self._history.append(patch)

    def _apply(
        self,
        patches: List[Patch],
        ordered: bool,
        record: bool,
        diffs: Optional[Dict[str, Tuple[str, str]]] = None,
    ) -> PatchApplyResult:
        applied: List[Patch] = []
        failed: List[Patch] = []
        errors: List[str] = []
        files_modified: List[str] = []
        write = diffs is None

        by_file: Dict[str, List[Patch]] = {}
        for patch in patches:
            by_file.setdefault(patch.path, []).append(patch)

        for rel_path, file_patches in by_file.items():
            full_path = self.project_root / rel_path
            if not full_path.is_file():
                exc = FileMissingError(rel_path)
                errors.append(str(exc))
                failed.extend(replace(p, applied=False, error=str(exc)) for p in file_patches)
                continue
            try:
                with open(full_path, "r", encoding="utf-8", newline="") as f:
                    original = f.read()
            except (OSError, UnicodeDecodeError) as exc:
                errors.append(f"Error processing {rel_path}: {exc}")
                failed.extend(replace(p, applied=False, error=str(exc)) for p in file_patches)
                continue

            lines = original.split("\n")
            sequence = file_patches if ordered else sorted(file_patches, key=lambda p: p.line, reverse=True)
            done: List[Patch] = []
            for patch in sequence:
                try:
                    done.append(self._apply_one(lines, patch))
                except (PatchDriftError, PatchRangeError) as exc:
                    logger.warning("Patch %s failed: %s", patch.patch_id, exc)
                    failed.append(replace(patch, applied=False, error=str(exc)))
            if not done:
                continue

            modified = "\n".join(lines)
            if not write:
                diffs[rel_path] = (original, modified)
                applied.extend(done)
                continue
            try:
                with open(full_path, "w", encoding="utf-8", newline="") as f:
                    f.write(modified)
            except OSError as exc:
                errors.append(f"Error processing {rel_path}: {exc}")
                failed.extend(replace(p, applied=False, error=str(exc)) for p in done)
                continue
            applied.extend(done)
            files_modified.append(rel_path)
            logger.debug("Applied %d patch(es) to %s", len(done), rel_path)

        if record and write:
            self._record(applied)
        return PatchApplyResult(
            success=not failed and not errors,
            patches_applied=applied,
            patches_failed=failed,
            errors=errors,
            files_modified=files_modified,
        )

    def _apply_one(self, lines: List[str], patch: Patch) -> Patch:
        """Mutate *lines* for one patch and return the applied copy."""
        if patch.operation == PatchOperation.INSERT:
            index = patch.line - 1
            if not 0 <= index <= len(lines):
                raise PatchRangeError(patch.path, patch.line, len(lines))
            if patch.context_before is not None or patch.context_after is not None:
                index = find_insertion_point(
                    lines, patch.context_before, patch.context_after, patch.line, self.drift_window,
                )
                if index == -1:
                    anchor = patch.context_after if patch.context_after is not None else patch.context_before
                    raise PatchDriftError(patch.path, patch.line, anchor)
            lines.insert(index, patch.new_code)
            return replace(patch, line=index + 1, applied=True, error=None)

        index = patch.line - 1
        if not 0 <= index < len(lines):
            raise PatchRangeError(patch.path, patch.line, len(lines))
        if lines[index].strip() != patch.old_code.strip():
            index = find_matching_line(lines, patch.old_code, patch.line, self.drift_window)
            if index == -1:
                raise PatchDriftError(patch.path, patch.line, patch.old_code)
            logger.debug("Patch %s re-targeted from line %d to %d", patch.patch_id, patch.line, index + 1)

        current = lines[index]
        if patch.operation == PatchOperation.DELETE:
            del lines[index]
            return replace(
                patch,
                line=index + 1,
                old_code=current,
                applied=True,
                error=None,
                context_before=lines[index - 1] if index > 0 else None,
                context_after=lines[index] if index < len(lines) else None,
            )

        new_code = patch.new_code
        if current.endswith("\r") and not new_code.endswith("\r"):
            new_code += "\r"
        lines[index] = new_code
        return replace(patch, line=index + 1, old_code=current, new_code=new_code, applied=True, error=None)
