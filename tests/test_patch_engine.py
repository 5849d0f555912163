"""Tests for PatchEngine apply, preview, drift handling and rollback."""

from pathlib import Path

import pytest

from codemap_cli.models import Patch, PatchOperation
from codemap_cli.patch_engine import PatchEngine, create_diff, find_matching_line


@pytest.fixture
def project(make_project) -> Path:
    return make_project({
        "a.ts": "line1\nline2\nline3\nline4\n",
        "crlf.ts": "one\r\ntwo\r\nthree\r\n",
    })


def _patch(patch_id: str, line: int, old: str, new: str, path: str = "a.ts") -> Patch:
    return Patch(patch_id=patch_id, path=path, line=line, old_code=old, new_code=new, description=patch_id)


class TestApply:
    """Tests for apply_patches."""

    def test_replace(self, project: Path):
        engine = PatchEngine(project)
        result = engine.apply_patches([_patch("p1", 2, "line2", "LINE2")])

        assert result.success
        assert result.files_modified == ["a.ts"]
        assert (project / "a.ts").read_text() == "line1\nLINE2\nline3\nline4\n"
        assert [p.patch_id for p in engine.get_history()] == ["p1"]

    def test_caller_patch_not_mutated(self, project: Path):
        patch = _patch("p1", 2, "line2", "LINE2")
        result = PatchEngine(project).apply_patches([patch])

        assert patch.applied is False
        assert result.patches_applied[0].applied is True

    def test_delete_removes_line(self, project: Path):
        patch = _patch("p1", 3, "line3", "")
        assert patch.operation == PatchOperation.DELETE

        PatchEngine(project).apply_patches([patch])
        assert (project / "a.ts").read_text() == "line1\nline2\nline4\n"

    def test_double_apply_reports_drift(self, project: Path):
        engine = PatchEngine(project)
        patch = _patch("p1", 2, "line2", "LINE2")
        engine.apply_patches([patch])
        result = engine.apply_patches([patch])

        assert not result.success
        assert result.patches_applied == []
        assert "Code has changed" in result.patches_failed[0].error
        assert (project / "a.ts").read_text() == "line1\nLINE2\nline3\nline4\n"

    def test_drift_within_window(self, project: Path):
        (project / "a.ts").write_text("new1\nnew2\nline1\nline2\nline3\nline4\n")
        result = PatchEngine(project).apply_patches([_patch("p1", 2, "line2", "LINE2")])

        assert result.success
        assert result.patches_applied[0].line == 4
        assert "LINE2" in (project / "a.ts").read_text()

    def test_drift_outside_window(self, project: Path):
        (project / "a.ts").write_text("x\n" * 10 + "line2\n")
        result = PatchEngine(project, drift_window=2).apply_patches([_patch("p1", 2, "line2", "LINE2")])
        assert not result.success

    def test_patches_in_one_file_apply_bottom_up(self, project: Path):
        result = PatchEngine(project).apply_patches([
            _patch("del1", 1, "line1", ""),
            _patch("rep3", 3, "line3", "LINE3"),
        ])

        assert result.success
        assert (project / "a.ts").read_text() == "line2\nLINE3\nline4\n"

    def test_missing_file(self, project: Path):
        result = PatchEngine(project).apply_patches([_patch("p1", 1, "x", "y", path="nope.ts")])

        assert not result.success
        assert result.errors == ["File not found: nope.ts"]
        assert result.patches_failed[0].patch_id == "p1"

    def test_line_out_of_range(self, project: Path):
        result = PatchEngine(project).apply_patches([_patch("p1", 99, "line2", "LINE2")])
        assert "out of range" in result.patches_failed[0].error

    def test_crlf_preserved(self, project: Path):
        PatchEngine(project).apply_patches([_patch("p1", 2, "two", "TWO", path="crlf.ts")])
        assert (project / "crlf.ts").read_bytes() == b"one\r\nTWO\r\nthree\r\n"

    def test_history_is_bounded(self, project: Path):
        engine = PatchEngine(project, history_limit=2)
        engine.apply_patches([
            _patch("p1", 1, "line1", "L1"),
            _patch("p2", 2, "line2", "L2"),
            _patch("p3", 3, "line3", "L3"),
        ])
        # Applied bottom-up, so p1 was recorded last
        assert [p.patch_id for p in engine.get_history()] == ["p2", "p1"]


class TestPreview:
    """Tests for preview."""

    def test_preview_does_not_write(self, project: Path):
        engine = PatchEngine(project)
        diff = engine.preview([_patch("p1", 2, "line2", "LINE2")])

        assert "-line2" in diff
        assert "+LINE2" in diff
        assert "a/a.ts" in diff
        assert (project / "a.ts").read_text() == "line1\nline2\nline3\nline4\n"
        assert engine.get_history() == []

    def test_preview_reports_failures(self, project: Path):
        diff = PatchEngine(project).preview([_patch("p1", 2, "nothing here", "x")])
        assert diff.startswith("# p1 would fail")


class TestRollback:
    """Tests for rollback."""

    def test_full_rollback_restores_bytes(self, project: Path):
        original_a = (project / "a.ts").read_bytes()
        original_crlf = (project / "crlf.ts").read_bytes()
        engine = PatchEngine(project)
        engine.apply_patches([
            _patch("rep2", 2, "line2", "LINE2"),
            _patch("del4", 4, "line4", ""),
            _patch("crlf", 3, "three", "THREE", path="crlf.ts"),
        ])
        result = engine.rollback()

        assert result.success
        assert (project / "a.ts").read_bytes() == original_a
        assert (project / "crlf.ts").read_bytes() == original_crlf
        assert engine.get_history() == []

    def test_rollback_selected_ids(self, project: Path):
        engine = PatchEngine(project)
        engine.apply_patches([_patch("p1", 1, "line1", "L1"), _patch("p2", 2, "line2", "L2")])
        result = engine.rollback(["p2"])

        assert result.success
        assert (project / "a.ts").read_text() == "L1\nline2\nline3\nline4\n"
        assert [p.patch_id for p in engine.get_history()] == ["p1"]

    def test_empty_id_list_rolls_back_everything(self, project: Path):
        original = (project / "a.ts").read_bytes()
        engine = PatchEngine(project)
        engine.apply_patches([_patch("p1", 1, "line1", "L1")])
        result = engine.rollback([])

        assert result.success
        assert (project / "a.ts").read_bytes() == original
        assert engine.get_history() == []

    def test_delete_records_neighbours(self, project: Path):
        engine = PatchEngine(project)
        engine.apply_patches([_patch("d", 2, "line2", "")])
        applied = engine.get_history()[0]

        assert (applied.context_before, applied.context_after) == ("line1", "line3")
        assert applied.inverse().context_after == "line3"

    def test_selected_delete_after_later_delete_fails_with_drift(self, make_project):
        root = make_project({"a.ts": "l1\nl2\nl3\nl4\nl5\n"})
        engine = PatchEngine(root)
        engine.apply_patches([_patch("d", 2, "l2", ""), _patch("r", 4, "l4", "L4")])
        engine.apply_patches([_patch("top", 1, "l1", "")])

        result = engine.rollback(["d"])

        assert not result.success
        assert "Code has changed" in result.patches_failed[0].error
        assert (root / "a.ts").read_text() == "l3\nL4\nl5\n"
        assert [p.patch_id for p in engine.get_history()] == ["r", "d", "top"]

        assert engine.rollback().success
        assert (root / "a.ts").read_text() == "l1\nl2\nl3\nl4\nl5\n"

    def test_selected_delete_re_anchors_after_shift(self, make_project):
        root = make_project({"a.ts": "l1\nl2\nl3\nl4\nl5\n"})
        engine = PatchEngine(root)
        engine.apply_patches([_patch("d", 4, "l4", "")])
        engine.apply_patches([_patch("top", 1, "l1", "")])

        result = engine.rollback(["d"])

        assert result.success
        assert result.patches_applied[0].line == 3
        assert (root / "a.ts").read_text() == "l2\nl3\nl4\nl5\n"
        assert [p.patch_id for p in engine.get_history()] == ["top"]

    def test_unknown_id(self, project: Path):
        engine = PatchEngine(project)
        result = engine.rollback(["ghost"])

        assert not result.success
        assert result.errors == ["Patch not found in history: ghost"]

    def test_partial_failure_keeps_history(self, project: Path):
        engine = PatchEngine(project)
        engine.apply_patches([_patch("p1", 2, "line2", "LINE2")])
        (project / "a.ts").write_text("rewritten\nby\nhand\n")
        result = engine.rollback()

        assert not result.success
        assert any("Rollback incomplete" in e for e in result.errors)
        assert [p.patch_id for p in engine.get_history()] == ["p1"]

    def test_inverse_of_delete_is_insert(self):
        inverse = _patch("d", 3, "line3", "").inverse()

        assert inverse.operation == PatchOperation.INSERT
        assert inverse.patch_id == "rollback-d"
        assert inverse.new_code == "line3"
        assert inverse.inverse().operation == PatchOperation.DELETE


class TestHelpers:
    """Tests for module-level helpers."""

    def test_find_matching_line_prefers_nearest(self):
        lines = ["x", "target", "y", "z", "target"]
        assert find_matching_line(lines, "target", 4, 5) == 4
        assert find_matching_line(lines, "target", 3, 5) == 1
        assert find_matching_line(lines, "missing", 3, 5) == -1

    def test_create_diff(self):
        diff = create_diff("a\nb\n", "a\nc\n", "f.ts")
        assert "--- a/f.ts" in diff
        assert "+c" in diff
