"""Tests for per-project state files."""

from pathlib import Path

from codemap_cli.models import Patch
from codemap_cli.storage import ProjectState


class TestPositions:
    """Tests for saved node positions."""

    def test_empty_by_default(self, temp_dir: Path):
        assert ProjectState(temp_dir).load_positions() == {}

    def test_save_merges(self, temp_dir: Path):
        state = ProjectState(temp_dir)
        state.save_positions({"a": {"x": 1, "y": 2}})
        merged = state.save_positions({"b": {"x": 3, "y": 4}})

        assert merged == {"a": {"x": 1.0, "y": 2.0}, "b": {"x": 3.0, "y": 4.0}}
        assert state.layout_path == temp_dir / ".codemap" / "layout.json"
        assert ProjectState(temp_dir).load_positions() == merged

    def test_corrupt_file_is_ignored(self, temp_dir: Path):
        state = ProjectState(temp_dir)
        state.state_dir.mkdir()
        state.layout_path.write_text("{not json")

        assert state.load_positions() == {}


class TestHistory:
    """Tests for persisted patch history."""

    def test_round_trip(self, temp_dir: Path):
        state = ProjectState(temp_dir)
        patch = Patch(patch_id="p1", path="a.ts", line=3, old_code="old\r", new_code="", applied=True)
        state.save_history([patch])
        loaded = state.load_history()

        assert loaded == [patch]

    def test_malformed_entries_dropped(self, temp_dir: Path):
        state = ProjectState(temp_dir)
        state.state_dir.mkdir()
        state.history_path.write_text('[{"id": "ok", "path": "a.ts", "line": 1}, {"path": "b.ts"}]')

        assert [p.patch_id for p in state.load_history()] == ["ok"]

    def test_clear(self, temp_dir: Path):
        state = ProjectState(temp_dir)
        state.save_history([Patch(patch_id="p1", path="a.ts", line=1, old_code="a", new_code="b")])
        state.clear_history()

        assert not state.history_path.exists()
        assert state.load_history() == []
        state.clear_history()
