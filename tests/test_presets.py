"""Tests for saved edit presets."""

import json

import pytest

from photoedit.model.edit_state import EditState
from photoedit.processing.edit_presets import EditPreset, EditPresetManager


class TestEditPresetManager:
    """Save, load and delete named edits."""

    @pytest.fixture
    def presets_file(self, tmp_path):
        return str(tmp_path / "presets" / "edit_presets.json")

    @pytest.fixture
    def manager(self, presets_file):
        return EditPresetManager(presets_file)

    def test_manager_initialization(self, manager):
        assert manager.list_presets() == []

    def test_add_and_get(self, manager, full_edit):
        ok, preset_id = manager.add_preset("Warm Film", full_edit)
        assert ok
        assert preset_id == "warm_film"

        preset = manager.get_preset(preset_id)
        assert isinstance(preset, EditPreset)
        assert preset.name == "Warm Film"
        assert preset.to_edit_state() == full_edit
        assert manager.get_edit_state(preset_id) == full_edit

    def test_add_from_dict_is_clamped(self, manager):
        ok, preset_id = manager.add_preset("Hot", {"exposure": 9, "filters": ["sepia"]})
        assert ok
        state = manager.get_edit_state(preset_id)
        assert state.exposure == 1.0
        assert state.filters == frozenset({"sepia"})

    def test_persisted_to_disk(self, manager, presets_file, full_edit):
        manager.add_preset("Look", full_edit)

        with open(presets_file, encoding="utf-8") as f:
            data = json.load(f)
        assert data[0]["id"] == "look"
        assert data[0]["edits"] == full_edit.to_dict()

        reloaded = EditPresetManager(presets_file)
        assert reloaded.get_edit_state("look") == full_edit

    def test_duplicate_rejected(self, manager):
        manager.add_preset("Look", EditState(contrast=0.1))
        ok, message = manager.add_preset("Look", EditState(contrast=0.5))
        assert not ok
        assert "already exists" in message
        assert manager.get_edit_state("look").contrast == pytest.approx(0.1)

    def test_overwrite(self, manager):
        manager.add_preset("Look", EditState(contrast=0.1))
        ok, _ = manager.add_preset("Look", EditState(contrast=0.5), overwrite=True)
        assert ok
        assert manager.get_edit_state("look").contrast == pytest.approx(0.5)

    def test_explicit_id(self, manager):
        ok, preset_id = manager.add_preset("Any Name", EditState(), preset_id="custom-id")
        assert ok
        assert preset_id == "custom-id"

    def test_invalid_edit_type(self, manager):
        ok, message = manager.add_preset("Bad", [1, 2, 3])
        assert not ok
        assert "EditState" in message

    def test_list_sorted_by_name(self, manager):
        manager.add_preset("Zeta", EditState())
        manager.add_preset("Alpha", EditState())
        assert [p["name"] for p in manager.list_presets()] == ["Alpha", "Zeta"]

    def test_delete(self, manager):
        manager.add_preset("Gone", EditState())
        assert manager.delete_preset("gone")
        assert manager.get_preset("gone") is None
        assert not manager.delete_preset("gone")

    def test_invalid_preset_id(self, manager):
        assert manager.get_preset("nonexistent") is None
        assert manager.get_edit_state("nonexistent") is None


class TestPresetFiles:
    """Malformed preset files are tolerated."""

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "presets.json"
        path.write_text("{not json", encoding="utf-8")
        assert EditPresetManager(str(path)).list_presets() == []

    def test_not_a_list(self, tmp_path):
        path = tmp_path / "presets.json"
        path.write_text(json.dumps({"id": "x"}), encoding="utf-8")
        assert EditPresetManager(str(path)).list_presets() == []

    def test_invalid_entries_skipped(self, tmp_path):
        path = tmp_path / "presets.json"
        path.write_text(json.dumps([
            {"id": "ok", "name": "Fine", "edits": {"vibrance": 0.4}},
            {"id": "", "name": "No id", "edits": {}},
            {"id": "no_edits", "name": "No edits"},
            "not a dict",
        ]), encoding="utf-8")

        manager = EditPresetManager(str(path))
        assert [p["id"] for p in manager.list_presets()] == ["ok"]
        assert manager.get_edit_state("ok").vibrance == pytest.approx(0.4)
