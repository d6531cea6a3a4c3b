from __future__ import annotations

import json
import os
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

import appdirs

from ..model.edit_state import EditState
from ..utils.logger import get_logger

logger = get_logger(__name__)

APP_NAME = "PhotoEdit"
APP_AUTHOR = "PhotoEdit"


@dataclass(frozen=True)
class EditPreset:
    """A named, saved EditState."""
    id: str
    name: str
    edits: Dict[str, Any]

    def to_edit_state(self) -> EditState:
        return EditState.from_dict(self.edits)


def _slugify(name: str) -> str:
    slug = name.strip().lower().replace(" ", "_").replace("-", "_")
    slug = "".join(ch for ch in slug if (ch.isalnum() or ch == "_"))
    return slug or "preset"


def _validate_edit_preset(preset: Any, source: str) -> Tuple[bool, Optional[dict]]:
    if not isinstance(preset, dict):
        logger.warning("Invalid edit preset from %s: expected dict", source)
        return False, None

    preset_id = preset.get("id")
    name = preset.get("name")
    edits = preset.get("edits")

    if not isinstance(preset_id, str) or not preset_id.strip():
        logger.warning("Invalid edit preset from %s: missing/invalid 'id'", source)
        return False, None
    if not isinstance(name, str) or not name.strip():
        logger.warning("Invalid edit preset '%s' from %s: missing/invalid 'name'", preset_id, source)
        return False, None
    if not isinstance(edits, dict):
        logger.warning("Invalid edit preset '%s' from %s: missing/invalid 'edits'", preset_id, source)
        return False, None

    return True, {"id": preset_id, "name": name, "edits": edits}


def default_presets_file() -> str:
    data_dir = appdirs.user_data_dir(APP_NAME, APP_AUTHOR)
    return os.path.join(data_dir, "edit_presets.json")


class EditPresetManager:
    """
    Load/save named EditState presets.

    File format: JSON list of objects:
      { "id": "...", "name": "...", "edits": { <EditState.to_dict()> } }
    """

    def __init__(self, presets_file: Optional[str] = None):
        self.presets_file = presets_file or default_presets_file()
        self._presets: Dict[str, dict] = {}
        self.load()

    def load(self) -> None:
        self._presets = {}
        if not os.path.isfile(self.presets_file):
            logger.info("No edit presets file found at %s.", self.presets_file)
            return

        try:
            with open(self.presets_file, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError:
            logger.exception("Failed to decode edit presets file %s", self.presets_file)
            return
        except OSError:
            logger.exception("Failed to read edit presets file %s", self.presets_file)
            return

        if not isinstance(data, list):
            logger.warning("Edit presets file %s must contain a JSON list.", self.presets_file)
            return

        for idx, preset in enumerate(data):
            ok, validated = _validate_edit_preset(preset, source=f"{self.presets_file}#{idx}")
            if ok:
                self._presets[validated["id"]] = validated

        logger.info("Loaded %s edit presets from %s.", len(self._presets), self.presets_file)

    def list_presets(self) -> List[dict]:
        return sorted(self._presets.values(), key=lambda p: p.get("name", ""))

    def get_preset(self, preset_id: str) -> Optional[EditPreset]:
        preset = self._presets.get(preset_id)
        if preset is None:
            return None
        return EditPreset(preset["id"], preset["name"], dict(preset["edits"]))

    def get_edit_state(self, preset_id: str) -> Optional[EditState]:
        """The preset's edits as a clamped EditState, or None if unknown."""
        preset = self.get_preset(preset_id)
        return preset.to_edit_state() if preset else None

    def _save(self) -> bool:
        try:
            directory = os.path.dirname(self.presets_file)
            if directory:
                os.makedirs(directory, exist_ok=True)
            with open(self.presets_file, "w", encoding="utf-8") as f:
                json.dump(self.list_presets(), f, indent=2)
            logger.info("Saved %s edit presets to %s.", len(self._presets), self.presets_file)
            return True
        except (OSError, TypeError):
            logger.exception("Failed saving edit presets to %s", self.presets_file)
            return False

    def add_preset(
        self,
        name: str,
        edit: Union[EditState, Mapping[str, Any]],
        preset_id: Optional[str] = None,
        *,
        overwrite: bool = False,
    ) -> Tuple[bool, str]:
        """
        Save ``edit`` under ``name``.

        Returns:
            (True, preset_id) on success, (False, reason) otherwise.
        """
        if isinstance(edit, EditState):
            state = edit
        elif isinstance(edit, Mapping):
            state = EditState.from_dict(edit)
        else:
            return False, "edit must be an EditState or a dict"

        resolved_id = (preset_id or _slugify(name)).strip()
        if not overwrite and resolved_id in self._presets:
            return False, f"Preset '{resolved_id}' already exists"

        preset = {"id": resolved_id, "name": name.strip() or resolved_id, "edits": state.to_dict()}
        ok, validated = _validate_edit_preset(preset, source="add_preset")
        if not ok:
            return False, "invalid preset payload"

        self._presets[resolved_id] = validated
        if self._save():
            return True, resolved_id
        return False, "failed to save presets file"

    def delete_preset(self, preset_id: str) -> bool:
        if preset_id not in self._presets:
            return False
        self._presets.pop(preset_id, None)
        return self._save()
