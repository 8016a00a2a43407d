"""Local state store: one JSON document per managed resource."""

from __future__ import annotations

import logging
from pathlib import Path

from penguinctl.config import ResourceKind
from penguinctl.reconcilers import ResourceModel


log = logging.getLogger(__name__)


class StateStore:
    """File-backed store for resource state records.

    Documents live at ``<directory>/<kind>/<name>.json``. They may hold
    secrets (root passwords, generated passwords), so files are created
    readable by the owner only.
    """

    def __init__(self, directory: Path) -> None:
        self.directory = Path(directory)

    def path_for(self, kind: ResourceKind, name: str) -> Path:
        if not name or "/" in name or name.startswith("."):
            raise ValueError(f"Invalid resource name: {name!r}")
        return self.directory / kind.value / f"{name}.json"

    def load(
        self, kind: ResourceKind, name: str, model: type[ResourceModel]
    ) -> ResourceModel | None:
        """Load a state record.

        Returns:
            Parsed state, or None when nothing is stored under this name
        """
        path = self.path_for(kind, name)
        if not path.exists():
            return None
        return model.model_validate_json(path.read_text(encoding="utf-8"))

    def save(self, kind: ResourceKind, name: str, state: ResourceModel) -> Path:
        path = self.path_for(kind, name)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.touch(mode=0o600, exist_ok=True)
        path.write_text(state.model_dump_json(indent=2), encoding="utf-8")
        log.debug("Saved %s state to %s", kind.value, path)
        return path

    def remove(self, kind: ResourceKind, name: str) -> bool:
        """Delete a state record.

        Returns:
            True if a record existed
        """
        path = self.path_for(kind, name)
        if not path.exists():
            return False
        path.unlink()
        log.debug("Removed %s state %s", kind.value, path)
        return True
