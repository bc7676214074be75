from __future__ import annotations

import json
import logging
from pathlib import Path

from slotflow.application.ports.session_types import SessionTypeCatalogPort
from slotflow.domain.entities.session_type import SessionType

DEFAULT_SESSION_TYPES: dict[str, SessionType] = {
    "individual": SessionType(id="individual", label="Individual Session", duration_minutes=60),
    "individual_waiver": SessionType(
        id="individual_waiver",
        label="Individual Session",
        duration_minutes=60,
        waiver_type="WAIVER",
    ),
    "group": SessionType(
        id="group",
        label="Group Session",
        duration_minutes=90,
        waiver_type="WAIVER",
        allows_group_invites=True,
        max_group_size=4,
    ),
}


class SessionTypeCatalogStore(SessionTypeCatalogPort):
    def __init__(self, catalog: dict[str, SessionType] | None = None) -> None:
        self._catalog = catalog if catalog is not None else DEFAULT_SESSION_TYPES

    @staticmethod
    def from_json(path: str) -> "SessionTypeCatalogStore":
        """Load the catalog from a JSON list; falls back to the built-in types if the file is missing."""
        file_path = Path(path)
        if not file_path.exists():
            logging.getLogger(__name__).warning(
                "Session type file missing, using defaults", extra={"path": str(file_path)}
            )
            return SessionTypeCatalogStore()
        with open(file_path, "r", encoding="utf-8") as f:
            raw = json.load(f)
        entries = [SessionType.from_dict(item) for item in raw]
        return SessionTypeCatalogStore({entry.id: entry for entry in entries})

    def get_session_type(self, session_type_id: str) -> SessionType | None:
        return self._catalog.get(str(session_type_id).strip())

    def list_session_types(self) -> list[SessionType]:
        return [entry for entry in self._catalog.values() if entry.active]
