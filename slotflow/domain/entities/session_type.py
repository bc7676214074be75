from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class SessionType:
    id: str
    label: str
    duration_minutes: int
    waiver_type: str = "NONE"  # "NONE" or the form type shown to the client
    allows_group_invites: bool = False
    max_group_size: int = 1
    active: bool = True

    @property
    def requires_waiver(self) -> bool:
        return bool(self.waiver_type) and self.waiver_type.upper() != "NONE"

    @staticmethod
    def from_dict(raw: dict[str, Any]) -> "SessionType":
        return SessionType(
            id=str(raw["id"]),
            label=raw.get("label") or str(raw["id"]),
            duration_minutes=int(raw.get("duration_minutes") or raw.get("durationMinutes") or 60),
            waiver_type=raw.get("waiver_type") or raw.get("waiverType") or "NONE",
            allows_group_invites=bool(raw.get("allows_group_invites", raw.get("allowsGroupInvites", False))),
            max_group_size=int(raw.get("max_group_size") or raw.get("maxGroupSize") or 1),
            active=bool(raw.get("active", True)),
        )
