from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class CalendarEvent:
    id: str
    start: datetime
    end: datetime
    summary: str
    description: str | None = None
    status: str = "confirmed"  # "confirmed" or "tentative"
