from __future__ import annotations

from abc import ABC, abstractmethod

from slotflow.domain.entities.session_type import SessionType


class SessionTypeCatalogPort(ABC):
    @abstractmethod
    def get_session_type(self, session_type_id: str) -> SessionType | None:
        """Get session type by id, active or not."""
        raise NotImplementedError

    @abstractmethod
    def list_session_types(self) -> list[SessionType]:
        raise NotImplementedError
