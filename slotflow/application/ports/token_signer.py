from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import timedelta
from typing import Any


class TokenSignerPort(ABC):
    @abstractmethod
    def sign(self, payload: dict[str, Any], ttl: timedelta) -> str:
        """Sign payload into a token valid for ttl from now."""
        raise NotImplementedError

    @abstractmethod
    def verify(self, token: str) -> dict[str, Any]:
        """
        Return the signed claims, including "exp".
        Raises InvalidFlowToken on a bad signature or an expired token.
        """
        raise NotImplementedError
