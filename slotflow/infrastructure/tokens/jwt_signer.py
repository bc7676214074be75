from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Any

from jose import ExpiredSignatureError, JWTError, jwt

from slotflow.application.exceptions import InvalidFlowToken
from slotflow.application.ports.token_signer import TokenSignerPort


class JwtTokenSigner(TokenSignerPort):
    def __init__(
        self,
        secret: str,
        algorithm: str = "HS256",
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        if not secret:
            raise ValueError("A signing secret is required for flow tokens")
        self._secret = secret
        self._algorithm = algorithm
        self._clock = clock
        self._logger = logging.getLogger(__name__)

    def sign(self, payload: dict[str, Any], ttl: timedelta) -> str:
        now = self._clock()
        claims = dict(payload)
        claims["iat"] = int(now.timestamp())
        claims["exp"] = int((now + ttl).timestamp())
        return jwt.encode(claims, self._secret, algorithm=self._algorithm)

    def verify(self, token: str) -> dict[str, Any]:
        try:
            return jwt.decode(token, self._secret, algorithms=[self._algorithm])
        except ExpiredSignatureError as e:
            self._logger.warning("Expired flow token")
            raise InvalidFlowToken("Flow token has expired") from e
        except JWTError as e:
            self._logger.warning("Invalid flow token", extra={"error": str(e)})
            raise InvalidFlowToken("Invalid flow token") from e
