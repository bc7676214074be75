from __future__ import annotations

import logging
from dataclasses import replace
from datetime import timedelta

from slotflow.application.exceptions import InvalidFlowToken
from slotflow.application.ports.token_signer import TokenSignerPort
from slotflow.domain.entities.flow import VALID_STEPS, FlowState

DEFAULT_FLOW_TOKEN_TTL = timedelta(hours=2)


class FlowTokenCodec:
    """Signed, expiring encoding of FlowState. Holds no state besides the signer."""

    def __init__(self, signer: TokenSignerPort, ttl: timedelta = DEFAULT_FLOW_TOKEN_TTL) -> None:
        self._signer = signer
        self._ttl = ttl
        self._logger = logging.getLogger(__name__)

    def encode(self, state: FlowState) -> str:
        token = self._signer.sign(state.to_payload(), self._ttl)
        self._logger.info(
            "Flow token generated",
            extra={"user_id": state.user_id, "flow_type": state.flow_type.value, "step": state.current_step.value},
        )
        return token

    def decode(self, token: str) -> FlowState:
        claims = self._signer.verify(token)
        try:
            state = FlowState.from_payload(claims)
        except (KeyError, TypeError, ValueError) as e:
            self._logger.warning("Malformed flow token payload", extra={"error": str(e)})
            raise InvalidFlowToken("Malformed flow token") from e

        if state.current_step not in VALID_STEPS[state.flow_type]:
            self._logger.warning(
                "Flow token carries unreachable step",
                extra={"flow_type": state.flow_type.value, "step": state.current_step.value},
            )
            raise InvalidFlowToken("Flow token carries an invalid step")
        return replace(state, expires_at=int(claims["exp"]))
