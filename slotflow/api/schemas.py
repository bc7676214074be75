from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, Field

from slotflow.domain.entities.flow import ActionType, FinalizeResult, FlowResponse


class NextActionSchema(BaseModel):
    type: ActionType
    url: str | None = None
    message: str | None = None
    code: str | None = None


class SlotsResponseSchema(BaseModel):
    start_date: date
    end_date: date
    duration_minutes: int
    slots: list[datetime]


class StartPrimaryFlowSchema(BaseModel):
    user_id: str
    session_type_id: str
    appointment_datetime: str
    placeholder_id: str | None = None


class ContinueFlowSchema(BaseModel):
    flow_token: str
    step_id: str
    data: dict[str, Any] = Field(default_factory=dict)


class FinalizeFlowSchema(BaseModel):
    flow_token: str


class FlowResponseSchema(BaseModel):
    flow_token: str | None = None
    next_step: NextActionSchema
    details: dict[str, Any] | None = None

    @staticmethod
    def from_result(response: FlowResponse) -> "FlowResponseSchema":
        return FlowResponseSchema(
            flow_token=response.token,
            next_step=NextActionSchema(**response.next_step.to_dict()),
            details=response.details,
        )


class FinalizeResponseSchema(BaseModel):
    success: bool
    session_id: str | None = None
    flow_token: str | None = None
    next_step: NextActionSchema
    needs_manual_review: bool = False
    message: str | None = None

    @staticmethod
    def from_result(result: FinalizeResult) -> "FinalizeResponseSchema":
        return FinalizeResponseSchema(
            success=result.success,
            session_id=result.session_id,
            flow_token=result.token,
            next_step=NextActionSchema(**result.next_step.to_dict()),
            needs_manual_review=result.needs_manual_review,
            message=result.message,
        )


class PlaceholderRequestSchema(BaseModel):
    user_id: str
    session_type_id: str
    start: datetime


class PlaceholderResponseSchema(BaseModel):
    placeholder_id: str
    expires_at: datetime
