from __future__ import annotations

import logging
from datetime import date, timezone

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse

from slotflow.api.schemas import (
    ContinueFlowSchema,
    FinalizeFlowSchema,
    FinalizeResponseSchema,
    FlowResponseSchema,
    PlaceholderRequestSchema,
    PlaceholderResponseSchema,
    SlotsResponseSchema,
    StartPrimaryFlowSchema,
)
from slotflow.application.exceptions import (
    BusinessRuleViolation,
    ConfigurationError,
    ExternalServiceError,
    InvalidFlowToken,
)
from slotflow.application.use_cases.booking_flow import (
    BookingFlowManager,
    StartInviteFlowRequest,
    StartPrimaryFlowRequest,
)
from slotflow.application.use_cases.placeholders import PlaceholderService
from slotflow.application.use_cases.slot_listing import SlotListingService
from slotflow.domain.entities.availability import SlotRequest
from slotflow.domain.entities.flow import ActionType, NextAction
from slotflow.wiring.dependencies import (
    get_booking_flow_manager,
    get_placeholder_service,
    get_session_type_catalog,
    get_slot_listing_service,
)

router = APIRouter()
logger = logging.getLogger(__name__)

NOT_FOUND_CODES = {"session_type_not_found", "invite_not_found"}
UNPROCESSABLE_CODES = {"validation", "unknown_step"}


def error_status(action: NextAction) -> int:
    if action.type is not ActionType.ERROR:
        return 200
    if action.code in NOT_FOUND_CODES:
        return 404
    if action.code in UNPROCESSABLE_CODES:
        return 422
    return 409


@router.get("/slots", response_model=SlotsResponseSchema)
async def list_slots(
    start_date: date,
    end_date: date,
    duration_minutes: int | None = Query(None, gt=0),
    session_type_id: str | None = None,
    service: SlotListingService = Depends(get_slot_listing_service),
):
    if end_date < start_date:
        raise HTTPException(status_code=422, detail="end_date must not be before start_date")
    if duration_minutes is None:
        session_type = get_session_type_catalog().get_session_type(session_type_id) if session_type_id else None
        if session_type is None:
            raise HTTPException(status_code=422, detail="duration_minutes or a known session_type_id is required")
        duration_minutes = session_type.duration_minutes

    request = SlotRequest(start_date=start_date, end_date=end_date, duration_minutes=duration_minutes)
    slots = await service.list_slots(request)
    return SlotsResponseSchema(
        start_date=start_date,
        end_date=end_date,
        duration_minutes=duration_minutes,
        slots=slots,
    )


@router.post("/booking-flow/start-primary", response_model=FlowResponseSchema)
async def start_primary_flow(
    req: StartPrimaryFlowSchema,
    manager: BookingFlowManager = Depends(get_booking_flow_manager),
):
    try:
        response = await manager.start_primary_flow(
            StartPrimaryFlowRequest(
                user_id=req.user_id,
                session_type_id=req.session_type_id,
                appointment_datetime_iso=req.appointment_datetime,
                placeholder_id=req.placeholder_id,
            )
        )
    except ExternalServiceError as e:
        raise HTTPException(status_code=503, detail=str(e))
    schema = FlowResponseSchema.from_result(response)
    return JSONResponse(status_code=error_status(response.next_step), content=schema.model_dump(mode="json"))


@router.get("/booking-flow/start-invite/{invite_token}", response_model=FlowResponseSchema)
async def start_invite_flow(
    invite_token: str,
    user_id: str,
    manager: BookingFlowManager = Depends(get_booking_flow_manager),
):
    try:
        response = await manager.start_invite_flow(StartInviteFlowRequest(invite_token=invite_token, user_id=user_id))
    except ExternalServiceError as e:
        raise HTTPException(status_code=503, detail=str(e))
    schema = FlowResponseSchema.from_result(response)
    return JSONResponse(status_code=error_status(response.next_step), content=schema.model_dump(mode="json"))


@router.post("/booking-flow/continue", response_model=FlowResponseSchema)
async def continue_flow(
    req: ContinueFlowSchema,
    manager: BookingFlowManager = Depends(get_booking_flow_manager),
):
    try:
        response = await manager.continue_flow(req.flow_token, req.step_id, req.data)
    except InvalidFlowToken as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ConfigurationError as e:
        logger.error("Booking flow misconfigured", extra={"error": str(e)})
        raise HTTPException(status_code=500, detail=str(e))
    except ExternalServiceError as e:
        raise HTTPException(status_code=503, detail=str(e))
    schema = FlowResponseSchema.from_result(response)
    return JSONResponse(status_code=error_status(response.next_step), content=schema.model_dump(mode="json"))


@router.post("/booking-flow/finalize", response_model=FinalizeResponseSchema)
async def finalize_flow(
    req: FinalizeFlowSchema,
    manager: BookingFlowManager = Depends(get_booking_flow_manager),
):
    try:
        result = await manager.finalize(req.flow_token)
    except InvalidFlowToken as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ConfigurationError as e:
        logger.error("Booking flow misconfigured", extra={"error": str(e)})
        raise HTTPException(status_code=500, detail=str(e))
    except ExternalServiceError as e:
        raise HTTPException(status_code=503, detail=str(e))
    schema = FinalizeResponseSchema.from_result(result)
    return JSONResponse(status_code=error_status(result.next_step), content=schema.model_dump(mode="json"))


@router.post("/placeholders", response_model=PlaceholderResponseSchema, status_code=201)
async def create_placeholder(
    req: PlaceholderRequestSchema,
    service: PlaceholderService = Depends(get_placeholder_service),
):
    start = req.start if req.start.tzinfo else req.start.replace(tzinfo=timezone.utc)
    try:
        placeholder = await service.create_placeholder(req.user_id, req.session_type_id, start)
    except BusinessRuleViolation as e:
        raise HTTPException(status_code=404 if e.code in NOT_FOUND_CODES else 409, detail=str(e))
    except ConfigurationError as e:
        logger.error("Placeholder service misconfigured", extra={"error": str(e)})
        raise HTTPException(status_code=500, detail=str(e))
    except ExternalServiceError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return PlaceholderResponseSchema(placeholder_id=placeholder.placeholder_id, expires_at=placeholder.expires_at)


@router.delete("/placeholders/{placeholder_id}", status_code=204)
async def delete_placeholder(
    placeholder_id: str,
    service: PlaceholderService = Depends(get_placeholder_service),
):
    try:
        await service.delete_placeholder(placeholder_id)
    except ExternalServiceError as e:
        raise HTTPException(status_code=503, detail=str(e))
    logger.info("Placeholder released", extra={"event_id": placeholder_id})
