"""Outbound call and call history API endpoints."""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, ConfigDict
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.dependencies import get_dialer, get_session_manager
from app.core.exceptions import DialerError, InactiveScenario, ScenarioDefect, ScenarioNotFound
from app.db.database import get_db
from app.services.call_session.manager import CallSessionManager
from app.services.call_session.models import CallStatus
from app.services.persistence.calls import CallPersistenceService
from app.services.phone_numbers import normalize_phone_number
from app.services.telephony.dialer import OutboundDialer

router = APIRouter()
logger = logging.getLogger(__name__)


class PlaceCallRequest(BaseModel):
    """Outbound call request model."""
    phone_number: str
    scenario_id: str


class PlaceCallResponse(BaseModel):
    """Outbound call response model."""
    call_sid: str
    phone_number: str
    scenario_id: str
    status: str


class CallAnswerResponse(BaseModel):
    """Collected answer response model."""
    question_id: str
    question_text: str
    answer_type: str
    answer_value: str | None = None
    answer_label: str | None = None
    audio_file_url: str | None = None

    model_config = ConfigDict(from_attributes=True)


class CallLogResponse(BaseModel):
    """Call response model."""
    id: int
    call_sid: str
    phone_number: str | None = None
    scenario_id: str | None = None
    scenario_version: int | None = None
    status: str
    started_at: str
    completed_at: str | None = None
    duration: int | None = None
    error_message: str | None = None
    responses: List[CallAnswerResponse] = []


@router.post("/api/calls", response_model=PlaceCallResponse)
async def place_call(
    call_request: PlaceCallRequest,
    dialer: OutboundDialer = Depends(get_dialer),
    session_manager: CallSessionManager = Depends(get_session_manager),
):
    """Dial a number and run an active scenario on it."""
    phone_number = normalize_phone_number(call_request.phone_number)
    logger.info(
        f"[CALLS] Outbound call requested - To: {phone_number}, "
        f"Scenario: {call_request.scenario_id}"
    )

    try:
        await session_manager.scenario_repository.load_active_scenario(call_request.scenario_id)
    except ScenarioNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))

    # The CallSid only exists once Twilio accepts the call. The connect
    # webhook may arrive before start_call below; both share one session.
    try:
        call_sid = dialer.place_call(phone_number, call_request.scenario_id)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except DialerError as e:
        raise HTTPException(status_code=502, detail=f"Telephony provider error: {str(e)}")

    try:
        session = await session_manager.start_call(
            call_sid, call_request.scenario_id, phone_number
        )
    except (ScenarioNotFound, InactiveScenario, ScenarioDefect) as e:
        logger.error(f"[CALLS] Call {call_sid} placed but scenario cannot run: {e}")
        raise HTTPException(status_code=409, detail=str(e))

    return PlaceCallResponse(
        call_sid=call_sid,
        phone_number=phone_number,
        scenario_id=call_request.scenario_id,
        status=session.status.value,
    )


@router.get("/api/calls/history", response_model=List[CallLogResponse])
async def get_call_history(
    request: Request,
    limit: int = 100,
    status: Optional[CallStatus] = None,
    db: AsyncSession = Depends(get_db),
):
    """Get calls with their collected answers, most recent first."""
    logger.info(
        f"[CALLS HISTORY] Request received - limit: {limit}, status: {status}, "
        f"Client: {request.client.host if request.client else 'unknown'}"
    )

    calls = await CallPersistenceService(db).list_calls(limit=limit, status=status)
    logger.info(f"[CALLS HISTORY] Found {len(calls)} calls in database")

    return [
        CallLogResponse(
            id=call.id,
            call_sid=call.call_sid,
            phone_number=call.phone_number,
            scenario_id=call.scenario_id,
            scenario_version=call.scenario_version,
            status=call.status,
            started_at=call.started_at.isoformat() if call.started_at else "",
            completed_at=call.completed_at.isoformat() if call.completed_at else None,
            duration=call.duration,
            error_message=call.error_message,
            responses=[CallAnswerResponse.model_validate(r) for r in call.responses],
        )
        for call in calls
    ]
