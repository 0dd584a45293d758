"""Twilio voice webhook endpoints."""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Form, Query, Request
from fastapi.responses import Response

from app.core.config import settings
from app.core.dependencies import get_session_manager
from app.core.exceptions import IVRError
from app.services.call_session.manager import CallSessionManager
from app.services.call_session.models import CallStatus
from app.services.telephony.twiml import TwimlRenderer

router = APIRouter()
logger = logging.getLogger(__name__)


def get_base_url(request: Request) -> str:
    """
    Get the base URL for constructing absolute URLs.

    Uses BASE_URL environment variable if set (e.g., for Railway),
    otherwise constructs from request.
    """
    if settings.base_url:
        return settings.base_url.rstrip('/')

    return str(request.base_url).rstrip('/')


def _twiml(content: str) -> Response:
    return Response(content=content, media_type="application/xml")


@router.post("/voice/incoming")
async def handle_incoming_call(
    request: Request,
    CallSid: str = Form(...),
    To: Optional[str] = Form(None),
    ScenarioId: Optional[str] = Query(None),
    session_manager: CallSessionManager = Depends(get_session_manager),
):
    """
    Handle a connected call from Twilio.

    Outbound calls are placed with the scenario id in the webhook URL.
    """
    logger.info(
        f"[INCOMING CALL] Call connected - CallSid: {CallSid}, Scenario: {ScenarioId}, "
        f"Client: {request.client.host if request.client else 'unknown'}"
    )
    renderer = TwimlRenderer(get_base_url(request))

    try:
        directive = await session_manager.handle_call_connected(
            CallSid, scenario_id=ScenarioId, phone_number=To
        )
        return _twiml(renderer.render(directive, CallSid))

    except IVRError as e:
        logger.error(
            f"[INCOMING CALL] Cannot run scenario - CallSid: {CallSid}, "
            f"Error: {type(e).__name__}: {str(e)}"
        )
        return _twiml(renderer.hang_up(CallStatus.FAILED))

    except Exception as e:
        logger.error(
            f"[INCOMING CALL] Error processing incoming call - CallSid: {CallSid}, "
            f"Error: {type(e).__name__}: {str(e)}",
            exc_info=True
        )
        return _twiml(renderer.hang_up(CallStatus.FAILED))


@router.post("/voice/gather")
async def handle_gather(
    request: Request,
    CallSid: str = Query(...),
    QuestionId: str = Query(...),
    Digits: Optional[str] = Form(None),
    session_manager: CallSessionManager = Depends(get_session_manager),
):
    """
    Handle key presses gathered by Twilio.

    A gather timeout redirects here without Digits.
    """
    logger.info(
        f"[GATHER] Received digits - CallSid: {CallSid}, Question: {QuestionId}, "
        f"Digits: {Digits!r}"
    )
    renderer = TwimlRenderer(get_base_url(request))

    try:
        directive = await session_manager.handle_digits(CallSid, QuestionId, Digits)
        return _twiml(renderer.render(directive, CallSid))

    except Exception as e:
        logger.error(
            f"[GATHER] Error processing digits - CallSid: {CallSid}, "
            f"Question: {QuestionId}, Error: {type(e).__name__}: {str(e)}",
            exc_info=True
        )
        return _twiml(renderer.hang_up(CallStatus.FAILED))


@router.post("/voice/recording")
async def handle_recording(
    request: Request,
    CallSid: str = Query(...),
    QuestionId: str = Query(...),
    RecordingUrl: Optional[str] = Form(None),
    session_manager: CallSessionManager = Depends(get_session_manager),
):
    """
    Handle a voice recording from Twilio.

    A record timeout redirects here without RecordingUrl.
    """
    logger.info(
        f"[RECORDING] Received recording - CallSid: {CallSid}, Question: {QuestionId}, "
        f"RecordingUrl: {RecordingUrl or 'none'}"
    )
    renderer = TwimlRenderer(get_base_url(request))

    try:
        directive = await session_manager.handle_recording(CallSid, QuestionId, RecordingUrl)
        return _twiml(renderer.render(directive, CallSid))

    except Exception as e:
        logger.error(
            f"[RECORDING] Error processing recording - CallSid: {CallSid}, "
            f"Question: {QuestionId}, Error: {type(e).__name__}: {str(e)}",
            exc_info=True
        )
        return _twiml(renderer.hang_up(CallStatus.FAILED))


@router.post("/voice/status")
async def handle_call_status(
    request: Request,
    CallSid: str = Form(...),
    CallStatus: str = Form(...),
    ErrorMessage: Optional[str] = Form(None),
    session_manager: CallSessionManager = Depends(get_session_manager),
):
    """
    Handle call status updates from Twilio.

    This endpoint is called when the call ends (completed, busy, no-answer, failed).
    """
    logger.info(
        f"[CALL STATUS] Received status update - CallSid: {CallSid}, "
        f"CallStatus: {CallStatus}, "
        f"Client: {request.client.host if request.client else 'unknown'}"
    )

    try:
        directive = await session_manager.handle_call_status(CallSid, CallStatus, ErrorMessage)
        if directive:
            logger.info(
                f"[CALL STATUS] Session ended - CallSid: {CallSid}, "
                f"Final status: {directive.status}"
            )
        return Response(content="OK", media_type="text/plain")

    except Exception as e:
        logger.error(
            f"[CALL STATUS] Error handling call status update - CallSid: {CallSid}, "
            f"CallStatus: {CallStatus}, Error: {type(e).__name__}: {str(e)}",
            exc_info=True
        )
        # Still return OK to Twilio to avoid retries
        return Response(content="OK", media_type="text/plain")
