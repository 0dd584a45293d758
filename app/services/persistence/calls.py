"""Call persistence service."""
import logging
from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import desc, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload

from app.db.models import CallLog, CallResponse
from app.services.call_session.models import CallSessionSnapshot, CallStatus

logger = logging.getLogger(__name__)


class CallPersistenceService:
    """Service for persisting call logs and collected answers."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_call(
        self,
        call_sid: str,
        scenario_id: Optional[str] = None,
        scenario_version: Optional[int] = None,
        phone_number: Optional[str] = None,
    ) -> CallLog:
        """Create a new call record or return existing one."""
        existing_call = await self.get_call_by_sid(call_sid)
        if existing_call:
            return existing_call

        call = CallLog(
            call_sid=call_sid,
            scenario_id=scenario_id,
            scenario_version=scenario_version,
            phone_number=phone_number,
            status=CallStatus.INITIATED.value,
        )
        self.db.add(call)
        try:
            await self.db.commit()
        except IntegrityError:
            # Another worker stored the same CallSid first
            await self.db.rollback()
            logger.info(f"[PERSISTENCE] Call {call_sid} already stored, reusing it")
            return await self.get_call_by_sid(call_sid)
        await self.db.refresh(call)
        return call

    async def get_call_by_sid(self, call_sid: str) -> Optional[CallLog]:
        """Get call by Twilio call SID, with its responses."""
        result = await self.db.execute(
            select(CallLog)
            .where(CallLog.call_sid == call_sid)
            .options(selectinload(CallLog.responses))
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def update_call_status(self, call_sid: str, status: CallStatus) -> Optional[CallLog]:
        """Update call status."""
        call = await self.get_call_by_sid(call_sid)
        if call:
            call.status = status.value
            await self.db.commit()
            await self.db.refresh(call)
        return call

    async def save_session(self, snapshot: CallSessionSnapshot) -> CallLog:
        """Store a finalized session: final status, timings and every answer."""
        if not snapshot.is_terminal:
            raise ValueError(f"Session {snapshot.call_sid} is not finalized ({snapshot.status})")

        await self.create_call(
            snapshot.call_sid,
            scenario_id=snapshot.scenario_id,
            scenario_version=snapshot.scenario_version,
            phone_number=snapshot.phone_number,
        )
        call = await self.get_call_by_sid(snapshot.call_sid)
        call.status = snapshot.status.value
        call.scenario_version = snapshot.scenario_version
        call.completed_at = snapshot.completed_at
        call.duration = snapshot.duration_seconds
        call.error_message = snapshot.error_message

        for answer in snapshot.answers:
            call.responses.append(
                CallResponse(
                    question_id=answer.question_id,
                    question_text=answer.question_text,
                    answer_type=answer.answer_type.value,
                    answer_value=answer.value or None,
                    answer_label=answer.label,
                    audio_file_url=answer.audio_url,
                    created_at=answer.timestamp,
                )
            )

        await self.db.commit()
        return await self.get_call_by_sid(snapshot.call_sid)

    async def list_calls(
        self, limit: int = 100, status: Optional[CallStatus] = None
    ) -> List[CallLog]:
        """Most recent calls first, with responses loaded."""
        query = (
            select(CallLog)
            .options(selectinload(CallLog.responses))
            .execution_options(populate_existing=True)
            .order_by(desc(CallLog.started_at), desc(CallLog.id))
            .limit(limit)
        )
        if status is not None:
            query = query.where(CallLog.status == status.value)
        result = await self.db.execute(query)
        return list(result.scalars().all())
