"""FastAPI dependencies."""
from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.db.database import get_db
from app.services.call_session.engine import ExecutionEngine
from app.services.call_session.manager import CallSessionManager
from app.services.notifications.dispatcher import (
    LoggingNotificationDispatcher,
    NotificationDispatcher,
)
from app.services.scenario.conditions import ConditionEvaluator
from app.services.scenario.repository import ScenarioRepository
from app.services.scenario.validator import ScenarioValidator
from app.services.telephony.dialer import OutboundDialer


def get_scenario_validator() -> ScenarioValidator:
    """Get scenario validator instance."""
    return ScenarioValidator(ConditionEvaluator())


def get_execution_engine(
    validator: ScenarioValidator = Depends(get_scenario_validator),
) -> ExecutionEngine:
    """Get execution engine instance."""
    return ExecutionEngine(
        validator=validator,
        condition_evaluator=validator.condition_evaluator,
        max_retries=settings.ivr_max_retries,
    )


def get_scenario_repository(
    db: AsyncSession = Depends(get_db),
    validator: ScenarioValidator = Depends(get_scenario_validator),
) -> ScenarioRepository:
    """Get scenario repository instance."""
    return ScenarioRepository(db, validator)


def get_notification_dispatcher() -> NotificationDispatcher:
    """Get notification dispatcher instance."""
    return LoggingNotificationDispatcher()


def get_dialer() -> OutboundDialer:
    """Get outbound dialer instance."""
    return OutboundDialer()


def get_session_manager(
    db: AsyncSession = Depends(get_db),
    engine: ExecutionEngine = Depends(get_execution_engine),
    scenario_repository: ScenarioRepository = Depends(get_scenario_repository),
    notification_dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> CallSessionManager:
    """Get call session manager."""
    return CallSessionManager(db, engine, scenario_repository, notification_dispatcher)
