"""Notification dispatch for finished calls."""
import logging
from abc import ABC, abstractmethod
from typing import List

from app.services.call_session.models import CallSessionSnapshot

logger = logging.getLogger(__name__)


class NotificationDispatcher(ABC):
    """Abstract base class for call outcome notifiers (SMS, e-mail, ...)."""

    async def dispatch(self, snapshot: CallSessionSnapshot) -> None:
        """Send a notification for a finished call.

        Raises:
            ValueError: the snapshot is not terminal.
        """
        if not snapshot.is_terminal:
            raise ValueError(
                f"Refusing to notify for unfinished call {snapshot.call_sid} ({snapshot.status})"
            )
        await self.send(snapshot)

    @abstractmethod
    async def send(self, snapshot: CallSessionSnapshot) -> None:
        """Deliver the notification."""
        pass


class LoggingNotificationDispatcher(NotificationDispatcher):
    """Writes call outcomes to the application log."""

    async def send(self, snapshot: CallSessionSnapshot) -> None:
        answers = ", ".join(
            f"{a.question_id}={a.label or a.value}" for a in snapshot.answers
        )
        logger.info(
            f"[NOTIFY] Call {snapshot.call_sid} to {snapshot.phone_number or 'unknown'} "
            f"finished with {snapshot.status.value}: {answers or 'no answers'}"
        )


class InMemoryNotificationDispatcher(NotificationDispatcher):
    """Keeps dispatched snapshots in a list."""

    def __init__(self):
        self.sent: List[CallSessionSnapshot] = []

    async def send(self, snapshot: CallSessionSnapshot) -> None:
        self.sent.append(snapshot)
