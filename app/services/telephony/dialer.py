"""Outbound calls through the Twilio REST API."""
import logging
from typing import Optional
from urllib.parse import urlencode

from twilio.base.exceptions import TwilioException
from twilio.rest import Client

from app.core.config import settings
from app.core.exceptions import DialerError
from app.services.phone_numbers import is_valid_e164, normalize_phone_number

logger = logging.getLogger(__name__)


class OutboundDialer:
    """Places outbound calls whose webhooks drive a scenario."""

    def __init__(
        self,
        client: Optional[Client] = None,
        from_number: Optional[str] = None,
        base_url: Optional[str] = None,
    ):
        self.client = client or Client(settings.twilio_account_sid, settings.twilio_auth_token)
        self.from_number = from_number or settings.twilio_phone_number
        self.base_url = (base_url or settings.base_url or "").rstrip("/")

    def place_call(self, to_number: str, scenario_id: str) -> str:
        """Dial a number and return the provider call SID.

        Raises:
            ValueError: the number cannot be normalized to E.164.
            DialerError: Twilio rejected the call.
        """
        normalized = normalize_phone_number(to_number)
        if not is_valid_e164(normalized):
            raise ValueError(f"Invalid phone number: {to_number!r}")

        query = urlencode({"ScenarioId": scenario_id})
        try:
            call = self.client.calls.create(
                to=normalized,
                from_=self.from_number,
                url=f"{self.base_url}/webhooks/voice/incoming?{query}",
                method="POST",
                status_callback=f"{self.base_url}/webhooks/voice/status",
                status_callback_method="POST",
                status_callback_event=["completed"],
            )
        except TwilioException as e:
            logger.error(
                f"[DIALER] Twilio rejected call to {normalized} - Error: {type(e).__name__}: {e}"
            )
            raise DialerError(str(e)) from e

        logger.info(f"[DIALER] Call placed to {normalized} - CallSid: {call.sid}")
        return str(call.sid)
