"""
Notification service for the Facility Occupancy & Evacuation service.

This module sends evacuation notifications as SMS through Twilio. Sending is
fire-and-forget: failures are logged and never raised to the caller.
"""

from datetime import datetime, timezone
from typing import List, Optional, Sequence

import structlog
from pydantic import BaseModel
from twilio.base.exceptions import TwilioException
from twilio.rest import Client

from core.config import Settings, get_settings
from models.schemas import EvacuationOutcome, ResolvedPerson

logger = structlog.get_logger(__name__)

SMS_MAX_LENGTH = 1600


class NotificationResponse(BaseModel):
    """Result of sending to one recipient."""
    message_sid: str
    recipient: str
    status: str
    sent_at: datetime
    error_message: Optional[str] = None


def _hhmm(value) -> str:
    if isinstance(value, datetime):
        return value.strftime("%H:%M")
    return str(value or "").strip() or "--:--"


def build_evacuation_message(outcome: EvacuationOutcome) -> tuple:
    """(subject, body) describing a completed REAL evacuation."""
    subject = f"EMERGENCY EVACUATION - {len(outcome.resolved)} person(s) evacuated"
    lines = [
        subject,
        f"Time: {outcome.timestamp.strftime('%Y-%m-%d %H:%M')}",
        "",
    ]
    for number, person in enumerate(outcome.resolved, start=1):
        lines.append(_person_line(number, person))
    lines.extend(["", f"Session: {outcome.session_id}"])
    return subject, "\n".join(lines)


def _person_line(number: int, person: ResolvedPerson) -> str:
    return (f"{number}. {person.name} ({person.identity}) - {person.company} "
            f"in {_hhmm(person.entry_timestamp)} out {_hhmm(person.exit_timestamp)}")


class NotificationService:
    """Sends SMS notifications via Twilio."""

    def __init__(self, settings: Optional[Settings] = None, client: Optional[Client] = None):
        self.settings = settings or get_settings()
        self.client = client
        if self.client is None:
            self._initialize_client()

    def _initialize_client(self) -> None:
        """Initialize Twilio client."""
        account_sid = self.settings.TWILIO_ACCOUNT_SID
        auth_token = self.settings.TWILIO_AUTH_TOKEN
        if not account_sid or not auth_token:
            logger.warning("Twilio credentials not configured, notifications disabled")
            return
        try:
            self.client = Client(account_sid, auth_token)
            logger.info("Twilio client initialized successfully")
        except Exception as e:
            logger.error("Failed to initialize Twilio client", error=str(e))
            self.client = None

    @property
    def is_configured(self) -> bool:
        return self.client is not None and bool(self.settings.TWILIO_FROM_NUMBER)

    def send(self, recipients: Sequence[str], subject: str, body: str) -> List[NotificationResponse]:
        """Send the message to every recipient. Never raises."""
        if not recipients:
            logger.info("No notification recipients configured", subject=subject)
            return []
        if not self.is_configured:
            logger.warning("Notification skipped, Twilio client not configured",
                           subject=subject, recipients=len(recipients))
            return []

        message_body = body if len(body) <= SMS_MAX_LENGTH else body[:SMS_MAX_LENGTH - 3] + "..."
        responses = []
        for recipient in recipients:
            responses.append(self._send_sms(recipient, message_body))

        sent = sum(1 for r in responses if r.status != "failed")
        logger.info("Notifications sent", subject=subject, sent=sent, failed=len(responses) - sent)
        return responses

    def _send_sms(self, recipient: str, body: str) -> NotificationResponse:
        try:
            message = self.client.messages.create(
                to=recipient,
                from_=self.settings.TWILIO_FROM_NUMBER,
                body=body,
            )
            return NotificationResponse(
                message_sid=message.sid,
                recipient=recipient,
                status=message.status,
                sent_at=datetime.now(timezone.utc),
            )
        except TwilioException as e:
            logger.error("Twilio API error", recipient=recipient, error=str(e),
                         error_code=getattr(e, 'code', None))
            error_message = str(e)
        except Exception as e:
            logger.error("Failed to send notification", recipient=recipient, error=str(e))
            error_message = str(e)

        return NotificationResponse(
            message_sid="",
            recipient=recipient,
            status="failed",
            sent_at=datetime.now(timezone.utc),
            error_message=error_message,
        )

    def notify_evacuation(self, outcome: EvacuationOutcome) -> List[NotificationResponse]:
        """Notify the configured recipients about a REAL evacuation."""
        try:
            subject, body = build_evacuation_message(outcome)
        except Exception as e:
            logger.error("Failed to build evacuation notification", session_id=outcome.session_id, error=str(e))
            return []
        return self.send(self.settings.notification_recipients_list, subject, body)


# Global instance
_notification_service: Optional[NotificationService] = None


def get_notification_service() -> NotificationService:
    """Get the global notification service instance."""
    global _notification_service
    if _notification_service is None:
        _notification_service = NotificationService()
    return _notification_service
