"""
Reservation confirmation by email (SendGrid) and SMS (Twilio).
Set SENDGRID_API_KEY for email and TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN, TWILIO_PHONE_NUMBER for SMS.
A channel without credentials reports "not configured" instead of raising.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import date
from html import escape
from typing import Any, Optional

import httpx

from ..config import Settings
from ..domain.errors import ConfigurationError
from ..models import Reservation, RestaurantTable, Venue
from ..utils.time import format_slot_time

logger = logging.getLogger(__name__)

SENDGRID_URL = "https://api.sendgrid.com/v3/mail/send"
TWILIO_URL = "https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json"


@dataclass(frozen=True)
class ReservationDetails:
    venue_name: str
    venue_address: str
    date: date
    time: str
    table_number: str
    guest_count: int
    customer_name: str
    customer_email: str
    customer_phone: str

    @classmethod
    def from_reservation(
        cls,
        *,
        reservation: Reservation,
        table: RestaurantTable,
        venue: Venue,
    ) -> "ReservationDetails":
        return cls(
            venue_name=venue.name,
            venue_address=venue.address,
            date=reservation.reservation_date,
            time=format_slot_time(reservation.start_time),
            table_number=table.table_number,
            guest_count=reservation.guest_count,
            customer_name=reservation.customer_name,
            customer_email=reservation.customer_email,
            customer_phone=reservation.customer_phone,
        )

    @property
    def long_date(self) -> str:
        return f"{self.date:%A}, {self.date:%B} {self.date.day}, {self.date.year}"


@dataclass(frozen=True)
class NotificationResult:
    channel: str
    success: bool
    error: Optional[str] = None
    message_id: Optional[str] = None


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:500] if response.text else f"HTTP {response.status_code}"
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return str(body)[:500]


class EmailSender:
    channel = "email"

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        api_key: Optional[str],
        from_email: str,
        from_name: str,
        timeout: float = 10.0,
    ) -> None:
        self.client = client
        self.api_key = api_key
        self.from_email = from_email
        self.from_name = from_name
        self.timeout = timeout

    def _require_api_key(self) -> str:
        if not self.api_key:
            raise ConfigurationError("SendGrid API key not configured; set SENDGRID_API_KEY")
        return self.api_key

    def render(self, details: ReservationDetails) -> dict[str, Any]:
        rows = [
            ("Restaurant", details.venue_name),
            ("Date", details.long_date),
            ("Time", details.time),
            ("Table", details.table_number),
            ("Guests", str(details.guest_count)),
            ("Address", details.venue_address),
        ]
        rows_html = "".join(
            f"<tr><th align='left'>{escape(label)}:</th><td>{escape(value)}</td></tr>" for label, value in rows
        )
        html = (
            "<html><body style='font-family: Arial, sans-serif'>"
            "<h1>Reservation Confirmed!</h1>"
            f"<p>Hi {escape(details.customer_name)},</p>"
            "<p>Your reservation has been confirmed. We're looking forward to serving you!</p>"
            f"<table>{rows_html}</table>"
            "<p>If you need to make any changes or cancel your reservation, please contact us directly.</p>"
            "<p>This is an automated message. Please do not reply to this email.</p>"
            "</body></html>"
        )
        return {
            "personalizations": [
                {
                    "to": [{"email": details.customer_email, "name": details.customer_name}],
                    "subject": f"Reservation Confirmed - {details.venue_name}",
                }
            ],
            "from": {"email": self.from_email, "name": self.from_name},
            "content": [{"type": "text/html", "value": html}],
        }

    async def send(self, details: ReservationDetails) -> NotificationResult:
        try:
            api_key = self._require_api_key()
        except ConfigurationError as exc:
            return NotificationResult(channel=self.channel, success=False, error=str(exc))
        try:
            response = await self.client.post(
                SENDGRID_URL,
                json=self.render(details),
                headers={"Authorization": f"Bearer {api_key}"},
                timeout=self.timeout,
            )
        except httpx.HTTPError as exc:
            return NotificationResult(channel=self.channel, success=False, error=str(exc))
        if not response.is_success:
            return NotificationResult(
                channel=self.channel,
                success=False,
                error=f"SendGrid API error: {_error_detail(response)}",
            )
        return NotificationResult(
            channel=self.channel,
            success=True,
            message_id=response.headers.get("X-Message-Id"),
        )


class SmsSender:
    channel = "sms"

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        account_sid: Optional[str],
        auth_token: Optional[str],
        from_number: Optional[str],
        timeout: float = 10.0,
    ) -> None:
        self.client = client
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self.timeout = timeout

    def _require_credentials(self) -> tuple[str, str, str]:
        if not (self.account_sid and self.auth_token and self.from_number):
            raise ConfigurationError(
                "Twilio credentials not configured; set TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN and TWILIO_PHONE_NUMBER"
            )
        return self.account_sid, self.auth_token, self.from_number

    def render(self, details: ReservationDetails) -> str:
        return (
            "Reservation Confirmed!\n\n"
            f"Hi {details.customer_name},\n\n"
            f"Your reservation at {details.venue_name} is confirmed.\n\n"
            "Details:\n"
            f"Date: {details.date.isoformat()}\n"
            f"Time: {details.time}\n"
            f"Table: {details.table_number}\n"
            f"Guests: {details.guest_count}\n\n"
            f"Address: {details.venue_address}\n\n"
            "See you soon!"
        )

    async def send(self, details: ReservationDetails) -> NotificationResult:
        try:
            sid, token, from_number = self._require_credentials()
        except ConfigurationError as exc:
            return NotificationResult(channel=self.channel, success=False, error=str(exc))
        try:
            response = await self.client.post(
                TWILIO_URL.format(sid=sid),
                data={"To": details.customer_phone, "From": from_number, "Body": self.render(details)},
                auth=(sid, token),
                timeout=self.timeout,
            )
        except httpx.HTTPError as exc:
            return NotificationResult(channel=self.channel, success=False, error=str(exc))
        if not response.is_success:
            return NotificationResult(channel=self.channel, success=False, error=_error_detail(response))
        try:
            message_id = response.json().get("sid")
        except ValueError:
            message_id = None
        return NotificationResult(channel=self.channel, success=True, message_id=message_id)


class NotificationDispatcher:
    """Fire both channels concurrently; never retries and never raises."""

    def __init__(self, email: EmailSender, sms: SmsSender) -> None:
        self.email = email
        self.sms = sms

    @classmethod
    def from_settings(cls, settings: Settings, client: httpx.AsyncClient) -> "NotificationDispatcher":
        return cls(
            EmailSender(
                client,
                api_key=settings.sendgrid_api_key,
                from_email=settings.notify_from_email,
                from_name=settings.notify_from_name,
                timeout=settings.notify_timeout_seconds,
            ),
            SmsSender(
                client,
                account_sid=settings.twilio_account_sid,
                auth_token=settings.twilio_auth_token,
                from_number=settings.twilio_phone_number,
                timeout=settings.notify_timeout_seconds,
            ),
        )

    async def dispatch(self, details: ReservationDetails) -> list[NotificationResult]:
        senders = (self.email, self.sms)
        outcomes = await asyncio.gather(*(s.send(details) for s in senders), return_exceptions=True)
        results: list[NotificationResult] = []
        for sender, outcome in zip(senders, outcomes):
            if isinstance(outcome, BaseException):
                logger.error(
                    "notification_send_crashed",
                    extra={"channel": sender.channel},
                    exc_info=(type(outcome), outcome, outcome.__traceback__),
                )
                outcome = NotificationResult(channel=sender.channel, success=False, error=str(outcome))
            elif not outcome.success:
                logger.warning(
                    "notification_send_failed",
                    extra={"channel": outcome.channel, "error": outcome.error},
                )
            else:
                logger.info("notification_sent", extra={"channel": outcome.channel})
            results.append(outcome)
        return results
