import json
from datetime import date
from typing import Callable, List
from urllib.parse import parse_qs

import httpx
import pytest
from slotbook.config import Settings
from slotbook.services.notifications import (
    EmailSender,
    NotificationDispatcher,
    NotificationResult,
    ReservationDetails,
    SmsSender,
)

DETAILS = ReservationDetails(
    venue_name="Harbour <Grill>",
    venue_address="1 Quay St",
    date=date(2026, 5, 20),
    time="18:30",
    table_number="T1",
    guest_count=2,
    customer_name="Grace",
    customer_email="grace@example.com",
    customer_phone="+15550111",
)


def _client(handler: Callable[[httpx.Request], httpx.Response], seen: List[httpx.Request]) -> httpx.AsyncClient:
    def record(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return handler(request)

    return httpx.AsyncClient(transport=httpx.MockTransport(record))


def test_long_date_format() -> None:
    assert DETAILS.long_date == "Wednesday, May 20, 2026"


def test_email_render_escapes_html() -> None:
    sender = EmailSender(httpx.AsyncClient(), api_key="k", from_email="noreply@x.test", from_name="X")
    payload = sender.render(DETAILS)
    assert payload["personalizations"][0]["to"][0]["email"] == "grace@example.com"
    assert payload["personalizations"][0]["subject"] == "Reservation Confirmed - Harbour <Grill>"
    html = payload["content"][0]["value"]
    assert "Harbour &lt;Grill&gt;" in html
    assert "Wednesday, May 20, 2026" in html


@pytest.mark.asyncio
async def test_email_send_posts_to_sendgrid() -> None:
    seen: List[httpx.Request] = []
    client = _client(lambda r: httpx.Response(202, headers={"X-Message-Id": "msg-1"}), seen)
    sender = EmailSender(client, api_key="sg-key", from_email="noreply@x.test", from_name="X")

    result = await sender.send(DETAILS)

    assert result == NotificationResult(channel="email", success=True, message_id="msg-1")
    assert seen[0].headers["Authorization"] == "Bearer sg-key"
    assert json.loads(seen[0].content)["from"]["email"] == "noreply@x.test"
    await client.aclose()


@pytest.mark.asyncio
async def test_email_without_api_key_is_not_configured() -> None:
    seen: List[httpx.Request] = []
    client = _client(lambda r: httpx.Response(202), seen)
    sender = EmailSender(client, api_key=None, from_email="noreply@x.test", from_name="X")

    result = await sender.send(DETAILS)

    assert result.success is False
    assert "not configured" in (result.error or "")
    assert seen == []
    await client.aclose()


@pytest.mark.asyncio
async def test_email_provider_error_is_reported() -> None:
    seen: List[httpx.Request] = []
    client = _client(lambda r: httpx.Response(401, json={"message": "bad key"}), seen)
    sender = EmailSender(client, api_key="sg-key", from_email="noreply@x.test", from_name="X")

    result = await sender.send(DETAILS)

    assert result.success is False
    assert result.error == "SendGrid API error: bad key"
    await client.aclose()


@pytest.mark.asyncio
async def test_sms_send_uses_form_and_basic_auth() -> None:
    seen: List[httpx.Request] = []
    client = _client(lambda r: httpx.Response(201, json={"sid": "SM123"}), seen)
    sender = SmsSender(client, account_sid="AC1", auth_token="tok", from_number="+15550000")

    result = await sender.send(DETAILS)

    assert result.success is True and result.message_id == "SM123"
    request = seen[0]
    assert request.url.path == "/2010-04-01/Accounts/AC1/Messages.json"
    assert request.headers["Authorization"].startswith("Basic ")
    form = parse_qs(request.content.decode())
    assert form["To"] == ["+15550111"]
    assert "Table: T1" in form["Body"][0]
    await client.aclose()


@pytest.mark.asyncio
async def test_sms_transport_error_is_reported() -> None:
    def boom(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("unreachable", request=request)

    client = httpx.AsyncClient(transport=httpx.MockTransport(boom))
    sender = SmsSender(client, account_sid="AC1", auth_token="tok", from_number="+15550000")

    result = await sender.send(DETAILS)

    assert result.success is False
    assert "unreachable" in (result.error or "")
    await client.aclose()


@pytest.mark.asyncio
async def test_dispatcher_runs_both_channels_and_never_raises() -> None:
    class Exploding:
        channel = "sms"

        async def send(self, details: ReservationDetails) -> NotificationResult:
            raise RuntimeError("kaboom")

    seen: List[httpx.Request] = []
    client = _client(lambda r: httpx.Response(202), seen)
    email = EmailSender(client, api_key="sg-key", from_email="noreply@x.test", from_name="X")
    dispatcher = NotificationDispatcher(email, Exploding())  # type: ignore[arg-type]

    results = await dispatcher.dispatch(DETAILS)

    assert [r.channel for r in results] == ["email", "sms"]
    assert results[0].success is True
    assert results[1].success is False and results[1].error == "kaboom"
    await client.aclose()


@pytest.mark.asyncio
async def test_dispatcher_from_settings_without_credentials() -> None:
    seen: List[httpx.Request] = []
    client = _client(lambda r: httpx.Response(202), seen)
    dispatcher = NotificationDispatcher.from_settings(Settings(), client)

    results = await dispatcher.dispatch(DETAILS)

    assert all(not r.success for r in results)
    assert seen == []
    await client.aclose()
