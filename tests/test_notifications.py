import json
from datetime import datetime

import httpx
import pytest
from pydantic import ValidationError

from restaurant_api.config import Settings
from restaurant_api.notifications import (
    CustomerContact,
    NotificationError,
    WhatsAppNotifier,
    format_order_message,
    format_phone,
)

ORDER = {
    "id": "65f0c0ffee",
    "items": [
        {"product_name": "Laddu", "quantity": 12, "price": 1.0, "subtotal": 12.0},
        {"product_name": "Gavvalu", "quantity": 1, "price": 7.0, "subtotal": 7.0},
    ],
    "total_amount": 19.0,
    "created_at": datetime(2024, 3, 5, 18, 45),
}


def recording_client(status_code=200):
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(status_code, json={"ok": status_code < 400})

    return httpx.AsyncClient(transport=httpx.MockTransport(handler)), requests


def test_format_phone():
    assert format_phone("(209) 597-8565") == "+12095978565"
    assert format_phone("+447700900123") == "+447700900123"


def test_order_message_lists_items_and_totals():
    message = format_order_message(ORDER, CustomerContact(name="Asha", phone="2095550100", email="N/A"))
    assert "*Order ID:* 65f0c0ffee" in message
    assert "*Customer:* Asha" in message
    assert "• Laddu - Qty: 12 x $1.00 = $12.00" in message
    assert "*Total Amount:* $19.00" in message
    assert "*Order Date:* 03/05/2024, 18:45" in message


def test_settings_reject_half_configured_providers():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, WHATSAPP_API_KEY="key")
    with pytest.raises(ValidationError):
        Settings(_env_file=None, TWILIO_ACCOUNT_SID="AC123")


@pytest.mark.anyio
async def test_development_mode_only_logs():
    client, requests = recording_client()
    notifier = WhatsAppNotifier(Settings(_env_file=None), client=client)
    result = await notifier.send("2095978565", "hello")
    assert result.mode == "development"
    assert result.to == "+12095978565"
    assert requests == []


@pytest.mark.anyio
async def test_meta_cloud_api_request():
    client, requests = recording_client()
    settings = Settings(_env_file=None, WHATSAPP_API_KEY="meta-key", WHATSAPP_PHONE_NUMBER_ID="1055")
    result = await WhatsAppNotifier(settings, client=client).send("2095978565", "hello")

    assert result.mode == "meta"
    request = requests[0]
    assert str(request.url) == "https://graph.facebook.com/v18.0/1055/messages"
    assert request.headers["authorization"] == "Bearer meta-key"
    assert json.loads(request.content) == {
        "messaging_product": "whatsapp",
        "to": "+12095978565",
        "type": "text",
        "text": {"body": "hello"},
    }


@pytest.mark.anyio
async def test_twilio_request():
    client, requests = recording_client()
    settings = Settings(
        _env_file=None,
        TWILIO_ACCOUNT_SID="AC123",
        TWILIO_AUTH_TOKEN="secret",
        TWILIO_WHATSAPP_NUMBER="+14155238886",
    )
    result = await WhatsAppNotifier(settings, client=client).send("2095978565", "hello")

    assert result.mode == "twilio"
    request = requests[0]
    assert request.url.path == "/2010-04-01/Accounts/AC123/Messages.json"
    assert request.headers["authorization"].startswith("Basic ")
    form = dict(httpx.QueryParams(request.content.decode()))
    assert form == {"From": "whatsapp:+14155238886", "To": "whatsapp:+12095978565", "Body": "hello"}


@pytest.mark.anyio
async def test_provider_error_raises_notification_error():
    client, _ = recording_client(status_code=500)
    settings = Settings(_env_file=None, WHATSAPP_API_KEY="meta-key", WHATSAPP_PHONE_NUMBER_ID="1055")
    with pytest.raises(NotificationError):
        await WhatsAppNotifier(settings, client=client).send("2095978565", "hello")
