# WhatsApp order notifications: Twilio, Meta Cloud API, or log only.
from __future__ import annotations
import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

import httpx

from .config import Settings

log = logging.getLogger(__name__)

TWILIO_URL = "https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json"
META_URL = "https://graph.facebook.com/v18.0/{phone_id}/messages"


class NotificationError(Exception):
    pass


@dataclass
class CustomerContact:
    name: str
    phone: str
    email: str


@dataclass
class DeliveryResult:
    mode: str
    to: str


def format_phone(phone_number: str) -> str:
    """E.164 formatting, US country code assumed when none is given."""
    if phone_number.startswith("+"):
        return phone_number
    return "+1" + re.sub(r"\D", "", phone_number)


def _money(value: float) -> str:
    return f"${value:.2f}"


def format_order_message(order: dict[str, Any], customer: CustomerContact) -> str:
    lines = []
    for item in order.get("items", []):
        name = item.get("product_name") or "Item"
        lines.append(
            f"• {name} - Qty: {item['quantity']} x {_money(item['price'])} = {_money(item['subtotal'])}"
        )
    created_at = order.get("created_at")
    created = created_at.strftime("%m/%d/%Y, %H:%M") if isinstance(created_at, datetime) else "N/A"
    return (
        "🛒 *New Order Received*\n\n"
        f"*Order ID:* {order['id']}\n"
        f"*Customer:* {customer.name or 'N/A'}\n"
        f"*Phone:* {customer.phone or 'N/A'}\n"
        f"*Email:* {customer.email or 'N/A'}\n\n"
        "*Items:*\n" + "\n".join(lines) + "\n\n"
        f"*Total Amount:* {_money(order['total_amount'])}\n"
        f"*Order Date:* {created}\n\n"
        "Please confirm this order."
    )


class WhatsAppNotifier:
    def __init__(self, settings: Settings, client: Optional[httpx.AsyncClient] = None, timeout: float = 10.0):
        self.settings = settings
        self._client = client
        self.timeout = timeout

    @property
    def mode(self) -> str:
        if self.settings.TWILIO_ACCOUNT_SID:
            return "twilio"
        if self.settings.WHATSAPP_API_KEY:
            return "meta"
        return "development"

    async def send(self, phone_number: str, message: str) -> DeliveryResult:
        to = format_phone(phone_number)
        mode = self.mode
        if mode == "development":
            log.info("whatsapp (development) to %s:\n%s", to, message)
            return DeliveryResult(mode=mode, to=to)

        try:
            if self._client is not None:
                await self._post(self._client, to, message)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    await self._post(client, to, message)
        except httpx.HTTPError as e:
            raise NotificationError(f"WhatsApp delivery via {mode} failed: {e}") from e
        log.info("whatsapp message sent to %s via %s", to, mode)
        return DeliveryResult(mode=mode, to=to)

    async def _post(self, client: httpx.AsyncClient, to: str, message: str) -> None:
        s = self.settings
        if self.mode == "twilio":
            response = await client.post(
                TWILIO_URL.format(sid=s.TWILIO_ACCOUNT_SID),
                auth=(s.TWILIO_ACCOUNT_SID, s.TWILIO_AUTH_TOKEN),
                data={
                    "From": f"whatsapp:{s.TWILIO_WHATSAPP_NUMBER}",
                    "To": f"whatsapp:{to}",
                    "Body": message,
                },
            )
        else:
            response = await client.post(
                META_URL.format(phone_id=s.WHATSAPP_PHONE_NUMBER_ID),
                headers={"Authorization": f"Bearer {s.WHATSAPP_API_KEY}"},
                json={
                    "messaging_product": "whatsapp",
                    "to": to,
                    "type": "text",
                    "text": {"body": message},
                },
            )
        response.raise_for_status()
