"""Discord webhook sink for operations alerts.

Each outbound event type maps to one embed builder. Builders are pure; only
``DiscordNotifier.send`` touches the network.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict

import httpx

from mysterybox import config

logger = logging.getLogger("mysterybox.notify")

AVATAR_URL = "https://cdn.discordapp.com/emojis/1279952661629419520.webp?size=96&quality=lossless"

COLOR_GREEN = 0x00FF00
COLOR_ORANGE = 0xFFA500
COLOR_DARK_GREEN = 0x008000
COLOR_RED = 0xFF0000
COLOR_BLUE = 0x0099FF
COLOR_PURPLE = 0x9146FF

SEVERITY_COLORS = {"info": COLOR_BLUE, "warning": COLOR_ORANGE, "error": COLOR_RED}


class NotificationDeliveryError(Exception):
    pass


def format_money(minor_units: int | None, currency: str | None = "usd") -> str:
    amount = (minor_units or 0) / 100
    if (currency or "usd").lower() == "usd":
        return f"${amount:.2f}"
    return f"{amount:.2f} {(currency or '').upper()}"


def _field(name: str, value: Any, inline: bool = True) -> Dict[str, Any]:
    text = str(value) if value not in (None, "") else "Unknown"
    return {"name": name, "value": text, "inline": inline}


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _new_payment(p: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "content": "🔔 **Admin Action Required** - New prize payment received!",
        "embed": {
            "title": "🎁 New Prize Payment Received!",
            "description": "A user has made a payment and is waiting for their prize to be opened.",
            "color": COLOR_GREEN,
            "fields": [
                _field("👤 User", p.get("user_name")),
                _field("📧 Email", p.get("user_email") or "No email"),
                _field("💰 Amount", format_money(p.get("amount"), p.get("currency"))),
                _field("🧾 Claim", p.get("claim_id"), inline=False),
            ],
            "footer": {"text": "Open the prize from the admin dashboard"},
        },
    }


def _prize_opened(p: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "content": "✅ **Prize Opened** - User prize has been opened by admin",
        "embed": {
            "title": "🎉 Prize Opened!",
            "description": "An admin has opened a prize for a user.",
            "color": COLOR_ORANGE,
            "fields": [
                _field("👤 User", p.get("user_name")),
                _field("📧 Email", p.get("user_email") or "No email"),
                _field("🎁 Prize", p.get("prize_name")),
                _field("💰 Value", format_money(p.get("prize_value"))),
                _field("👨‍💼 Opened By", p.get("admin_name") or "Admin"),
            ],
        },
    }


def _manual_prize_opened(p: Dict[str, Any]) -> Dict[str, Any]:
    fields = [
        _field("👤 User", p.get("user_name")),
        _field("🎁 Prize", p.get("prize_name")),
        _field("💰 Value", format_money(p.get("prize_value"))),
        _field("👨‍💼 Opened By", p.get("admin_name") or "Admin"),
    ]
    if p.get("box_number") is not None:
        fields.append(_field("📦 Box", f"#{p['box_number']}"))
    return {
        "content": "🛠️ **Manual Prize Opened** - Admin opened a prize manually",
        "embed": {
            "title": "🛠️ Manual Prize Opened",
            "description": "An admin opened a prize without the normal payment flow.",
            "color": COLOR_PURPLE,
            "fields": fields,
        },
    }


def _direct_box_opening(p: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "content": "📦 **Direct Box Opening** - No user assigned",
        "embed": {
            "title": f"📦 Box #{p.get('box_number')} Opened",
            "description": "An admin opened a box directly; no user is attached to it.",
            "color": COLOR_PURPLE,
            "fields": [
                _field("🎁 Prize", p.get("prize_name")),
                _field("💰 Value", format_money(p.get("prize_value"))),
                _field("👨‍💼 Opened By", p.get("admin_name") or "Admin"),
            ],
        },
    }


def _prize_delivered(p: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "content": "📦 **Prize Delivered** - User has received their prize",
        "embed": {
            "title": "📦 Prize Delivered!",
            "description": "A prize has been delivered to the user.",
            "color": COLOR_DARK_GREEN,
            "fields": [
                _field("👤 User", p.get("user_name")),
                _field("📧 Email", p.get("user_email") or "No email"),
                _field("🎁 Prize", p.get("prize_name")),
                _field("👨‍💼 Delivered By", p.get("admin_name") or "Admin"),
            ],
        },
    }


def _payment_failed(p: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "content": "❌ **Payment Failed** - User payment attempt failed",
        "embed": {
            "title": "❌ Payment Failed!",
            "description": "A payment attempt has failed.",
            "color": COLOR_RED,
            "fields": [
                _field("👤 User", p.get("user_name") or p.get("user_id")),
                _field("📧 Email", p.get("user_email") or "No email"),
                _field("❌ Error", p.get("error") or "Unknown error", inline=False),
            ],
        },
    }


def _system_alert(p: Dict[str, Any]) -> Dict[str, Any]:
    title = p.get("title") or "System Alert"
    return {
        "content": f"🔔 **System Alert** - {title}",
        "embed": {
            "title": f"🔔 {title}",
            "description": p.get("message") or "",
            "color": SEVERITY_COLORS.get(p.get("severity") or "info", COLOR_BLUE),
        },
    }


EMBED_BUILDERS: Dict[str, Callable[[Dict[str, Any]], Dict[str, Any]]] = {
    "NEW_PAYMENT": _new_payment,
    "PRIZE_OPENED": _prize_opened,
    "MANUAL_PRIZE_OPENED": _manual_prize_opened,
    "DIRECT_BOX_OPENING": _direct_box_opening,
    "PRIZE_DELIVERED": _prize_delivered,
    "PAYMENT_FAILED": _payment_failed,
    "SYSTEM_ALERT": _system_alert,
}


def build_webhook_payload(event_type: str, payload: Dict[str, Any]) -> Dict[str, Any]:
    builder = EMBED_BUILDERS.get(event_type)
    if builder is None:
        raise ValueError(f"unknown notification event: {event_type}")
    built = builder(payload or {})
    embed = dict(built["embed"])
    embed["timestamp"] = _now_iso()
    return {
        "content": built["content"],
        "embeds": [embed],
        "username": config.DISCORD_USERNAME,
        "avatar_url": AVATAR_URL,
    }


class DiscordNotifier:
    """Posts event embeds to a Discord webhook.

    Without a webhook URL the message is only logged and counts as delivered.
    """

    def __init__(
        self,
        webhook_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        self.webhook_url = config.DISCORD_WEBHOOK_URL if webhook_url is None else webhook_url
        self.timeout = config.DISCORD_TIMEOUT_SECONDS if timeout is None else timeout
        self._transport = transport
        if not self.webhook_url:
            logger.warning("discord_webhook_not_configured notifications will be logged only")

    def _get_client(self) -> httpx.Client:
        return httpx.Client(
            timeout=self.timeout,
            transport=self._transport,
            headers={"content-type": "application/json"},
        )

    def send(self, event_type: str, payload: Dict[str, Any]) -> None:
        """Deliver one event. Raises NotificationDeliveryError on failure."""
        body = build_webhook_payload(event_type, payload)
        if not self.webhook_url:
            logger.info("discord_notification_logged event_type=%s content=%s", event_type, body["content"])
            return
        try:
            with self._get_client() as client:
                resp = client.post(self.webhook_url, json=body)
                resp.raise_for_status()
        except httpx.HTTPError as exc:
            raise NotificationDeliveryError(f"{event_type}: {exc}") from exc
        logger.info("discord_notification_sent event_type=%s", event_type)
