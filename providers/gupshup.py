"""
Gupshup (official WhatsApp Business API) adapter: webhook parsing and message sending.

Gupshup wraps every callback as {"type": ..., "payload": {...}}: "message" carries an
inbound message, "message-event" a delivery status and "user-event" opt-in changes.
Sends are form-encoded with the message itself as a JSON string.
"""
import json
import logging
from typing import List, Dict, Any, Optional, Tuple
from config.settings import GUPSHUP_API_URL
from .base import BaseProviderClient, ProviderError, normalize_phone
from .schema import InboundMessage, StatusUpdate, WebhookEvent, SendMessageRequest

logger = logging.getLogger(__name__)

STATUS_MAP = {
    "enqueued": "sent",
    "sent": "sent",
    "delivered": "delivered",
    "read": "read",
    "failed": "failed",
    "error": "failed",
}

MEDIA_TYPES = {
    "image": ("image", "image/jpeg"),
    "audio": ("audio", "audio/ogg"),
    "voice": ("ptt", "audio/ogg"),
    "video": ("video", "video/mp4"),
    "file": ("document", "application/pdf"),
    "document": ("document", "application/pdf"),
    "sticker": ("sticker", "image/webp"),
}


def _parse_message(body: Dict[str, Any]) -> Optional[InboundMessage]:
    message = body.get("payload") or {}
    sender = message.get("sender") or {}
    phone = normalize_phone(message.get("source") or sender.get("phone"))
    if not phone:
        logger.warning("Gupshup message without sender phone")
        return None

    kind = message.get("type") or "text"
    content_obj = message.get("payload") or {}
    message_type = "text"
    content = content_obj.get("text") or message.get("text") or ""
    media_url = None
    mime_type = None

    if kind in MEDIA_TYPES:
        message_type, mime_type = MEDIA_TYPES[kind]
        media_url = content_obj.get("url") or message.get("url")
        mime_type = content_obj.get("contentType") or mime_type
        content = content_obj.get("caption") or content_obj.get("name") or ""
    elif kind in ("quick_reply", "button_reply", "list_reply"):
        content = content_obj.get("text") or content_obj.get("title") or content_obj.get("postbackText") or ""
    elif kind == "location":
        message_type = "location"
        content = f"{content_obj.get('latitude')},{content_obj.get('longitude')}"
    elif kind == "contact":
        message_type = "contact"
        contacts = content_obj.get("contacts") or [{}]
        content = (contacts[0].get("name") or {}).get("formatted_name") or ""

    return InboundMessage(
        phone_number=phone,
        whatsapp_message_id=message.get("id") or body.get("messageId"),
        push_name=sender.get("name") or message.get("senderName") or None,
        message_type=message_type,
        content=content,
        media_url=media_url,
        media_mime_type=mime_type,
    )


def parse_webhook(body: Dict[str, Any]) -> List[WebhookEvent]:
    """Translate a Gupshup callback into normalized events"""
    event_type = body.get("type")
    events: List[WebhookEvent] = []

    if event_type == "message":
        message = _parse_message(body)
        if message:
            events.append(message)

    elif event_type == "message-event":
        payload = body.get("payload") or {}
        # gsId is the id returned by the send API; id is WhatsApp's
        message_id = payload.get("gsId") or payload.get("id")
        status = STATUS_MAP.get(payload.get("type") or payload.get("status"))
        if message_id and status:
            events.append(StatusUpdate(whatsapp_message_id=message_id, status=status))

    elif event_type == "user-event":
        logger.info(f"Gupshup user event: {(body.get('payload') or {}).get('type')}")

    else:
        logger.info(f"Unhandled Gupshup event: {event_type}")

    return events


class GupshupClient(BaseProviderClient):
    provider = "gupshup"

    def __init__(self, api_key: str, app_name: str, source_number: str, base_url: str = GUPSHUP_API_URL, transport=None):
        super().__init__(transport=transport)
        self.api_key = api_key
        self.app_name = app_name
        self.source_number = source_number
        self.base_url = base_url.rstrip("/")

    def build_message(self, request: SendMessageRequest) -> Dict[str, Any]:
        text = request.message or ""
        media_url = request.media_url
        message_type = request.message_type

        if message_type == "image" and media_url:
            return {"type": "image", "originalUrl": media_url, "previewUrl": media_url, "caption": request.caption or text}
        if message_type in ("audio", "ptt") and media_url:
            return {"type": "audio", "url": media_url}
        if message_type == "video" and media_url:
            return {"type": "video", "url": media_url, "caption": request.caption or text}
        if message_type == "document" and media_url:
            return {"type": "file", "url": media_url, "filename": request.file_name or "document"}
        # Gupshup only sends media by URL; anything else goes out as text
        return {"type": "text", "text": text or request.caption or ""}

    def build_request(self, phone: str, request: SendMessageRequest) -> Tuple[str, Dict[str, str]]:
        return "/msg", {
            "channel": "whatsapp",
            "source": self.source_number,
            "destination": phone,
            "src.name": self.app_name,
            "message": json.dumps(self.build_message(request), ensure_ascii=False),
        }

    async def send(self, phone_number: str, request: SendMessageRequest):
        endpoint, form = self.build_request(phone_number, request)
        headers = {
            "apikey": self.api_key,
            "Content-Type": "application/x-www-form-urlencoded",
        }
        data = await self._post(f"{self.base_url}{endpoint}", headers, form, form=True)
        # Gupshup can answer 2xx with {"status": "error"}
        if data.get("status") == "error":
            message = data.get("message") or "Failed to send message via Gupshup"
            logger.error(f"❌ gupshup send rejected: {message}")
            raise ProviderError(self.provider, 500, f"gupshup API error: {message}")
        return data.get("messageId"), data
