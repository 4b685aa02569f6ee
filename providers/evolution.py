"""
Evolution API adapter: webhook parsing and message sending.
"""
import logging
from typing import List, Dict, Any, Optional, Tuple
from .base import BaseProviderClient, normalize_phone, is_group_jid, extract_message_content
from .schema import InboundMessage, StatusUpdate, ConnectionUpdate, WebhookEvent, SendMessageRequest

logger = logging.getLogger(__name__)

# Evolution reports either numeric acks or their names
STATUS_MAP = {
    "0": "failed",
    "ERROR": "failed",
    "1": "pending",
    "PENDING": "pending",
    "2": "sent",
    "SERVER_ACK": "sent",
    "3": "delivered",
    "DELIVERY_ACK": "delivered",
    "4": "read",
    "READ": "read",
    "5": "read",
    "PLAYED": "read",
}

QR_PREFIX = "data:image/png;base64,"


def _as_list(value) -> list:
    if value is None:
        return []
    return value if isinstance(value, list) else [value]


def _parse_message(msg: Dict[str, Any], payload: Dict[str, Any]) -> Optional[InboundMessage]:
    key = msg.get("key") or {}
    remote_jid = key.get("remoteJid") or ""

    if is_group_jid(remote_jid):
        logger.info("Skipping group message")
        return None

    phone = normalize_phone(remote_jid)
    if not phone:
        logger.info("No contact phone found")
        return None

    message_type, content, media_url, mime_type = extract_message_content(msg.get("message") or msg)
    data = payload.get("data") if isinstance(payload.get("data"), dict) else {}

    return InboundMessage(
        phone_number=phone,
        from_me=key.get("fromMe") is True,
        whatsapp_message_id=key.get("id") or msg.get("id"),
        push_name=msg.get("pushName") or data.get("pushName") or None,
        message_type=message_type,
        content=content,
        media_url=media_url,
        media_mime_type=mime_type,
    )


def parse_webhook(payload: Dict[str, Any]) -> List[WebhookEvent]:
    """Translate an Evolution webhook body into normalized events"""
    event = str(payload.get("event") or payload.get("type") or "")
    # Evolution v2 sends dotted lowercase names, v1 upper snake case
    event = event.upper().replace(".", "_")
    data = payload.get("data")
    events: List[WebhookEvent] = []

    if event == "CONNECTION_UPDATE":
        data = data if isinstance(data, dict) else {}
        state = data.get("state") or payload.get("state") or payload.get("status")
        if state in ("open", "connected"):
            phone = (data.get("instance") or {}).get("owner") or data.get("number") or payload.get("number")
            events.append(ConnectionUpdate(status="connected", phone_number=normalize_phone(phone) or None))
        elif state in ("close", "disconnected"):
            events.append(ConnectionUpdate(status="disconnected"))
        elif state == "connecting":
            events.append(ConnectionUpdate(status="connecting"))

    elif event == "QRCODE_UPDATED":
        data = data if isinstance(data, dict) else {}
        qr_code = (
            (data.get("qrcode") or {}).get("base64")
            or data.get("base64")
            or (payload.get("qrcode") or {}).get("base64")
            or payload.get("base64")
            or data.get("qr")
            or payload.get("qr")
        )
        if qr_code:
            if not qr_code.startswith("data:image"):
                qr_code = f"{QR_PREFIX}{qr_code}"
            events.append(ConnectionUpdate(status="qr_pending", qr_code=qr_code))

    elif event == "MESSAGES_UPSERT":
        if isinstance(data, dict) and "messages" in data:
            messages = data["messages"]
        else:
            messages = payload.get("messages") or _as_list(data)
        for msg in messages:
            if not msg:
                continue
            message = _parse_message(msg, payload)
            if message:
                events.append(message)

    elif event == "MESSAGES_UPDATE":
        for update in _as_list(data) or [payload]:
            message_id = (update.get("key") or {}).get("id") or update.get("id")
            raw_status = update.get("status") or (update.get("update") or {}).get("status")
            status = STATUS_MAP.get(str(raw_status).upper()) if raw_status is not None else None
            if message_id and status:
                events.append(StatusUpdate(whatsapp_message_id=message_id, status=status))

    else:
        logger.info(f"Unhandled Evolution event: {event}")

    return events


class EvolutionClient(BaseProviderClient):
    provider = "evolution"

    def __init__(self, server_url: str, api_key: str, instance_name: str, transport=None):
        super().__init__(transport=transport)
        self.server_url = server_url.rstrip("/")
        self.api_key = api_key
        self.instance_name = instance_name

    def build_request(self, phone: str, request: SendMessageRequest) -> Tuple[str, Dict[str, Any]]:
        number = phone if "@" in phone else f"{phone}@s.whatsapp.net"
        text = request.message or ""
        media = request.media_url or request.media_base64

        if request.message_type in ("audio", "ptt"):
            return f"/message/sendWhatsAppAudio/{self.instance_name}", {
                "number": number,
                "audio": request.media_url or request.audio_base64 or request.media_base64,
            }
        if request.message_type in ("image", "video", "document") and media:
            body = {
                "number": number,
                "mediatype": request.message_type,
                "caption": request.caption or text,
                "media": media,
            }
            if request.message_type == "document":
                body["fileName"] = request.file_name or "document"
            return f"/message/sendMedia/{self.instance_name}", body
        return f"/message/sendText/{self.instance_name}", {"number": number, "text": text}

    async def send(self, phone_number: str, request: SendMessageRequest):
        endpoint, body = self.build_request(phone_number, request)
        headers = {
            "apikey": self.api_key,
            "Content-Type": "application/json",
        }
        data = await self._post(f"{self.server_url}{endpoint}", headers, body)
        message_id = (data.get("key") or {}).get("id") or data.get("id")
        return message_id, data
