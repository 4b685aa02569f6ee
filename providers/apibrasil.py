"""
APIBrasil WhatsApp gateway adapter: webhook parsing and message sending.
"""
import logging
from typing import List, Dict, Any, Optional, Tuple
from config.settings import APIBRASIL_BASE_URL
from .base import BaseProviderClient, normalize_phone
from .schema import InboundMessage, StatusUpdate, ConnectionUpdate, WebhookEvent, SendMessageRequest

logger = logging.getLogger(__name__)

ACK_MAP = {
    -1: "failed",
    "failed": "failed",
    2: "delivered",
    "delivered": "delivered",
    3: "read",
    "read": "read",
}


def _media_fields(message: Dict[str, Any], key: str) -> Tuple[Dict[str, Any], Optional[str]]:
    media = message.get(key) or {}
    return media, media.get("url") or message.get("mediaUrl") or message.get("url")


def _parse_message(message: Dict[str, Any]) -> Optional[InboundMessage]:
    if message.get("fromMe") is True or message.get("isFromMe") is True:
        logger.info("Skipping outgoing message")
        return None

    phone = normalize_phone(message.get("from") or message.get("remoteJid") or message.get("phone"))
    if not phone:
        logger.warning("Could not extract sender phone")
        return None

    kind = message.get("type")
    message_type = "text"
    content = ""
    media_url = None

    if message.get("body") or message.get("text") or message.get("conversation"):
        content = message.get("body") or message.get("text") or message.get("conversation")
    elif message.get("imageMessage") or kind == "image":
        media, media_url = _media_fields(message, "imageMessage")
        message_type = "image"
        content = media.get("caption") or message.get("caption") or "[Imagem]"
    elif message.get("audioMessage") or kind in ("audio", "ptt"):
        _, media_url = _media_fields(message, "audioMessage")
        message_type = "audio"
        content = "[Áudio]"
    elif message.get("videoMessage") or kind == "video":
        media, media_url = _media_fields(message, "videoMessage")
        message_type = "video"
        content = media.get("caption") or message.get("caption") or "[Vídeo]"
    elif message.get("documentMessage") or kind == "document":
        media, media_url = _media_fields(message, "documentMessage")
        message_type = "document"
        content = media.get("fileName") or message.get("fileName") or "[Documento]"
    elif message.get("buttonResponse") or message.get("listResponse") or message.get("selectedButtonId"):
        button = message.get("buttonResponse") or {}
        selection = message.get("listResponse") or {}
        content = (
            button.get("selectedButtonId")
            or selection.get("title")
            or message.get("selectedButtonId")
            or selection.get("rowId")
            or ""
        )

    key = message.get("key") or {}
    return InboundMessage(
        phone_number=phone,
        whatsapp_message_id=message.get("id") or message.get("messageId") or key.get("id"),
        push_name=message.get("pushName") or message.get("notifyName") or message.get("senderName") or None,
        message_type=message_type,
        content=content,
        media_url=media_url,
    )


def parse_webhook(body: Dict[str, Any]) -> List[WebhookEvent]:
    """Translate an APIBrasil webhook body into normalized events"""
    event_type = body.get("event") or body.get("type") or "message"
    data = body.get("data") if isinstance(body.get("data"), dict) else {}
    events: List[WebhookEvent] = []

    # Acks also carry "status", so they are recognised first
    if event_type in ("message_status", "ack") or "ack" in body:
        message_id = body.get("messageId") or body.get("id") or (body.get("key") or {}).get("id")
        ack = body.get("ack", body.get("status"))
        status = ACK_MAP.get(ack, "sent")
        if message_id:
            events.append(StatusUpdate(whatsapp_message_id=message_id, status=status))
        return events

    if event_type == "connection" or body.get("status"):
        status = body.get("status") or body.get("state")
        if status in ("CONNECTED", "open", "connected"):
            phone = body.get("phone") or body.get("number") or body.get("wid")
            events.append(ConnectionUpdate(status="connected", phone_number=normalize_phone(phone) or None))
        elif status in ("DISCONNECTED", "close"):
            events.append(ConnectionUpdate(status="disconnected"))
        elif status == "QRCODE" or body.get("qrcode"):
            events.append(ConnectionUpdate(status="qr_pending", qr_code=body.get("qrcode") or body.get("qr")))
        return events

    if event_type == "message" or body.get("message") or data.get("message"):
        message = body.get("message") or data.get("message") or body
        parsed = _parse_message(message)
        if parsed:
            events.append(parsed)
        return events

    logger.info(f"Unhandled APIBrasil event: {event_type}")
    return events


class ApiBrasilClient(BaseProviderClient):
    provider = "apibrasil"

    def __init__(self, credentials: Dict[str, Any], base_url: str = APIBRASIL_BASE_URL, transport=None):
        super().__init__(transport=transport)
        self.credentials = credentials
        self.base_url = base_url.rstrip("/")

    def get_headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "SecretKey": self.credentials.get("secret_key", ""),
            "DeviceToken": self.credentials.get("device_token", ""),
            "PublicToken": self.credentials.get("public_token", ""),
            "Authorization": f"Bearer {self.credentials.get('bearer_token', '')}",
        }

    @staticmethod
    def _buttons(request: SendMessageRequest) -> List[Dict[str, Any]]:
        return [
            {"buttonId": b.get("id"), "buttonText": {"displayText": b.get("title")}, "type": 1}
            for b in request.buttons or []
        ]

    @staticmethod
    def _sections(request: SendMessageRequest) -> List[Dict[str, Any]]:
        return [
            {
                "title": section.get("title"),
                "rows": [
                    {"rowId": row.get("rowId"), "title": row.get("title"), "description": row.get("description") or ""}
                    for row in section.get("rows", [])
                ],
            }
            for section in request.sections or []
        ]

    def build_request(self, phone: str, request: SendMessageRequest) -> Tuple[str, Dict[str, Any]]:
        text = request.message or ""
        media = request.media_url or request.media_base64
        message_type = request.message_type

        if message_type == "buttons" or (message_type == "text" and request.buttons):
            return "/whatsapp/sendButtons", {
                "number": phone,
                "title": request.title or "",
                "message": text,
                "footer": request.footer or "",
                "buttons": self._buttons(request),
            }
        if message_type == "list" or (message_type == "text" and request.sections):
            return "/whatsapp/sendList", {
                "number": phone,
                "title": request.title or "",
                "description": text,
                "buttonText": request.caption or "Ver opções",
                "footer": request.footer or "",
                "sections": self._sections(request),
            }
        if message_type == "image":
            return "/whatsapp/sendImage", {"number": phone, "image": media, "caption": request.caption or text}
        if message_type in ("audio", "ptt"):
            return "/whatsapp/sendAudio", {"number": phone, "audio": media or request.audio_base64, "ptt": True}
        if message_type == "video":
            return "/whatsapp/sendVideo", {"number": phone, "video": media, "caption": request.caption or text}
        if message_type == "document":
            return "/whatsapp/sendFile", {
                "number": phone,
                "file": media,
                "fileName": request.file_name or "document",
                "caption": request.caption or text,
            }
        return "/whatsapp/sendText", {"number": phone, "message": text}

    async def send(self, phone_number: str, request: SendMessageRequest):
        endpoint, body = self.build_request(phone_number, request)
        data = await self._post(f"{self.base_url}{endpoint}", self.get_headers(), body)
        message_id = (
            (data.get("key") or {}).get("id")
            or data.get("messageId")
            or data.get("id")
            or ((data.get("response") or {}).get("key") or {}).get("id")
        )
        return message_id, data
