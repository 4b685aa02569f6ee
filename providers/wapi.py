"""
W-API adapter: webhook parsing and message sending.

W-API delivers its own event names (webhookReceived, webhookStatus, ...) and, on older
instances, a legacy web-protocol format (message / messages.upsert / ack).
"""
import logging
from typing import List, Dict, Any, Optional, Tuple
from config.settings import WAPI_BASE_URL
from .base import BaseProviderClient, normalize_phone, is_group_jid, extract_message_content
from .schema import InboundMessage, StatusUpdate, ConnectionUpdate, WebhookEvent, SendMessageRequest

logger = logging.getLogger(__name__)

STATUS_MAP = {
    "DELIVERY": "delivered",
    "READ": "read",
    "PLAYED": "read",
}

ACK_MAP = {
    2: "delivered",
    3: "read",
}


def _parse_received(payload: Dict[str, Any]) -> Optional[InboundMessage]:
    sender = payload.get("sender") or {}
    chat = payload.get("chat") or {}

    if payload.get("isGroup") is True or is_group_jid(chat.get("id")):
        logger.info("Skipping group message")
        return None

    phone = normalize_phone(sender.get("id") or chat.get("id"))
    if not phone:
        logger.warning("webhookReceived without sender phone")
        return None

    content_obj = payload.get("msgContent") or {}
    message_type, content, media_url, mime_type = extract_message_content(content_obj)

    return InboundMessage(
        phone_number=phone,
        from_me=payload.get("fromMe") is True,
        whatsapp_message_id=payload.get("messageId"),
        push_name=sender.get("pushName") or None,
        profile_picture_url=sender.get("profilePicture") or chat.get("profilePicture") or None,
        message_type=message_type,
        content=content,
        media_url=media_url,
        media_mime_type=mime_type,
    )


def _parse_legacy_message(payload: Dict[str, Any]) -> Optional[InboundMessage]:
    data = payload.get("data") or payload.get("message") or payload
    key = data.get("key") or {}
    remote_jid = key.get("remoteJid") or data.get("from") or data.get("chatId")

    if not remote_jid or is_group_jid(remote_jid):
        logger.info("Skipping group message or invalid jid")
        return None

    message_type, content, media_url, mime_type = extract_message_content(data.get("message") or {})
    content = content or data.get("body") or data.get("content") or ""

    return InboundMessage(
        phone_number=normalize_phone(remote_jid),
        from_me=bool(key.get("fromMe") or data.get("fromMe")),
        whatsapp_message_id=key.get("id") or data.get("id"),
        push_name=data.get("pushName") or data.get("notifyName"),
        message_type=message_type,
        content=content,
        media_url=media_url,
        media_mime_type=mime_type,
    )


def parse_webhook(payload: Dict[str, Any]) -> List[WebhookEvent]:
    """Translate a W-API webhook body into normalized events"""
    event = payload.get("event") or payload.get("type")
    data = payload.get("data") or {}
    events: List[WebhookEvent] = []

    if event == "webhookReceived":
        message = _parse_received(payload)
        if message:
            events.append(message)

    elif event == "webhookStatus":
        status = STATUS_MAP.get(str(payload.get("status", "")).upper())
        if status and payload.get("messageId"):
            events.append(StatusUpdate(whatsapp_message_id=payload["messageId"], status=status))

    elif event == "webhookConnected":
        events.append(ConnectionUpdate(
            status="connected",
            phone_number=normalize_phone(payload.get("connectedPhone") or payload.get("phone")) or None,
            profile_picture_url=payload.get("profilePicture"),
        ))

    elif event in ("webhookDisconnected", "disconnected", "logout"):
        events.append(ConnectionUpdate(status="disconnected"))

    elif event == "webhookQrCode":
        events.append(ConnectionUpdate(status="qr_pending", qr_code=payload.get("qrCode") or payload.get("qr")))

    elif event in ("qr", "qrcode"):
        events.append(ConnectionUpdate(
            status="qr_pending",
            qr_code=payload.get("qrcode") or data.get("qrcode") or payload.get("qr"),
        ))

    elif event in ("authenticated", "connected", "ready"):
        wid = payload.get("wid") or ""
        phone = payload.get("phone") or data.get("phone") or wid.split("@")[0] or payload.get("connectedPhone")
        events.append(ConnectionUpdate(
            status="connected",
            phone_number=normalize_phone(phone) or None,
            profile_picture_url=payload.get("profilePicUrl") or data.get("profilePicUrl"),
        ))

    elif event in ("message", "messages.upsert"):
        message = _parse_legacy_message(payload)
        if message:
            events.append(message)

    elif event in ("message_ack", "ack"):
        message_id = payload.get("id") or data.get("id")
        ack = payload.get("ack", data.get("ack"))
        status = ACK_MAP.get(ack)
        if message_id and status:
            events.append(StatusUpdate(whatsapp_message_id=message_id, status=status))

    else:
        logger.info(f"Unhandled W-API event: {event}")

    return events


class WapiClient(BaseProviderClient):
    provider = "wapi"

    def __init__(self, api_key: str, instance_key: str, base_url: str = WAPI_BASE_URL, transport=None):
        super().__init__(transport=transport)
        self.api_key = api_key
        self.instance_key = instance_key
        self.base_url = base_url.rstrip("/")

    def build_request(self, phone: str, request: SendMessageRequest) -> Tuple[str, Dict[str, Any]]:
        message_type = request.message_type
        text = request.message or ""

        if message_type == "audio" and (request.audio_base64 or request.media_url):
            if request.audio_base64:
                return "message/send-audio", {"phone": phone, "audio": f"data:audio/mpeg;base64,{request.audio_base64}"}
            return "message/send-audio", {"phone": phone, "audioUrl": request.media_url}
        if message_type == "image" and request.media_url:
            return "message/send-image", {"phone": phone, "imageUrl": request.media_url, "caption": request.caption or text}
        if message_type == "video" and request.media_url:
            return "message/send-video", {"phone": phone, "videoUrl": request.media_url, "caption": request.caption or text}
        if message_type == "document" and request.media_url:
            return "message/send-document", {
                "phone": phone,
                "documentUrl": request.media_url,
                "fileName": request.file_name or text or "document",
            }
        return "message/send-text", {"phone": phone, "message": text}

    async def send(self, phone_number: str, request: SendMessageRequest):
        endpoint, body = self.build_request(phone_number, request)
        url = f"{self.base_url}/{endpoint}?instanceId={self.instance_key}"
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        data = await self._post(url, headers, body)
        message_id = (data.get("key") or {}).get("id") or data.get("id") or data.get("messageId")
        return message_id, data
