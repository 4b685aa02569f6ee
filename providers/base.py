import re
import logging
import httpx
from typing import Optional, Dict, Any, Tuple
from config.settings import HTTP_TIMEOUT

logger = logging.getLogger(__name__)

_NON_DIGITS = re.compile(r"\D")


class ProviderError(Exception):
    """A messaging vendor rejected a call; carries the vendor's HTTP status"""

    def __init__(self, provider: str, status_code: int, message: str):
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code
        self.message = message


def normalize_phone(raw: Optional[str]) -> str:
    """
    Reduce any WhatsApp address to bare digits.

    "5511999990000@s.whatsapp.net", "+55 (11) 99999-0000" and "5511999990000:12@c.us"
    all become "5511999990000".
    """
    if not raw:
        return ""
    address = str(raw).split("@", 1)[0]
    # Multi-device jids carry a ":device" suffix
    address = address.split(":", 1)[0]
    return _NON_DIGITS.sub("", address)


def is_group_jid(jid: Optional[str]) -> bool:
    return bool(jid) and str(jid).endswith("@g.us")


def extract_message_content(message: Dict[str, Any]) -> Tuple[str, str, Optional[str], Optional[str]]:
    """
    Read a WhatsApp web-protocol message body (conversation / extendedTextMessage /
    imageMessage / ...) as used by Evolution and WAPI.

    Returns (message_type, content, media_url, media_mime_type).
    """
    message = message or {}

    if message.get("conversation"):
        return "text", message["conversation"], None, None
    if (message.get("extendedTextMessage") or {}).get("text"):
        return "text", message["extendedTextMessage"]["text"], None, None

    media_kinds = (
        ("imageMessage", "image", "image/jpeg"),
        ("audioMessage", "audio", "audio/ogg"),
        ("videoMessage", "video", "video/mp4"),
        ("documentMessage", "document", None),
        ("stickerMessage", "sticker", "image/webp"),
    )
    for key, message_type, default_mime in media_kinds:
        media = message.get(key)
        if media is None:
            continue
        if message_type == "audio" and media.get("ptt"):
            message_type = "ptt"
        content = media.get("caption") or ""
        if message_type == "document":
            content = content or media.get("fileName") or ""
        return message_type, content, media.get("url"), media.get("mimetype") or default_mime

    if message.get("locationMessage"):
        location = message["locationMessage"]
        return "location", f"{location.get('degreesLatitude')},{location.get('degreesLongitude')}", None, None
    if message.get("contactMessage"):
        return "contact", message["contactMessage"].get("displayName") or "", None, None

    return "text", "", None, None


class BaseProviderClient:
    """Shared HTTP plumbing for provider send adapters"""

    provider = "base"

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.transport = transport

    async def _post(self, url: str, headers: Dict[str, str], payload: Dict[str, Any], form: bool = False) -> Dict[str, Any]:
        logger.info(f"🔄 {self.provider} POST: {url}")
        async with httpx.AsyncClient(transport=self.transport, timeout=HTTP_TIMEOUT) as client:
            if form:
                response = await client.post(url, headers=headers, data=payload)
            else:
                response = await client.post(url, headers=headers, json=payload)

        if response.status_code >= 400:
            logger.error(f"❌ {self.provider} send failed ({response.status_code}): {response.text[:500]}")
            raise ProviderError(self.provider, response.status_code, f"{self.provider} API error: {response.text[:200]}")

        logger.info(f"✅ {self.provider} send success ({response.status_code})")
        return response.json() if response.content else {}

    async def send(self, phone_number: str, request) -> Tuple[Optional[str], Dict[str, Any]]:
        """Send a SendMessageRequest; returns (provider message id, raw response)"""
        raise NotImplementedError
