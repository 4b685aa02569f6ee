from pydantic import BaseModel, Field, AliasChoices
from typing import List, Optional, Dict, Any, Union


# ------------- Normalized webhook events -------------

class InboundMessage(BaseModel):
    phone_number: str
    from_me: bool = False
    whatsapp_message_id: Optional[str] = None
    push_name: Optional[str] = None
    profile_picture_url: Optional[str] = None
    message_type: str = "text"
    content: str = ""
    media_url: Optional[str] = None
    media_mime_type: Optional[str] = None


class StatusUpdate(BaseModel):
    whatsapp_message_id: str
    status: str


class ConnectionUpdate(BaseModel):
    status: str
    phone_number: Optional[str] = None
    qr_code: Optional[str] = None
    profile_picture_url: Optional[str] = None


WebhookEvent = Union[InboundMessage, StatusUpdate, ConnectionUpdate]


# ------------- Outbound send request -------------

def _field(*names, default=None):
    return Field(default=default, validation_alias=AliasChoices(*names))


class SendMessageRequest(BaseModel):
    """Send body; every field is accepted in snake_case or camelCase"""
    instance_id: Optional[str] = _field("instance_id", "instanceId")
    contact_id: Optional[str] = _field("contact_id", "contactId")
    conversation_id: Optional[str] = _field("conversation_id", "conversationId")
    phone_number: Optional[str] = _field("phone_number", "phoneNumber", "phone", "to")
    message: Optional[str] = _field("message", "content", "text")
    message_type: str = _field("message_type", "messageType", default="text")
    media_url: Optional[str] = _field("media_url", "mediaUrl")
    media_base64: Optional[str] = _field("media_base64", "mediaBase64")
    audio_base64: Optional[str] = _field("audio_base64", "audioBase64")
    file_name: Optional[str] = _field("file_name", "fileName")
    caption: Optional[str] = None
    buttons: Optional[List[Dict[str, Any]]] = None
    sections: Optional[List[Dict[str, Any]]] = _field("sections", "list_sections", "listSections")
    title: Optional[str] = None
    footer: Optional[str] = None
    source: Optional[str] = None
    is_from_bot: Optional[bool] = _field("is_from_bot", "isFromBot")

    @property
    def has_media(self) -> bool:
        return bool(self.media_url or self.media_base64 or self.audio_base64)


class SendResult(BaseModel):
    success: bool = True
    message_id: Optional[str] = None
    whatsapp_message_id: Optional[str] = None
    conversation_id: Optional[str] = None
    attendance_mode: Optional[str] = None
