from pydantic import BaseModel
from typing import Optional
from datetime import datetime


class ConversationResponse(BaseModel):
    id: str
    instance_id: str
    contact_id: str
    status: str
    attendance_mode: str
    unread_count: int
    last_message_at: Optional[datetime] = None
    assigned_to: Optional[str] = None
    department_id: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class MessageResponse(BaseModel):
    id: str
    conversation_id: str
    direction: str
    message_type: str
    content: Optional[str] = None
    media_url: Optional[str] = None
    status: str
    whatsapp_message_id: Optional[str] = None
    is_from_bot: bool
    audio_transcription: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class AttendanceUpdate(BaseModel):
    attendance_mode: str


class AssignRequest(BaseModel):
    assigned_to: Optional[str] = None
    department_id: Optional[str] = None
