from pydantic import BaseModel
from typing import Optional


class ProcessMessageRequest(BaseModel):
    conversation_id: str
    message_id: Optional[str] = None
    content: Optional[str] = None
    message_type: Optional[str] = None
    instance_id: Optional[str] = None
    contact_id: Optional[str] = None


class ProcessMessageResponse(BaseModel):
    success: bool = True
    skipped: bool = False
    response: Optional[str] = None
    audio_sent: bool = False
    knowledge_used: int = 0
    message_id: Optional[str] = None
