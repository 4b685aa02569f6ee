from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime


class PersonaCreate(BaseModel):
    name: str
    description: Optional[str] = None
    system_prompt: str
    temperature: float = Field(0.7, ge=0, le=2)
    voice_enabled: bool = False
    voice_id: Optional[str] = None
    is_default: bool = False
    bitrix24_bot_enabled: bool = False


class PersonaUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    system_prompt: Optional[str] = None
    temperature: Optional[float] = Field(None, ge=0, le=2)
    voice_enabled: Optional[bool] = None
    voice_id: Optional[str] = None
    is_default: Optional[bool] = None
    bitrix24_bot_enabled: Optional[bool] = None


class PersonaResponse(PersonaCreate):
    id: str
    created_at: datetime

    class Config:
        from_attributes = True
