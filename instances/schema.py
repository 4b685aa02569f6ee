from pydantic import BaseModel
from typing import Optional, Dict, Any
from datetime import datetime


class InstanceCreate(BaseModel):
    name: str
    provider_type: str = "wapi"
    phone_number: Optional[str] = None
    provider_config: Optional[Dict[str, Any]] = None


class InstanceUpdate(BaseModel):
    name: Optional[str] = None
    status: Optional[str] = None
    phone_number: Optional[str] = None
    provider_config: Optional[Dict[str, Any]] = None


class InstanceResponse(BaseModel):
    id: str
    workspace_id: str
    name: str
    provider_type: str
    status: str
    phone_number: Optional[str] = None
    qr_code: Optional[str] = None
    profile_picture_url: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
