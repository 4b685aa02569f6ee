from pydantic import BaseModel
from typing import Optional, Dict, Any


class SyncContactRequest(BaseModel):
    contact_id: str


class SyncContactResponse(BaseModel):
    success: bool = True
    lead_id: str


class Bitrix24ConnectRequest(BaseModel):
    """Either a webhook_url or OAuth credentials (domain + tokens) must be supplied"""
    webhook_url: Optional[str] = None
    domain: Optional[str] = None
    member_id: Optional[str] = None
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None
    instance_id: Optional[str] = None
    connector_id: Optional[str] = None
    line_id: Optional[str] = None
    extra: Optional[Dict[str, Any]] = None
