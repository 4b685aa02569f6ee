from pydantic import BaseModel
from typing import Optional, Dict, Any
from datetime import datetime


class IntegrationUpsert(BaseModel):
    config: Dict[str, Any]
    is_active: bool = True


class IntegrationResponse(BaseModel):
    id: str
    type: str
    is_active: bool
    last_error: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
