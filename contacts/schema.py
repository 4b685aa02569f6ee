from pydantic import BaseModel
from typing import Optional, List, Dict, Any
from datetime import datetime


class ContactUpdate(BaseModel):
    name: Optional[str] = None
    tags: Optional[List[str]] = None
    metadata: Optional[Dict[str, Any]] = None


class ContactResponse(BaseModel):
    id: str
    instance_id: str
    phone_number: str
    name: Optional[str] = None
    push_name: Optional[str] = None
    profile_picture_url: Optional[str] = None
    tags: Optional[List[str]] = None
    metadata: Optional[Dict[str, Any]] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_contact(cls, contact) -> "ContactResponse":
        return cls(
            id=contact.id,
            instance_id=contact.instance_id,
            phone_number=contact.phone_number,
            name=contact.name,
            push_name=contact.push_name,
            profile_picture_url=contact.profile_picture_url,
            tags=contact.tags or [],
            metadata=contact.metadata_ or {},
            created_at=contact.created_at,
            updated_at=contact.updated_at,
        )
