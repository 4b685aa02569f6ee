from pydantic import BaseModel
from typing import Optional
from datetime import datetime


class KnowledgeDocumentCreate(BaseModel):
    title: str
    source_type: str = "manual"
    source_url: Optional[str] = None
    content: Optional[str] = None


class KnowledgeDocumentResponse(BaseModel):
    id: str
    title: str
    source_type: str
    source_url: Optional[str] = None
    status: str
    chunks_count: int
    error_message: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class KnowledgeSearchRequest(BaseModel):
    query: str
    limit: int = 5
