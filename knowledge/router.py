from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import orm
from typing import List
from config.database import get_db
from shared_utils.workspace import get_workspace_id
from .models import KnowledgeDocument
from .schema import KnowledgeDocumentCreate, KnowledgeDocumentResponse, KnowledgeSearchRequest
from .search import search_knowledge
from .service import process_document
import logging

router = APIRouter()
logger = logging.getLogger(__name__)


def _get_document(db: orm.Session, document_id: str, workspace_id: str) -> KnowledgeDocument:
    document = db.query(KnowledgeDocument).filter(
        KnowledgeDocument.id == document_id,
        KnowledgeDocument.workspace_id == workspace_id
    ).first()
    if not document:
        raise HTTPException(status_code=404, detail="Document not found")
    return document


@router.post("/knowledge/documents", response_model=KnowledgeDocumentResponse)
def create_document(
    body: KnowledgeDocumentCreate,
    workspace_id: str = Depends(get_workspace_id),
    db: orm.Session = Depends(get_db)
):
    if body.source_type not in ("manual", "url"):
        raise HTTPException(status_code=400, detail="source_type must be 'manual' or 'url'")
    if body.source_type == "manual" and not body.content:
        raise HTTPException(status_code=400, detail="content is required for manual documents")
    if body.source_type == "url" and not body.source_url:
        raise HTTPException(status_code=400, detail="source_url is required for url documents")

    try:
        document = KnowledgeDocument(workspace_id=workspace_id, **body.model_dump())
        db.add(document)
        db.commit()
        db.refresh(document)
        return document
    except Exception as e:
        db.rollback()
        logger.error(f"Error creating document: {str(e)}")
        raise HTTPException(status_code=500, detail="Error creating document")


@router.get("/knowledge/documents", response_model=List[KnowledgeDocumentResponse])
def list_documents(workspace_id: str = Depends(get_workspace_id), db: orm.Session = Depends(get_db)):
    return db.query(KnowledgeDocument).filter(
        KnowledgeDocument.workspace_id == workspace_id
    ).order_by(KnowledgeDocument.created_at.desc()).all()


@router.post("/knowledge/documents/{document_id}/process", response_model=KnowledgeDocumentResponse)
async def process_document_endpoint(
    document_id: str,
    workspace_id: str = Depends(get_workspace_id),
    db: orm.Session = Depends(get_db)
):
    document = _get_document(db, document_id, workspace_id)
    document = await process_document(db, document)
    if document.status == "failed":
        raise HTTPException(status_code=500, detail=document.error_message or "Document processing failed")
    return document


@router.delete("/knowledge/documents/{document_id}")
def delete_document(document_id: str, workspace_id: str = Depends(get_workspace_id), db: orm.Session = Depends(get_db)):
    document = _get_document(db, document_id, workspace_id)
    try:
        db.delete(document)
        db.commit()
        return {"message": "Document deleted successfully"}
    except Exception as e:
        db.rollback()
        logger.error(f"Error deleting document {document_id}: {str(e)}")
        raise HTTPException(status_code=500, detail="Error deleting document")


@router.post("/knowledge/search")
def search(body: KnowledgeSearchRequest, workspace_id: str = Depends(get_workspace_id), db: orm.Session = Depends(get_db)):
    return {"query": body.query, "results": search_knowledge(db, workspace_id, body.query, body.limit)}
