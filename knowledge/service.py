import logging
import httpx
from typing import Optional
from bs4 import BeautifulSoup
from sqlalchemy.orm import Session
from config import settings
from .chunking import split_into_chunks, estimate_tokens
from .models import KnowledgeDocument, KnowledgeChunk

logger = logging.getLogger(__name__)

STORED_CONTENT_LIMIT = 10000


class DocumentProcessingError(Exception):
    pass


def html_to_text(html: str) -> str:
    soup = BeautifulSoup(html, "html.parser")
    for element in soup(["script", "style", "noscript"]):
        element.decompose()
    return soup.get_text(separator=" ", strip=True)


async def fetch_url_text(url: str, transport: Optional[httpx.AsyncBaseTransport] = None) -> str:
    async with httpx.AsyncClient(transport=transport, timeout=settings.HTTP_TIMEOUT, follow_redirects=True) as client:
        response = await client.get(url, headers={"User-Agent": "Mozilla/5.0 (compatible; KnowledgeBot/1.0)"})
    if response.status_code >= 400:
        raise DocumentProcessingError(f"Failed to fetch URL: {response.status_code}")
    return html_to_text(response.text)


async def extract_text(document: KnowledgeDocument, transport: Optional[httpx.AsyncBaseTransport] = None) -> str:
    if document.source_type == "manual":
        return document.content or ""
    if document.source_type == "url":
        if not document.source_url:
            raise DocumentProcessingError("URL document without source_url")
        return await fetch_url_text(document.source_url, transport)
    raise DocumentProcessingError(f"Unsupported source type: {document.source_type}")


async def process_document(
    db: Session,
    document: KnowledgeDocument,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> KnowledgeDocument:
    """
    Extract, chunk and store a document's text, replacing any previous chunks.

    The document ends "completed" with its chunk count, or "failed" with the error.
    """
    document.status = "processing"
    document.error_message = None
    db.commit()

    try:
        text = await extract_text(document, transport)
        chunks = split_into_chunks(text)
        if not chunks:
            raise DocumentProcessingError("No text content extracted from document")

        db.query(KnowledgeChunk).filter(KnowledgeChunk.document_id == document.id).delete()
        for index, content in enumerate(chunks):
            db.add(KnowledgeChunk(
                document_id=document.id,
                workspace_id=document.workspace_id,
                chunk_index=index,
                content=content,
                tokens_count=estimate_tokens(content),
            ))

        document.content = text[:STORED_CONTENT_LIMIT]
        document.chunks_count = len(chunks)
        document.status = "completed"
        db.commit()
        logger.info(f"✅ Document {document.id} processed into {len(chunks)} chunks")

    except (DocumentProcessingError, httpx.HTTPError) as e:
        db.rollback()
        document.status = "failed"
        document.error_message = str(e)
        db.commit()
        logger.error(f"❌ Document {document.id} failed: {str(e)}")

    db.refresh(document)
    return document
