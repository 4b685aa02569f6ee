import logging
from typing import List, Iterable
from sqlalchemy.orm import Session
from .models import KnowledgeDocument, KnowledgeChunk

logger = logging.getLogger(__name__)

MIN_WORD_LENGTH = 3
DEFAULT_LIMIT = 5


def extract_query_words(query: str) -> List[str]:
    return [word for word in (query or "").lower().split() if len(word) >= MIN_WORD_LENGTH]


def score_chunk(content: str, words: List[str]) -> int:
    """Number of query words found as substrings of the chunk"""
    lowered = content.lower()
    return sum(1 for word in words if word in lowered)


def rank_chunks(chunks: Iterable[str], query: str, limit: int = DEFAULT_LIMIT) -> List[str]:
    """Chunks with a non-zero score, best first; ties keep their original order"""
    words = extract_query_words(query)
    if not words:
        return []

    scored = [(score_chunk(chunk, words), chunk) for chunk in chunks]
    scored = [item for item in scored if item[0] > 0]
    scored.sort(key=lambda item: item[0], reverse=True)
    return [chunk for _, chunk in scored[:limit]]


def search_knowledge(db: Session, workspace_id: str, query: str, limit: int = DEFAULT_LIMIT) -> List[str]:
    """Keyword scan over every chunk of the workspace's completed documents"""
    rows = db.query(KnowledgeChunk.content).join(
        KnowledgeDocument, KnowledgeChunk.document_id == KnowledgeDocument.id
    ).filter(
        KnowledgeDocument.workspace_id == workspace_id,
        KnowledgeDocument.status == "completed"
    ).order_by(KnowledgeDocument.created_at, KnowledgeChunk.chunk_index).all()

    results = rank_chunks((row.content for row in rows), query, limit)
    logger.info(f"Knowledge search matched {len(results)} of {len(rows)} chunks")
    return results
