from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import orm, func
from typing import Optional
from config.database import get_db
from departments.models import Department
from shared_utils.workspace import get_workspace_id
from .crud import get_conversation, set_attendance_mode
from .models import Conversation, Message, ATTENDANCE_MODES, CONVERSATION_STATUSES
from .schema import ConversationResponse, MessageResponse, AttendanceUpdate, AssignRequest
import logging

router = APIRouter()
logger = logging.getLogger(__name__)

PAGE_SIZE = 50


def _get_conversation(db: orm.Session, conversation_id: str, workspace_id: str) -> Conversation:
    conversation = get_conversation(db, conversation_id, workspace_id)
    if not conversation:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return conversation


@router.get("/conversations")
def list_conversations(
    instance_id: Optional[str] = None,
    status: Optional[str] = None,
    attendance_mode: Optional[str] = None,
    page_no: int = 1,
    workspace_id: str = Depends(get_workspace_id),
    db: orm.Session = Depends(get_db)
):
    query = db.query(Conversation).filter(Conversation.workspace_id == workspace_id)
    if instance_id:
        query = query.filter(Conversation.instance_id == instance_id)
    if status:
        if status not in CONVERSATION_STATUSES:
            raise HTTPException(status_code=400, detail="Invalid conversation status")
        query = query.filter(Conversation.status == status)
    if attendance_mode:
        query = query.filter(Conversation.attendance_mode == attendance_mode)

    total = query.with_entities(func.count(Conversation.id)).scalar()
    conversations = query.order_by(
        Conversation.last_message_at.desc()
    ).offset(PAGE_SIZE * (max(page_no, 1) - 1)).limit(PAGE_SIZE).all()

    return {
        "conversations": [ConversationResponse.model_validate(c) for c in conversations],
        "page_no": page_no,
        "total": total,
        "total_pages": (total + PAGE_SIZE - 1) // PAGE_SIZE,
    }


@router.get("/conversations/{conversation_id}", response_model=ConversationResponse)
def read_conversation(conversation_id: str, workspace_id: str = Depends(get_workspace_id), db: orm.Session = Depends(get_db)):
    return _get_conversation(db, conversation_id, workspace_id)


@router.get("/conversations/{conversation_id}/messages")
def list_messages(
    conversation_id: str,
    page_no: int = 1,
    workspace_id: str = Depends(get_workspace_id),
    db: orm.Session = Depends(get_db)
):
    """Newest page first; messages inside a page are oldest first"""
    _get_conversation(db, conversation_id, workspace_id)
    query = db.query(Message).filter(Message.conversation_id == conversation_id)
    total = query.with_entities(func.count(Message.id)).scalar()
    messages = query.order_by(Message.created_at.desc()).offset(PAGE_SIZE * (max(page_no, 1) - 1)).limit(PAGE_SIZE).all()

    return {
        "messages": [MessageResponse.model_validate(m) for m in reversed(messages)],
        "page_no": page_no,
        "total": total,
        "total_pages": (total + PAGE_SIZE - 1) // PAGE_SIZE,
    }


@router.patch("/conversations/{conversation_id}/attendance", response_model=ConversationResponse)
def update_attendance(
    conversation_id: str,
    body: AttendanceUpdate,
    workspace_id: str = Depends(get_workspace_id),
    db: orm.Session = Depends(get_db)
):
    if body.attendance_mode not in ATTENDANCE_MODES:
        raise HTTPException(status_code=400, detail="attendance_mode must be 'ai' or 'human'")
    conversation = _get_conversation(db, conversation_id, workspace_id)
    conversation = set_attendance_mode(db, conversation, body.attendance_mode)
    logger.info(f"Conversation {conversation_id} attendance set to {body.attendance_mode}")
    return conversation


@router.post("/conversations/{conversation_id}/assign", response_model=ConversationResponse)
def assign_conversation(
    conversation_id: str,
    body: AssignRequest,
    workspace_id: str = Depends(get_workspace_id),
    db: orm.Session = Depends(get_db)
):
    conversation = _get_conversation(db, conversation_id, workspace_id)
    if body.department_id:
        department = db.query(Department).filter(
            Department.id == body.department_id,
            Department.workspace_id == workspace_id
        ).first()
        if not department:
            raise HTTPException(status_code=404, detail="Department not found")

    try:
        conversation.assigned_to = body.assigned_to
        conversation.department_id = body.department_id
        # A person now owns the thread
        conversation.attendance_mode = "human"
        db.commit()
        db.refresh(conversation)
        return conversation
    except Exception as e:
        db.rollback()
        logger.error(f"❌ Error assigning conversation {conversation_id}: {str(e)}")
        raise HTTPException(status_code=500, detail="Error assigning conversation")


@router.post("/conversations/{conversation_id}/close", response_model=ConversationResponse)
def close_conversation(conversation_id: str, workspace_id: str = Depends(get_workspace_id), db: orm.Session = Depends(get_db)):
    conversation = _get_conversation(db, conversation_id, workspace_id)
    conversation.status = "closed"
    db.commit()
    db.refresh(conversation)
    logger.info(f"Closed conversation {conversation_id}")
    return conversation


@router.post("/conversations/{conversation_id}/read", response_model=ConversationResponse)
def mark_conversation_read(conversation_id: str, workspace_id: str = Depends(get_workspace_id), db: orm.Session = Depends(get_db)):
    conversation = _get_conversation(db, conversation_id, workspace_id)
    conversation.unread_count = 0
    db.commit()
    db.refresh(conversation)
    return conversation
