import logging
from datetime import datetime
from typing import Optional, Tuple, List
from sqlalchemy import text
from sqlalchemy.orm import Session
from config.database import generate_uuid, utcnow
from shared_utils.upsert import dialect_insert
from .models import Conversation, Message

logger = logging.getLogger(__name__)

# Status updates never move a message backwards; "failed" always applies
STATUS_RANK = {"pending": 0, "sent": 1, "delivered": 2, "read": 3}


def upsert_open_conversation(
    db: Session,
    workspace_id: str,
    instance_id: str,
    contact_id: str,
    unread_increment: int = 0,
    last_message_at: Optional[datetime] = None,
) -> Tuple[Conversation, bool]:
    """
    Find-or-create the open conversation for (instance, contact) in one statement.

    The partial unique index on open conversations arbitrates concurrent deliveries;
    the unread counter is incremented inside the same statement.
    """
    candidate_id = generate_uuid()
    now = utcnow()
    last_message_at = last_message_at or now
    insert = dialect_insert(db, Conversation)
    stmt = insert.values(
        id=candidate_id,
        workspace_id=workspace_id,
        instance_id=instance_id,
        contact_id=contact_id,
        status="open",
        attendance_mode="ai",
        unread_count=unread_increment,
        last_message_at=last_message_at,
        created_at=now,
        updated_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["instance_id", "contact_id"],
        index_where=text("status = 'open'"),
        set_={
            "unread_count": Conversation.unread_count + unread_increment,
            "last_message_at": last_message_at,
            "updated_at": now,
        },
    ).returning(Conversation.id)

    conversation_id = db.execute(stmt).scalar_one()
    created = conversation_id == candidate_id
    conversation = db.get(Conversation, conversation_id, populate_existing=True)

    if created:
        logger.info(f"✅ Opened conversation {conversation_id} for contact {contact_id}")
    return conversation, created


def get_conversation(db: Session, conversation_id: str, workspace_id: Optional[str] = None) -> Optional[Conversation]:
    query = db.query(Conversation).filter(Conversation.id == conversation_id)
    if workspace_id:
        query = query.filter(Conversation.workspace_id == workspace_id)
    return query.first()


def set_attendance_mode(db: Session, conversation: Conversation, mode: str) -> Conversation:
    # Last write wins
    conversation.attendance_mode = mode
    db.commit()
    db.refresh(conversation)
    return conversation


def find_message_by_whatsapp_id(db: Session, instance_id: str, whatsapp_message_id: str) -> Optional[Message]:
    if not whatsapp_message_id:
        return None
    return db.query(Message).filter(
        Message.instance_id == instance_id,
        Message.whatsapp_message_id == whatsapp_message_id
    ).first()


def create_message(db: Session, conversation: Conversation, **fields) -> Message:
    message = Message(
        workspace_id=conversation.workspace_id,
        conversation_id=conversation.id,
        instance_id=conversation.instance_id,
        contact_id=conversation.contact_id,
        **fields
    )
    db.add(message)
    db.commit()
    db.refresh(message)
    return message


def update_message_status(db: Session, instance_id: str, whatsapp_message_id: str, status: str) -> bool:
    """Apply a delivery status to a message; returns whether a row changed"""
    message = find_message_by_whatsapp_id(db, instance_id, whatsapp_message_id)
    if not message:
        logger.info(f"Status {status} for unknown message {whatsapp_message_id}")
        return False

    if status != "failed" and STATUS_RANK.get(status, -1) <= STATUS_RANK.get(message.status, -1):
        return False

    message.status = status
    db.commit()
    return True


def get_recent_messages(db: Session, conversation_id: str, limit: int = 10) -> List[Message]:
    """Last `limit` messages, oldest first"""
    messages = db.query(Message).filter(
        Message.conversation_id == conversation_id
    ).order_by(Message.created_at.desc()).limit(limit).all()
    return list(reversed(messages))


def get_conversation_message(db: Session, conversation_id: str, message_id: str) -> Optional[Message]:
    return db.query(Message).filter(
        Message.id == message_id,
        Message.conversation_id == conversation_id
    ).first()
