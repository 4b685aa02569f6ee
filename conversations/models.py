from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Text, JSON, Index, text
from sqlalchemy.orm import relationship
from config.database import Base, generate_uuid, utcnow

CONVERSATION_STATUSES = ("open", "closed", "pending")
ATTENDANCE_MODES = ("ai", "human")
MESSAGE_TYPES = ("text", "image", "audio", "ptt", "video", "document", "sticker", "location", "contact")
MESSAGE_STATUSES = ("pending", "sent", "delivered", "read", "failed")


class Conversation(Base):
    __tablename__ = "conversations"
    __table_args__ = (
        # At most one open conversation per (instance, contact)
        Index(
            "uq_conversations_open_thread",
            "instance_id",
            "contact_id",
            unique=True,
            postgresql_where=text("status = 'open'"),
            sqlite_where=text("status = 'open'"),
        ),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    workspace_id = Column(String(36), ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False, index=True)
    instance_id = Column(String(36), ForeignKey("instances.id", ondelete="CASCADE"), nullable=False)
    contact_id = Column(String(36), ForeignKey("contacts.id", ondelete="CASCADE"), nullable=False)
    status = Column(String(20), nullable=False, default="open")
    attendance_mode = Column(String(20), nullable=False, default="ai")
    unread_count = Column(Integer, nullable=False, default=0)
    last_message_at = Column(DateTime, nullable=True)
    assigned_to = Column(String(36), nullable=True)
    department_id = Column(String(36), ForeignKey("departments.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    instance = relationship("Instance", back_populates="conversations")
    contact = relationship("Contact", back_populates="conversations")
    department = relationship("Department")
    messages = relationship("Message", back_populates="conversation", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Conversation(id={self.id}, mode={self.attendance_mode}, status={self.status})>"


class Message(Base):
    __tablename__ = "messages"
    __table_args__ = (
        Index("ix_messages_instance_wa_id", "instance_id", "whatsapp_message_id"),
        Index("ix_messages_conversation_created", "conversation_id", "created_at"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    workspace_id = Column(String(36), ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False)
    conversation_id = Column(String(36), ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False)
    instance_id = Column(String(36), ForeignKey("instances.id", ondelete="CASCADE"), nullable=False)
    contact_id = Column(String(36), ForeignKey("contacts.id", ondelete="CASCADE"), nullable=False)
    direction = Column(String(10), nullable=False)
    message_type = Column(String(20), nullable=False, default="text")
    content = Column(Text, nullable=True)
    media_url = Column(Text, nullable=True)
    media_mime_type = Column(String(100), nullable=True)
    status = Column(String(20), nullable=False, default="pending")
    whatsapp_message_id = Column(String(255), nullable=True)
    is_from_bot = Column(Boolean, nullable=False, default=False)
    audio_transcription = Column(Text, nullable=True)
    metadata_ = Column("metadata", JSON, nullable=True, default=dict)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    conversation = relationship("Conversation", back_populates="messages")

    def __repr__(self):
        return f"<Message(id={self.id}, direction={self.direction}, type={self.message_type})>"
