from sqlalchemy import Column, String, DateTime, ForeignKey, Text, JSON, UniqueConstraint
from sqlalchemy.orm import relationship
from config.database import Base, generate_uuid, utcnow


class Contact(Base):
    __tablename__ = "contacts"
    __table_args__ = (
        UniqueConstraint("instance_id", "phone_number", name="uq_contacts_instance_phone"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    workspace_id = Column(String(36), ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False, index=True)
    instance_id = Column(String(36), ForeignKey("instances.id", ondelete="CASCADE"), nullable=False)
    phone_number = Column(String(30), nullable=False)
    name = Column(String(255), nullable=True)
    push_name = Column(String(255), nullable=True)
    profile_picture_url = Column(Text, nullable=True)
    tags = Column(JSON, nullable=True, default=list)
    # "metadata" is reserved on declarative classes
    metadata_ = Column("metadata", JSON, nullable=True, default=dict)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    instance = relationship("Instance", back_populates="contacts")
    conversations = relationship("Conversation", back_populates="contact", cascade="all, delete-orphan")

    @property
    def display_name(self) -> str:
        return self.name or self.push_name or self.phone_number

    def __repr__(self):
        return f"<Contact(phone={self.phone_number}, name={self.name})>"
