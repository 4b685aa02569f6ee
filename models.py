from sqlalchemy import Column, String, DateTime
from sqlalchemy.orm import relationship
from config.database import Base, generate_uuid, utcnow


class Workspace(Base):
    __tablename__ = "workspaces"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    name = Column(String(255), nullable=False)
    slug = Column(String(100), nullable=True, unique=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    instances = relationship("Instance", back_populates="workspace", cascade="all, delete-orphan")
    personas = relationship("Persona", back_populates="workspace", cascade="all, delete-orphan")
    departments = relationship("Department", back_populates="workspace", cascade="all, delete-orphan")
    integrations = relationship("Integration", back_populates="workspace", cascade="all, delete-orphan")
    knowledge_documents = relationship("KnowledgeDocument", back_populates="workspace", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Workspace(id={self.id}, name={self.name})>"


# Register every mapped class on Base.metadata alongside the workspace
from instances.models import Instance
from contacts.models import Contact
from conversations.models import Conversation, Message
from personas.models import Persona
from departments.models import Department
from integrations.models import Integration
from knowledge.models import KnowledgeDocument, KnowledgeChunk
