from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, Text, Float
from sqlalchemy.orm import relationship
from config.database import Base, generate_uuid, utcnow


class Persona(Base):
    __tablename__ = "personas"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    workspace_id = Column(String(36), ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    system_prompt = Column(Text, nullable=False)
    temperature = Column(Float, nullable=False, default=0.7)
    voice_enabled = Column(Boolean, nullable=False, default=False)
    voice_id = Column(String(100), nullable=True)
    is_default = Column(Boolean, nullable=False, default=False)
    bitrix24_bot_enabled = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    workspace = relationship("Workspace", back_populates="personas")

    def __repr__(self):
        return f"<Persona(name={self.name}, default={self.is_default})>"
