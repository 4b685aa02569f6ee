from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, Text, JSON, UniqueConstraint
from sqlalchemy.orm import relationship
from config.database import Base, generate_uuid, utcnow

INTEGRATION_TYPES = ("wapi", "evolution", "gupshup", "bitrix24", "elevenlabs")


class Integration(Base):
    __tablename__ = "integrations"
    __table_args__ = (
        UniqueConstraint("workspace_id", "type", name="uq_integrations_workspace_type"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    workspace_id = Column(String(36), ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False)
    type = Column(String(30), nullable=False)
    # Opaque vendor credentials: API keys, OAuth tokens, webhook URLs
    config = Column(JSON, nullable=False, default=dict)
    is_active = Column(Boolean, nullable=False, default=True)
    last_error = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    workspace = relationship("Workspace", back_populates="integrations")

    def __repr__(self):
        return f"<Integration(type={self.type}, active={self.is_active})>"
