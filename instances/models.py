from sqlalchemy import Column, String, DateTime, ForeignKey, Text, JSON
from sqlalchemy.orm import relationship
from config.database import Base, generate_uuid, utcnow

INSTANCE_STATUSES = ("disconnected", "connecting", "qr_pending", "connected")
PROVIDER_TYPES = ("wapi", "evolution", "apibrasil", "gupshup")


class Instance(Base):
    __tablename__ = "instances"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    workspace_id = Column(String(36), ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    provider_type = Column(String(20), nullable=False, default="wapi")
    status = Column(String(20), nullable=False, default="disconnected")
    phone_number = Column(String(30), nullable=True)
    qr_code = Column(Text, nullable=True)
    profile_picture_url = Column(Text, nullable=True)
    # instance_key (WAPI), instance_name/server_url/api_key (Evolution), device/secret/public/bearer tokens (APIBrasil)
    provider_config = Column(JSON, nullable=True, default=dict)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    workspace = relationship("Workspace", back_populates="instances")
    contacts = relationship("Contact", back_populates="instance", cascade="all, delete-orphan")
    conversations = relationship("Conversation", back_populates="instance", cascade="all, delete-orphan")

    @property
    def config(self) -> dict:
        return self.provider_config or {}

    def __repr__(self):
        return f"<Instance(id={self.id}, provider={self.provider_type}, status={self.status})>"
