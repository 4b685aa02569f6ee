from sqlalchemy import Column, String, DateTime, ForeignKey, Text
from sqlalchemy.orm import relationship
from config.database import Base, generate_uuid, utcnow


class Department(Base):
    __tablename__ = "departments"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    workspace_id = Column(String(36), ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    color = Column(String(20), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    workspace = relationship("Workspace", back_populates="departments")

    def __repr__(self):
        return f"<Department(name={self.name})>"
