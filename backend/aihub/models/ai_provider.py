"""AI provider model."""

from sqlalchemy import Boolean, Column, DateTime, String, func

from aihub.core.database import Base
from aihub.models.shared import UUIDType, generate_uuid


class AIProvider(Base):
    __tablename__ = "ai_providers"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    name = Column(String(255), unique=True, nullable=False)
    display_name = Column(String(255), nullable=False)
    base_url = Column(String(2048), nullable=True)
    is_enabled = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
