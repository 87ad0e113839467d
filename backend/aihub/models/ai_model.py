"""AI model catalog entry."""

from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text, func

from aihub.core.database import Base
from aihub.models.shared import UUIDType, generate_uuid


class AIModel(Base):
    __tablename__ = "ai_models"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    name = Column(String(255), unique=True, nullable=False)
    display_name = Column(String(255), nullable=False)
    model_family = Column(String(255), nullable=True)
    description = Column(Text, nullable=True)
    token_cost = Column(Integer, nullable=False, default=1)
    is_enabled = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
