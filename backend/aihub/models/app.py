"""Tenant application model."""

from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text, func

from aihub.core.database import Base
from aihub.models.shared import UUIDType, generate_uuid


class App(Base):
    """A tenant application that owns users, jobs and billing events."""

    __tablename__ = "apps"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    name = Column(String(255), nullable=False)
    slug = Column(String(255), unique=True, index=True, nullable=False)
    description = Column(Text, nullable=True)
    is_enabled = Column(Boolean, nullable=False, default=True)
    default_token_grant = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
