"""AppUser model for end users of a tenant application."""

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    func,
)

from aihub.core.database import Base
from aihub.models.shared import UUIDType, generate_uuid


class AppUser(Base):
    __tablename__ = "app_users"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    app_id = Column(
        UUIDType, ForeignKey("apps.id", ondelete="CASCADE"), nullable=False, index=True
    )
    external_id = Column(String(255), nullable=False)
    token_balance = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("app_id", "external_id", name="uq_app_users_app_external_id"),
    )
