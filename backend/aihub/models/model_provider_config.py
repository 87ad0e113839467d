"""ModelProviderConfig model - routing and pricing of a model on a provider."""

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
    func,
)

from aihub.core.database import Base
from aihub.models.shared import UUIDType, generate_uuid


class ModelProviderConfig(Base):
    __tablename__ = "model_provider_configs"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    model_id = Column(
        UUIDType, ForeignKey("ai_models.id", ondelete="CASCADE"), nullable=False, index=True
    )
    provider_id = Column(
        UUIDType, ForeignKey("ai_providers.id", ondelete="CASCADE"), nullable=False, index=True
    )
    provider_model_id = Column(String(255), nullable=False)
    priority = Column(Integer, nullable=False, default=1)
    cost_per_request = Column(Numeric(10, 6), nullable=False, default=0)
    is_enabled = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("model_id", "provider_id", name="uq_model_provider_configs_pair"),
    )
