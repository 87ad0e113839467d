"""ProviderUsageLog model - one provider attempt for a generation job."""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, String, Text, func

from aihub.core.database import Base
from aihub.models.shared import UUIDType, generate_uuid


class ProviderUsageLog(Base):
    __tablename__ = "provider_usage_logs"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    # No foreign key: logs outlive purged jobs
    job_id = Column(UUIDType, nullable=False, index=True)
    app_id = Column(UUIDType, nullable=True)
    provider_id = Column(
        UUIDType, ForeignKey("ai_providers.id", ondelete="CASCADE"), nullable=False, index=True
    )
    provider_model_id = Column(String(255), nullable=False, default="")
    attempt_number = Column(Integer, nullable=False, default=1)
    success = Column(Boolean, nullable=False)
    latency_ms = Column(Integer, nullable=True)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("ix_provider_usage_logs_created_at", "created_at"),
    )
