"""GenerationJob model."""

from enum import Enum

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, Text, func

from aihub.core.database import Base
from aihub.models.shared import UUIDType, generate_uuid


class JobStatus(str, Enum):
    QUEUED = "QUEUED"
    RUNNING = "RUNNING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


class GenerationJob(Base):
    __tablename__ = "generation_jobs"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    app_id = Column(
        UUIDType, ForeignKey("apps.id", ondelete="CASCADE"), nullable=False, index=True
    )
    app_user_id = Column(UUIDType, nullable=True, index=True)
    ai_model_id = Column(
        UUIDType, ForeignKey("ai_models.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    status = Column(String(20), nullable=False, default=JobStatus.QUEUED.value)
    token_cost = Column(Integer, nullable=False, default=0)
    used_provider = Column(String(255), nullable=True)
    attempts_count = Column(Integer, nullable=False, default=0)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    completed_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_generation_jobs_created_at", "created_at"),
        Index("ix_generation_jobs_app_created_at", "app_id", "created_at"),
    )
