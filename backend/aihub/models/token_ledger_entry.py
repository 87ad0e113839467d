"""TokenLedgerEntry model - signed token movements for an app user."""

from enum import Enum

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, Text, func

from aihub.core.database import Base
from aihub.models.shared import UUIDType, generate_uuid


class TokenEntryType(str, Enum):
    GRANT = "GRANT"
    GENERATION_DEBIT = "GENERATION_DEBIT"
    GENERATION_REFUND = "GENERATION_REFUND"
    ADMIN_ADJUSTMENT = "ADMIN_ADJUSTMENT"
    BONUS = "BONUS"
    EXPIRY = "EXPIRY"


class TokenLedgerEntry(Base):
    __tablename__ = "token_ledger_entries"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    app_user_id = Column(
        UUIDType, ForeignKey("app_users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    amount = Column(Integer, nullable=False)  # positive credit, negative debit
    balance_after = Column(Integer, nullable=False, default=0)
    type = Column(String(32), nullable=False)
    description = Column(Text, nullable=True)
    job_id = Column(UUIDType, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("ix_token_ledger_entries_type_created_at", "type", "created_at"),
    )
