"""RevenueCatEvent model - webhook events ingested from RevenueCat."""

from enum import Enum

from sqlalchemy import Column, DateTime, ForeignKey, Index, Numeric, String, func

from aihub.core.database import Base
from aihub.models.shared import UUIDType, generate_uuid


class EventCategory(str, Enum):
    REVENUE = "REVENUE"
    TOKEN = "TOKEN"


class RevenueCatEventType(str, Enum):
    INITIAL_PURCHASE = "INITIAL_PURCHASE"
    RENEWAL = "RENEWAL"
    NON_RENEWING_PURCHASE = "NON_RENEWING_PURCHASE"
    PRODUCT_CHANGE = "PRODUCT_CHANGE"
    CANCELLATION = "CANCELLATION"
    UNCANCELLATION = "UNCANCELLATION"
    BILLING_ISSUE = "BILLING_ISSUE"
    SUBSCRIPTION_PAUSED = "SUBSCRIPTION_PAUSED"
    EXPIRATION = "EXPIRATION"
    TRANSFER = "TRANSFER"
    VIRTUAL_CURRENCY_TRANSACTION = "VIRTUAL_CURRENCY_TRANSACTION"
    TEST = "TEST"


class RevenueCatEvent(Base):
    __tablename__ = "revenuecat_events"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    revenue_cat_event_id = Column(String(255), unique=True, nullable=False)
    app_id = Column(
        UUIDType, ForeignKey("apps.id", ondelete="CASCADE"), nullable=False, index=True
    )
    app_user_id = Column(
        UUIDType, ForeignKey("app_users.id", ondelete="SET NULL"), nullable=True, index=True
    )
    revenue_cat_user_id = Column(String(255), nullable=False)
    event_type = Column(String(64), nullable=False)
    event_category = Column(String(16), nullable=False)
    product_id = Column(String(255), nullable=True)
    store = Column(String(64), nullable=True)
    country_code = Column(String(8), nullable=True)
    currency = Column(String(3), nullable=True)
    net_revenue_usd = Column(Numeric(10, 2), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("ix_revenuecat_events_category_created_at", "event_category", "created_at"),
    )
