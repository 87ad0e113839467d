"""Shared test fixtures for all test modules."""

import contextlib
import uuid
from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

import aihub.models  # noqa: F401  registers every table on Base.metadata
from aihub.core import database as db_module
from aihub.core.database import Base
from aihub.models.ai_model import AIModel
from aihub.models.ai_provider import AIProvider
from aihub.models.app import App
from aihub.models.app_user import AppUser
from aihub.models.generation_job import GenerationJob, JobStatus
from aihub.models.model_provider_config import ModelProviderConfig
from aihub.models.provider_usage_log import ProviderUsageLog
from aihub.models.revenuecat_event import EventCategory, RevenueCatEvent
from aihub.models.token_ledger_entry import TokenLedgerEntry

# Create an in-memory SQLite engine with StaticPool so all connections
# share the same database state and there are no file-locking issues.
_test_engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
_TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=_test_engine)


@pytest.fixture(autouse=True)
def setup_database():
    """Create tables before each test and truncate all data after.

    Patches the module-level engine and SessionLocal so all application code
    uses the in-memory test database.
    """
    original_engine = db_module.engine
    original_session = db_module.SessionLocal
    db_module.engine = _test_engine
    db_module.SessionLocal = _TestSessionLocal

    Base.metadata.create_all(bind=_test_engine)

    yield
    with _test_engine.connect() as conn:
        conn.execute(text("PRAGMA foreign_keys = OFF"))
        for table in reversed(Base.metadata.sorted_tables):
            with contextlib.suppress(OperationalError):
                conn.execute(table.delete())
        conn.execute(text("PRAGMA foreign_keys = ON"))
        conn.commit()

    db_module.engine = original_engine
    db_module.SessionLocal = original_session


def days_ago(days: int, hour: int = 12) -> datetime:
    """Noon UTC ``days`` calendar days before today."""
    today = datetime.now(UTC).replace(hour=hour, minute=0, second=0, microsecond=0)
    return today - timedelta(days=days)


def create_app(db: Session, name: str, slug: str | None = None) -> App:
    app = App(name=name, slug=slug or name.lower().replace(" ", "-"))
    db.add(app)
    db.commit()
    db.refresh(app)
    return app


def create_app_user(
    db: Session, app: App, external_id: str, created_at: datetime | None = None
) -> AppUser:
    user = AppUser(app_id=app.id, external_id=external_id, created_at=created_at or days_ago(0))
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def create_provider(db: Session, name: str, display_name: str) -> AIProvider:
    provider = AIProvider(name=name, display_name=display_name)
    db.add(provider)
    db.commit()
    db.refresh(provider)
    return provider


def create_model(db: Session, name: str, display_name: str) -> AIModel:
    model = AIModel(name=name, display_name=display_name)
    db.add(model)
    db.commit()
    db.refresh(model)
    return model


def create_pricing(
    db: Session, model: AIModel, provider: AIProvider, cost: str
) -> ModelProviderConfig:
    config = ModelProviderConfig(
        model_id=model.id,
        provider_id=provider.id,
        provider_model_id=f"{provider.name}/{model.name}",
        cost_per_request=Decimal(cost),
    )
    db.add(config)
    db.commit()
    db.refresh(config)
    return config


def create_job(
    db: Session,
    app: App,
    model: AIModel,
    status: JobStatus = JobStatus.SUCCEEDED,
    created_at: datetime | None = None,
) -> GenerationJob:
    job = GenerationJob(
        app_id=app.id,
        ai_model_id=model.id,
        status=status.value,
        created_at=created_at or days_ago(0),
    )
    db.add(job)
    db.commit()
    db.refresh(job)
    return job


def create_usage_log(
    db: Session,
    job_id: uuid.UUID,
    provider: AIProvider,
    success: bool = True,
    latency_ms: int | None = 100,
    app_id: uuid.UUID | None = None,
    created_at: datetime | None = None,
) -> ProviderUsageLog:
    log = ProviderUsageLog(
        job_id=job_id,
        app_id=app_id,
        provider_id=provider.id,
        success=success,
        latency_ms=latency_ms,
        created_at=created_at or days_ago(0),
    )
    db.add(log)
    db.commit()
    db.refresh(log)
    return log


def create_revenue_event(
    db: Session,
    app: App,
    amount: str | None,
    user: AppUser | None = None,
    revenue_cat_user_id: str = "rc_anonymous",
    event_type: str = "INITIAL_PURCHASE",
    category: EventCategory = EventCategory.REVENUE,
    country_code: str | None = None,
    product_id: str | None = None,
    store: str | None = None,
    created_at: datetime | None = None,
) -> RevenueCatEvent:
    event = RevenueCatEvent(
        revenue_cat_event_id=f"evt_{uuid.uuid4().hex}",
        app_id=app.id,
        app_user_id=user.id if user else None,
        revenue_cat_user_id=revenue_cat_user_id,
        event_type=event_type,
        event_category=category.value,
        product_id=product_id,
        store=store,
        country_code=country_code,
        currency="USD",
        net_revenue_usd=Decimal(amount) if amount is not None else None,
        created_at=created_at or days_ago(0),
    )
    db.add(event)
    db.commit()
    db.refresh(event)
    return event


def create_token_entry(
    db: Session,
    user: AppUser,
    amount: int,
    entry_type: str,
    created_at: datetime | None = None,
) -> TokenLedgerEntry:
    entry = TokenLedgerEntry(
        app_user_id=user.id,
        amount=amount,
        balance_after=0,
        type=entry_type,
        created_at=created_at or days_ago(0),
    )
    db.add(entry)
    db.commit()
    db.refresh(entry)
    return entry
