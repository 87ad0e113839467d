"""Read-only fact queries behind the statistics dashboard."""

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import TypeVar
from uuid import UUID

from sqlalchemy import case, text
from sqlalchemy import func as sa_func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from aihub.core.config import settings
from aihub.core.database import dialect_name
from aihub.models.ai_model import AIModel
from aihub.models.ai_provider import AIProvider
from aihub.models.app import App
from aihub.models.app_user import AppUser
from aihub.models.generation_job import GenerationJob, JobStatus
from aihub.models.model_provider_config import ModelProviderConfig
from aihub.models.provider_usage_log import ProviderUsageLog
from aihub.models.revenuecat_event import EventCategory, RevenueCatEvent
from aihub.models.shared import as_utc, utc_now
from aihub.models.token_ledger_entry import TokenLedgerEntry

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Keeps IN (...) lists under SQLite's bound parameter limit
_ID_CHUNK_SIZE = 500


@dataclass
class DailyJobRow:
    date: str
    app_id: UUID
    count: int
    succeeded: int
    failed: int


@dataclass
class DailyUserRow:
    date: str
    app_id: UUID
    count: int


@dataclass
class ProviderUsageRow:
    provider_id: UUID
    provider_name: str
    count: int
    total_latency_ms: int


@dataclass
class TokenLedgerTotal:
    type: str
    total_amount: int
    count: int


@dataclass
class UsageLogWithProvider:
    id: UUID
    job_id: UUID
    provider_id: UUID
    provider_name: str
    app_id: UUID | None
    created_at: datetime


@dataclass
class JobModelRef:
    model_id: UUID
    model_name: str
    app_id: UUID


@dataclass
class RevenueFactRow:
    id: UUID
    app_id: UUID
    user_external_id: str
    event_type: str
    product_id: str | None
    store: str | None
    country_code: str | None
    net_revenue_usd: Decimal | None
    created_at: datetime


@dataclass
class AppRef:
    id: UUID
    name: str


@dataclass
class RecentJob:
    id: UUID
    app_name: str
    model_name: str
    status: str
    created_at: datetime | None


def cost_key(model_id: UUID | str, provider_id: UUID | str) -> str:
    """Key of the (model, provider) pair in the cost table."""
    return f"{model_id}|{provider_id}"


def _chunks(ids: list[UUID], size: int) -> Iterable[list[UUID]]:
    for start in range(0, len(ids), size):
        yield ids[start : start + size]


class StatisticsRepository:
    """Raw fact reader for the statistics rollup.

    Every read is guarded: a failing query is logged, the session is rolled
    back and the read returns its empty value, so one broken dimension never
    takes down the whole dashboard. Names of failed reads are collected in
    ``failed_sources``.
    """

    def __init__(self, db: Session):
        self.db = db
        self.failed_sources: list[str] = []

    def _guarded(self, source: str, fetch: Callable[[], T], empty: T) -> T:
        try:
            self._apply_statement_timeout()
            return fetch()
        except SQLAlchemyError:
            logger.exception("Statistics source %s failed, serving empty result", source)
            self.db.rollback()
            self.failed_sources.append(source)
            return empty

    def _apply_statement_timeout(self) -> None:
        timeout_ms = int(settings.STATS_QUERY_TIMEOUT_MS)
        if timeout_ms > 0 and dialect_name(self.db) == "postgresql":
            self.db.execute(text(f"SET LOCAL statement_timeout = {timeout_ms}"))

    def _day_expr(self, column):  # type: ignore[no-untyped-def]
        """Calendar-day (YYYY-MM-DD) expression for SQLite and PostgreSQL."""
        if dialect_name(self.db) == "postgresql":
            return sa_func.to_char(column, "YYYY-MM-DD")
        return sa_func.strftime("%Y-%m-%d", column)

    @staticmethod
    def _check_since(since: datetime) -> None:
        if as_utc(since) > utc_now():
            raise ValueError(f"since must not be in the future: {since.isoformat()}")

    # --- Time series ---

    def daily_job_counts(self, since: datetime) -> list[DailyJobRow]:
        """Jobs per creation day and app with status tallies, oldest day first.

        Days without jobs are not synthesized here.
        """
        self._check_since(since)

        def fetch() -> list[DailyJobRow]:
            day = self._day_expr(GenerationJob.created_at)
            rows = (
                self.db.query(
                    day.label("day"),
                    GenerationJob.app_id.label("app_id"),
                    sa_func.count(GenerationJob.id).label("job_count"),
                    sa_func.sum(
                        case((GenerationJob.status == JobStatus.SUCCEEDED.value, 1), else_=0)
                    ).label("succeeded"),
                    sa_func.sum(
                        case((GenerationJob.status == JobStatus.FAILED.value, 1), else_=0)
                    ).label("failed"),
                )
                .filter(GenerationJob.created_at >= since)
                .group_by(day, GenerationJob.app_id)
                .order_by(day)
                .all()
            )
            return [
                DailyJobRow(
                    date=row.day,
                    app_id=row.app_id,
                    count=int(row.job_count or 0),
                    succeeded=int(row.succeeded or 0),
                    failed=int(row.failed or 0),
                )
                for row in rows
            ]

        return self._guarded("daily_job_counts", fetch, [])

    def user_growth(self, since: datetime) -> list[DailyUserRow]:
        """New app users per creation day and app, oldest day first."""
        self._check_since(since)

        def fetch() -> list[DailyUserRow]:
            day = self._day_expr(AppUser.created_at)
            rows = (
                self.db.query(
                    day.label("day"),
                    AppUser.app_id.label("app_id"),
                    sa_func.count(AppUser.id).label("user_count"),
                )
                .filter(AppUser.created_at >= since)
                .group_by(day, AppUser.app_id)
                .order_by(day)
                .all()
            )
            return [
                DailyUserRow(date=row.day, app_id=row.app_id, count=int(row.user_count or 0))
                for row in rows
            ]

        return self._guarded("user_growth", fetch, [])

    # --- Grouped totals ---

    def provider_usage(self, since: datetime) -> dict[UUID, ProviderUsageRow]:
        """Usage log count and summed latency per provider, successful or not."""
        self._check_since(since)

        def fetch() -> dict[UUID, ProviderUsageRow]:
            rows = (
                self.db.query(
                    ProviderUsageLog.provider_id.label("provider_id"),
                    AIProvider.display_name.label("provider_name"),
                    sa_func.count(ProviderUsageLog.id).label("log_count"),
                    sa_func.coalesce(sa_func.sum(ProviderUsageLog.latency_ms), 0).label(
                        "total_latency"
                    ),
                )
                .outerjoin(AIProvider, ProviderUsageLog.provider_id == AIProvider.id)
                .filter(ProviderUsageLog.created_at >= since)
                .group_by(ProviderUsageLog.provider_id, AIProvider.display_name)
                .order_by(sa_func.count(ProviderUsageLog.id).desc())
                .all()
            )
            return {
                row.provider_id: ProviderUsageRow(
                    provider_id=row.provider_id,
                    provider_name=row.provider_name or str(row.provider_id),
                    count=int(row.log_count),
                    total_latency_ms=int(row.total_latency or 0),
                )
                for row in rows
            }

        return self._guarded("provider_usage", fetch, {})

    def token_ledger_totals(self, since: datetime) -> dict[str, TokenLedgerTotal]:
        """Signed amount sum and entry count per ledger entry type."""
        self._check_since(since)

        def fetch() -> dict[str, TokenLedgerTotal]:
            rows = (
                self.db.query(
                    TokenLedgerEntry.type.label("entry_type"),
                    sa_func.coalesce(sa_func.sum(TokenLedgerEntry.amount), 0).label("total"),
                    sa_func.count(TokenLedgerEntry.id).label("entry_count"),
                )
                .filter(TokenLedgerEntry.created_at >= since)
                .group_by(TokenLedgerEntry.type)
                .order_by(TokenLedgerEntry.type)
                .all()
            )
            return {
                row.entry_type: TokenLedgerTotal(
                    type=row.entry_type,
                    total_amount=int(row.total or 0),
                    count=int(row.entry_count),
                )
                for row in rows
            }

        return self._guarded("token_ledger_totals", fetch, {})

    # --- Expense facts ---

    def successful_usage_logs(self, since: datetime) -> list[UsageLogWithProvider]:
        """Successful provider attempts with the provider's display name."""
        self._check_since(since)

        def fetch() -> list[UsageLogWithProvider]:
            rows = (
                self.db.query(
                    ProviderUsageLog.id,
                    ProviderUsageLog.job_id,
                    ProviderUsageLog.provider_id,
                    ProviderUsageLog.app_id,
                    ProviderUsageLog.created_at,
                    AIProvider.display_name.label("provider_name"),
                )
                .outerjoin(AIProvider, ProviderUsageLog.provider_id == AIProvider.id)
                .filter(
                    ProviderUsageLog.success.is_(True),
                    ProviderUsageLog.created_at >= since,
                )
                .order_by(ProviderUsageLog.created_at)
                .all()
            )
            return [
                UsageLogWithProvider(
                    id=row.id,
                    job_id=row.job_id,
                    provider_id=row.provider_id,
                    provider_name=row.provider_name or str(row.provider_id),
                    app_id=row.app_id,
                    created_at=row.created_at,
                )
                for row in rows
            ]

        return self._guarded("successful_usage_logs", fetch, [])

    def jobs_for_ids(self, job_ids: Iterable[UUID]) -> dict[UUID, JobModelRef]:
        """Resolve model (and app) for each job id; purged jobs are absent."""
        unique_ids = list(dict.fromkeys(job_ids))
        if not unique_ids:
            return {}

        def fetch() -> dict[UUID, JobModelRef]:
            result: dict[UUID, JobModelRef] = {}
            for chunk in _chunks(unique_ids, _ID_CHUNK_SIZE):
                rows = (
                    self.db.query(
                        GenerationJob.id,
                        GenerationJob.ai_model_id,
                        GenerationJob.app_id,
                        AIModel.display_name.label("model_name"),
                    )
                    .outerjoin(AIModel, GenerationJob.ai_model_id == AIModel.id)
                    .filter(GenerationJob.id.in_(chunk))
                    .all()
                )
                for row in rows:
                    result[row.id] = JobModelRef(
                        model_id=row.ai_model_id,
                        model_name=row.model_name or str(row.ai_model_id),
                        app_id=row.app_id,
                    )
            return result

        return self._guarded("jobs_for_ids", fetch, {})

    def cost_table(self) -> dict[str, Decimal]:
        """Full pricing matrix keyed by ``cost_key(model_id, provider_id)``."""

        def fetch() -> dict[str, Decimal]:
            rows = self.db.query(
                ModelProviderConfig.model_id,
                ModelProviderConfig.provider_id,
                ModelProviderConfig.cost_per_request,
            ).all()
            return {
                cost_key(row.model_id, row.provider_id): Decimal(str(row.cost_per_request or 0))
                for row in rows
            }

        return self._guarded("cost_table", fetch, {})

    # --- Revenue facts ---

    def revenue_events(self, since: datetime) -> list[RevenueFactRow]:
        """REVENUE-category RevenueCat events with the paying user's external id."""
        self._check_since(since)

        def fetch() -> list[RevenueFactRow]:
            rows = (
                self.db.query(
                    RevenueCatEvent.id,
                    RevenueCatEvent.app_id,
                    RevenueCatEvent.revenue_cat_user_id,
                    RevenueCatEvent.event_type,
                    RevenueCatEvent.product_id,
                    RevenueCatEvent.store,
                    RevenueCatEvent.country_code,
                    RevenueCatEvent.net_revenue_usd,
                    RevenueCatEvent.created_at,
                    AppUser.external_id.label("external_id"),
                )
                .outerjoin(AppUser, RevenueCatEvent.app_user_id == AppUser.id)
                .filter(
                    RevenueCatEvent.event_category == EventCategory.REVENUE.value,
                    RevenueCatEvent.created_at >= since,
                )
                .order_by(RevenueCatEvent.created_at)
                .all()
            )
            return [
                RevenueFactRow(
                    id=row.id,
                    app_id=row.app_id,
                    user_external_id=row.external_id or row.revenue_cat_user_id,
                    event_type=row.event_type,
                    product_id=row.product_id,
                    store=row.store,
                    country_code=row.country_code,
                    net_revenue_usd=(
                        Decimal(str(row.net_revenue_usd))
                        if row.net_revenue_usd is not None
                        else None
                    ),
                    created_at=row.created_at,
                )
                for row in rows
            ]

        return self._guarded("revenue_events", fetch, [])

    # --- Reference data and scalars ---

    def list_apps(self) -> list[AppRef]:
        def fetch() -> list[AppRef]:
            rows = self.db.query(App.id, App.name).order_by(App.name).all()
            return [AppRef(id=row.id, name=row.name) for row in rows]

        return self._guarded("list_apps", fetch, [])

    def count_apps(self) -> int:
        return self._guarded(
            "count_apps",
            lambda: self.db.query(sa_func.count(App.id)).scalar() or 0,
            0,
        )

    def count_users(self) -> int:
        return self._guarded(
            "count_users",
            lambda: self.db.query(sa_func.count(AppUser.id)).scalar() or 0,
            0,
        )

    def count_jobs(self, since: datetime | None = None, status: JobStatus | None = None) -> int:
        def fetch() -> int:
            query = self.db.query(sa_func.count(GenerationJob.id))
            if since is not None:
                query = query.filter(GenerationJob.created_at >= since)
            if status is not None:
                query = query.filter(GenerationJob.status == status.value)
            return query.scalar() or 0

        return self._guarded("count_jobs", fetch, 0)

    def count_jobs_in_flight(self) -> int:
        """Jobs still QUEUED or RUNNING."""
        return self._guarded(
            "count_jobs_in_flight",
            lambda: (
                self.db.query(sa_func.count(GenerationJob.id))
                .filter(
                    GenerationJob.status.in_(
                        [JobStatus.QUEUED.value, JobStatus.RUNNING.value]
                    )
                )
                .scalar()
                or 0
            ),
            0,
        )

    def recent_jobs(self, limit: int = 8) -> list[RecentJob]:
        def fetch() -> list[RecentJob]:
            rows = (
                self.db.query(
                    GenerationJob.id,
                    GenerationJob.status,
                    GenerationJob.created_at,
                    App.name.label("app_name"),
                    AIModel.name.label("model_name"),
                )
                .outerjoin(App, GenerationJob.app_id == App.id)
                .outerjoin(AIModel, GenerationJob.ai_model_id == AIModel.id)
                .order_by(GenerationJob.created_at.desc())
                .limit(limit)
                .all()
            )
            return [
                RecentJob(
                    id=row.id,
                    app_name=row.app_name or "",
                    model_name=row.model_name or "",
                    status=row.status,
                    created_at=row.created_at,
                )
                for row in rows
            ]

        return self._guarded("recent_jobs", fetch, [])
