"""Statistics rollup: joins raw facts into dimensional summaries.

The rollup is built once per request for the full lookback window and is
then projected onto smaller windows by ``statistics_projection`` without
touching the database again.
"""

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from aihub.core.config import settings
from aihub.models.shared import as_utc, start_of_day, utc_now
from aihub.models.token_ledger_entry import TokenEntryType
from aihub.repositories.statistics_repository import (
    AppRef,
    DailyJobRow,
    DailyUserRow,
    JobModelRef,
    ProviderUsageRow,
    RevenueFactRow,
    StatisticsRepository,
    TokenLedgerTotal,
    UsageLogWithProvider,
    cost_key,
)

logger = logging.getLogger(__name__)

UNKNOWN_BUCKET = "Unknown"
ZERO = Decimal("0")
WEEK_DAYS = 7
MONTH_DAYS = 30

# Primary fact reads; the rollup fails only when all of them fail
FACT_SOURCES = (
    "daily_job_counts",
    "user_growth",
    "provider_usage",
    "token_ledger_totals",
    "successful_usage_logs",
    "revenue_events",
)


class FactSourceUnavailableError(Exception):
    """Every fact source failed, so there is no data to roll up."""

    def __init__(self, sources: Iterable[str]):
        self.sources = sorted(set(sources))
        super().__init__(f"All statistics fact sources failed: {', '.join(self.sources)}")


@dataclass
class DailyJobStat:
    date: str
    count: int = 0
    succeeded: int = 0
    failed: int = 0


@dataclass
class DailyCount:
    date: str
    count: int = 0


@dataclass
class DailyAmount:
    date: str
    amount: Decimal = ZERO


@dataclass
class DailySeries:
    """Contiguous per-day series, one entry per calendar day."""

    jobs: list[DailyJobStat]
    users: list[DailyCount]
    expenses: list[DailyAmount]
    revenue: list[DailyAmount]

    @classmethod
    def empty(cls, calendar: list[str]) -> "DailySeries":
        return cls(
            jobs=[DailyJobStat(date=d) for d in calendar],
            users=[DailyCount(date=d) for d in calendar],
            expenses=[DailyAmount(date=d) for d in calendar],
            revenue=[DailyAmount(date=d) for d in calendar],
        )


@dataclass
class AmountBreakdown:
    key: str
    label: str
    amount: Decimal = ZERO
    count: int = 0
    share: float = 0.0  # percent of the dimension total


@dataclass
class ProviderUsageStat:
    provider_id: str
    provider: str
    count: int
    avg_latency_ms: int


@dataclass
class TokenStat:
    type: str
    total: int  # absolute volume
    net: int  # signed sum
    count: int


@dataclass
class AppJobCount:
    app_id: str
    name: str
    jobs: int


@dataclass
class UserRevenue:
    app_id: str
    user_external_id: str
    amount: Decimal
    count: int


@dataclass
class ExpenseRollup:
    total: Decimal
    by_provider: list[AmountBreakdown]
    by_model: list[AmountBreakdown]
    daily: dict[str, Decimal]
    daily_by_app: dict[str, dict[str, Decimal]]


@dataclass
class RevenueRollup:
    total: Decimal
    by_country: list[AmountBreakdown]
    by_product: list[AmountBreakdown]
    by_store: list[AmountBreakdown]
    by_event_type: list[AmountBreakdown]
    top_paying_users: list[UserRevenue]
    daily: dict[str, Decimal]
    daily_by_app: dict[str, dict[str, Decimal]]


@dataclass
class Rollup:
    as_of: date
    lookback_days: int
    series: DailySeries
    series_by_app: dict[str, DailySeries]
    apps: list[AppRef]
    provider_usage: list[ProviderUsageStat]
    token_stats: list[TokenStat]
    top_apps: list[AppJobCount]
    expenses_by_provider: list[AmountBreakdown]
    expenses_by_model: list[AmountBreakdown]
    revenue_by_country: list[AmountBreakdown]
    revenue_by_product: list[AmountBreakdown]
    revenue_by_store: list[AmountBreakdown]
    revenue_by_event_type: list[AmountBreakdown]
    top_paying_users: list[UserRevenue]
    total_expenses: Decimal
    total_revenue: Decimal
    tokens_used: int
    total_jobs: int
    total_users: int
    jobs_this_week: int
    jobs_this_month: int
    expenses_this_week: Decimal
    expenses_this_month: Decimal
    failed_sources: list[str] = field(default_factory=list)

    @property
    def calendar(self) -> list[str]:
        return [point.date for point in self.series.jobs]


def calendar_days(as_of: date, days: int) -> list[str]:
    """ISO dates of the ``days`` consecutive days ending at ``as_of``."""
    if days < 1:
        raise ValueError(f"days must be positive, got {days}")
    return [(as_of - timedelta(days=offset)).isoformat() for offset in range(days - 1, -1, -1)]


def date_key(value: datetime) -> str:
    """UTC calendar day of a timestamp."""
    return as_utc(value).date().isoformat()


def share_of(amount: Decimal, total: Decimal) -> float:
    """Percentage of total, 0 when the total is 0."""
    if total <= 0:
        return 0.0
    return round(float(amount / total * 100), 2)


def rank_breakdowns(buckets: dict[str, AmountBreakdown]) -> list[AmountBreakdown]:
    """Fill shares and sort by amount descending, ties kept in first-seen order."""
    total = sum((b.amount for b in buckets.values()), ZERO)
    for bucket in buckets.values():
        bucket.share = share_of(bucket.amount, total)
    return sorted(buckets.values(), key=lambda b: b.amount, reverse=True)


def _add_to_bucket(
    buckets: dict[str, AmountBreakdown], key: str, label: str, amount: Decimal
) -> None:
    bucket = buckets.get(key)
    if bucket is None:
        bucket = buckets[key] = AmountBreakdown(key=key, label=label)
    bucket.amount += amount
    bucket.count += 1


def attribute_expenses(
    logs: Iterable[UsageLogWithProvider],
    jobs_by_id: dict[UUID, JobModelRef],
    costs: dict[str, Decimal],
) -> ExpenseRollup:
    """Price every successful usage log through the (model, provider) cost table.

    A log whose job was purged, or whose pair has no pricing row, costs 0.
    Logs without a resolvable job still count toward the total and the
    provider breakdown but are left out of the model breakdown.
    """
    total = ZERO
    by_provider: dict[str, AmountBreakdown] = {}
    by_model: dict[str, AmountBreakdown] = {}
    daily: dict[str, Decimal] = {}
    daily_by_app: dict[str, dict[str, Decimal]] = {}

    for log in logs:
        job = jobs_by_id.get(log.job_id)
        cost = costs.get(cost_key(job.model_id, log.provider_id), ZERO) if job else ZERO

        total += cost
        _add_to_bucket(by_provider, str(log.provider_id), log.provider_name, cost)
        if job is not None:
            _add_to_bucket(by_model, str(job.model_id), job.model_name, cost)

        day = date_key(log.created_at)
        daily[day] = daily.get(day, ZERO) + cost

        app_id = log.app_id or (job.app_id if job else None)
        if app_id is not None:
            app_daily = daily_by_app.setdefault(str(app_id), {})
            app_daily[day] = app_daily.get(day, ZERO) + cost

    return ExpenseRollup(
        total=total,
        by_provider=rank_breakdowns(by_provider),
        by_model=rank_breakdowns(by_model),
        daily=daily,
        daily_by_app=daily_by_app,
    )


def attribute_revenue(
    events: Iterable[RevenueFactRow], top_users_limit: int = 10
) -> RevenueRollup:
    """Group revenue events by country, product, store, event type and payer."""
    total = ZERO
    by_country: dict[str, AmountBreakdown] = {}
    by_product: dict[str, AmountBreakdown] = {}
    by_store: dict[str, AmountBreakdown] = {}
    by_event_type: dict[str, AmountBreakdown] = {}
    # External ids are only unique within one app
    by_user: dict[tuple[str, str], UserRevenue] = {}
    daily: dict[str, Decimal] = {}
    daily_by_app: dict[str, dict[str, Decimal]] = {}

    for event in events:
        amount = event.net_revenue_usd if event.net_revenue_usd is not None else ZERO
        total += amount

        country = event.country_code or UNKNOWN_BUCKET
        product = event.product_id or UNKNOWN_BUCKET
        store = event.store or UNKNOWN_BUCKET
        _add_to_bucket(by_country, country, country, amount)
        _add_to_bucket(by_product, product, product, amount)
        _add_to_bucket(by_store, store, store, amount)
        _add_to_bucket(by_event_type, event.event_type, event.event_type, amount)

        payer_key = (str(event.app_id), event.user_external_id)
        payer = by_user.get(payer_key)
        if payer is None:
            payer = by_user[payer_key] = UserRevenue(
                app_id=payer_key[0], user_external_id=event.user_external_id, amount=ZERO, count=0
            )
        payer.amount += amount
        payer.count += 1

        day = date_key(event.created_at)
        daily[day] = daily.get(day, ZERO) + amount
        app_daily = daily_by_app.setdefault(str(event.app_id), {})
        app_daily[day] = app_daily.get(day, ZERO) + amount

    top_paying_users = sorted(by_user.values(), key=lambda u: u.amount, reverse=True)
    return RevenueRollup(
        total=total,
        by_country=rank_breakdowns(by_country),
        by_product=rank_breakdowns(by_product),
        by_store=rank_breakdowns(by_store),
        by_event_type=rank_breakdowns(by_event_type),
        top_paying_users=top_paying_users[:top_users_limit],
        daily=daily,
        daily_by_app=daily_by_app,
    )


def summarize_provider_usage(rows: dict[UUID, ProviderUsageRow]) -> list[ProviderUsageStat]:
    stats = []
    for row in rows.values():
        avg = (
            int((Decimal(row.total_latency_ms) / row.count).quantize(Decimal(1), ROUND_HALF_UP))
            if row.count
            else 0
        )
        stats.append(
            ProviderUsageStat(
                provider_id=str(row.provider_id),
                provider=row.provider_name,
                count=row.count,
                avg_latency_ms=avg,
            )
        )
    return stats


def summarize_tokens(totals: dict[str, TokenLedgerTotal]) -> list[TokenStat]:
    return [
        TokenStat(type=t.type, total=abs(t.total_amount), net=t.total_amount, count=t.count)
        for t in totals.values()
    ]


def rank_apps(
    job_totals: dict[str, int], app_names: dict[str, str], limit: int
) -> list[AppJobCount]:
    """Apps by job count descending, ties in first-seen order."""
    ranked = sorted(job_totals.items(), key=lambda item: item[1], reverse=True)
    return [
        AppJobCount(app_id=app_id, name=app_names.get(app_id, app_id), jobs=jobs)
        for app_id, jobs in ranked[:limit]
        if jobs > 0
    ]


def build_series(
    calendar: list[str],
    job_rows: Iterable[DailyJobRow],
    user_rows: Iterable[DailyUserRow],
    expenses: ExpenseRollup,
    revenue: RevenueRollup,
) -> tuple[DailySeries, dict[str, DailySeries]]:
    """Gap-fill the all-apps series and one series per app onto the calendar.

    Facts dated outside the calendar are ignored.
    """
    overall = DailySeries.empty(calendar)
    by_app: dict[str, DailySeries] = {}
    index = {day: position for position, day in enumerate(calendar)}

    def app_series(app_id: str) -> DailySeries:
        series = by_app.get(app_id)
        if series is None:
            series = by_app[app_id] = DailySeries.empty(calendar)
        return series

    for job_row in job_rows:
        position = index.get(job_row.date)
        if position is None:
            continue
        for series in (overall, app_series(str(job_row.app_id))):
            point = series.jobs[position]
            point.count += job_row.count
            point.succeeded += job_row.succeeded
            point.failed += job_row.failed

    for user_row in user_rows:
        position = index.get(user_row.date)
        if position is None:
            continue
        for series in (overall, app_series(str(user_row.app_id))):
            series.users[position].count += user_row.count

    for attr, source in (("expenses", expenses), ("revenue", revenue)):
        for day, amount in source.daily.items():
            position = index.get(day)
            if position is not None:
                getattr(overall, attr)[position].amount += amount
        for app_id, per_day in source.daily_by_app.items():
            for day, amount in per_day.items():
                position = index.get(day)
                if position is not None:
                    getattr(app_series(app_id), attr)[position].amount += amount

    return overall, by_app


def _tail_count(points: list[DailyJobStat], days: int) -> int:
    return sum(p.count for p in points[-days:])


def _tail_amount(points: list[DailyAmount], days: int) -> Decimal:
    return sum((p.amount for p in points[-days:]), ZERO)


class StatisticsRollupService:
    """Build the statistics rollup for the lookback window ending today."""

    def __init__(
        self,
        db: Session,
        lookback_days: int | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.db = db
        self.repo = StatisticsRepository(db)
        self.lookback_days = lookback_days or settings.STATS_LOOKBACK_DAYS
        self.clock = clock

    def build(self) -> Rollup:
        """Read the facts once and roll them up.

        Raises:
            FactSourceUnavailableError: If every fact source failed.
        """
        now = self.clock()
        as_of = as_utc(now).date()
        calendar = calendar_days(as_of, self.lookback_days)
        since = start_of_day(date.fromisoformat(calendar[0]))

        job_rows = self.repo.daily_job_counts(since)
        user_rows = self.repo.user_growth(since)
        provider_rows = self.repo.provider_usage(since)
        token_totals = self.repo.token_ledger_totals(since)
        usage_logs = self.repo.successful_usage_logs(since)
        revenue_rows = self.repo.revenue_events(since)

        failed = [s for s in FACT_SOURCES if s in self.repo.failed_sources]
        if len(failed) == len(FACT_SOURCES):
            raise FactSourceUnavailableError(failed)

        jobs_by_id = self.repo.jobs_for_ids(log.job_id for log in usage_logs)
        costs = self.repo.cost_table()
        apps = self.repo.list_apps()

        expenses = attribute_expenses(usage_logs, jobs_by_id, costs)
        revenue = attribute_revenue(revenue_rows, settings.STATS_TOP_PAYING_USERS_LIMIT)
        series, series_by_app = build_series(calendar, job_rows, user_rows, expenses, revenue)

        job_totals: dict[str, int] = {}
        for job_row in job_rows:
            key = str(job_row.app_id)
            job_totals[key] = job_totals.get(key, 0) + job_row.count
        app_names = {str(app.id): app.name for app in apps}

        debit = token_totals.get(TokenEntryType.GENERATION_DEBIT.value)

        rollup = Rollup(
            as_of=as_of,
            lookback_days=self.lookback_days,
            series=series,
            series_by_app=series_by_app,
            apps=apps,
            provider_usage=summarize_provider_usage(provider_rows),
            token_stats=summarize_tokens(token_totals),
            top_apps=rank_apps(job_totals, app_names, settings.STATS_TOP_APPS_LIMIT),
            expenses_by_provider=expenses.by_provider,
            expenses_by_model=expenses.by_model,
            revenue_by_country=revenue.by_country,
            revenue_by_product=revenue.by_product,
            revenue_by_store=revenue.by_store,
            revenue_by_event_type=revenue.by_event_type,
            top_paying_users=revenue.top_paying_users,
            total_expenses=expenses.total,
            total_revenue=revenue.total,
            tokens_used=abs(debit.total_amount) if debit else 0,
            total_jobs=self.repo.count_jobs(),
            total_users=self.repo.count_users(),
            jobs_this_week=_tail_count(series.jobs, WEEK_DAYS),
            jobs_this_month=_tail_count(series.jobs, MONTH_DAYS),
            expenses_this_week=_tail_amount(series.expenses, WEEK_DAYS),
            expenses_this_month=_tail_amount(series.expenses, MONTH_DAYS),
            failed_sources=list(self.repo.failed_sources),
        )
        logger.info(
            "Built statistics rollup for %d days ending %s (%d failed sources)",
            self.lookback_days,
            as_of,
            len(rollup.failed_sources),
        )
        return rollup
