"""Project a statistics rollup onto a shorter window and one app.

Projection is a pure function of its inputs: the same rollup, window and
app filter always give the same result, and nothing here reads the database.
"""

from dataclasses import dataclass
from decimal import Decimal

from aihub.core.config import settings
from aihub.services.statistics_rollup import (
    ZERO,
    AppJobCount,
    DailyAmount,
    DailyCount,
    DailyJobStat,
    DailySeries,
    Rollup,
    rank_apps,
)

ROAS_UNBOUNDED = "∞"

RANGE_OPTIONS = {"7d": 7, "14d": 14, "30d": 30, "90d": 90}


@dataclass(frozen=True)
class Projection:
    range_days: int
    app_id: str | None
    start_date: str
    end_date: str
    daily_jobs: list[DailyJobStat]
    daily_users: list[DailyCount]
    daily_expenses: list[DailyAmount]
    daily_revenue: list[DailyAmount]
    total_jobs: int
    succeeded_jobs: int
    failed_jobs: int
    new_users: int
    total_expenses: Decimal
    total_revenue: Decimal
    success_rate: float
    avg_cost_per_job: Decimal
    roas: Decimal | str
    net_profit: Decimal
    top_apps: list[AppJobCount]


def parse_range(value: str | None) -> int:
    """Map a range token such as ``"7d"`` or ``"14"`` to a number of days.

    Unknown tokens (including ``"custom"``) fall back to the default range.
    """
    if not value:
        return settings.STATS_DEFAULT_RANGE_DAYS
    token = value.strip().lower()
    if token in RANGE_OPTIONS:
        return RANGE_OPTIONS[token]
    if token.isdigit():
        return int(token)
    return settings.STATS_DEFAULT_RANGE_DAYS


def success_rate(total_jobs: int, succeeded_jobs: int) -> float:
    # Idle window reports 100%
    if total_jobs <= 0:
        return 1.0
    return succeeded_jobs / total_jobs


def avg_cost_per_job(total_expenses: Decimal, total_jobs: int) -> Decimal:
    if total_jobs <= 0:
        return ZERO
    return total_expenses / total_jobs


def roas(total_revenue: Decimal, total_expenses: Decimal) -> Decimal | str:
    """Revenue over expenses as a percentage; ``"∞"`` for revenue with no spend."""
    if total_expenses > 0:
        return total_revenue / total_expenses * 100
    if total_revenue > 0:
        return ROAS_UNBOUNDED
    return ZERO


def _window(series: DailySeries, range_days: int) -> DailySeries:
    return DailySeries(
        jobs=[DailyJobStat(p.date, p.count, p.succeeded, p.failed) for p in series.jobs[-range_days:]],
        users=[DailyCount(p.date, p.count) for p in series.users[-range_days:]],
        expenses=[DailyAmount(p.date, p.amount) for p in series.expenses[-range_days:]],
        revenue=[DailyAmount(p.date, p.amount) for p in series.revenue[-range_days:]],
    )


def project(rollup: Rollup, range_days: int, app_id: str | None = None) -> Projection:
    """Slice the rollup to the last ``range_days`` days and derive the ratios.

    Raises:
        ValueError: If range_days is not within 1..rollup.lookback_days.
    """
    if range_days < 1 or range_days > rollup.lookback_days:
        raise ValueError(
            f"range_days must be between 1 and {rollup.lookback_days}, got {range_days}"
        )

    if app_id is None:
        source = rollup.series
    else:
        source = rollup.series_by_app.get(app_id) or DailySeries.empty(rollup.calendar)
    window = _window(source, range_days)

    total_jobs = sum(p.count for p in window.jobs)
    succeeded_jobs = sum(p.succeeded for p in window.jobs)
    failed_jobs = sum(p.failed for p in window.jobs)
    new_users = sum(p.count for p in window.users)
    total_expenses = sum((p.amount for p in window.expenses), ZERO)
    total_revenue = sum((p.amount for p in window.revenue), ZERO)

    app_names = {str(app.id): app.name for app in rollup.apps}
    job_totals = {
        key: sum(p.count for p in series.jobs[-range_days:])
        for key, series in rollup.series_by_app.items()
        if app_id is None or key == app_id
    }

    return Projection(
        range_days=range_days,
        app_id=app_id,
        start_date=window.jobs[0].date,
        end_date=window.jobs[-1].date,
        daily_jobs=window.jobs,
        daily_users=window.users,
        daily_expenses=window.expenses,
        daily_revenue=window.revenue,
        total_jobs=total_jobs,
        succeeded_jobs=succeeded_jobs,
        failed_jobs=failed_jobs,
        new_users=new_users,
        total_expenses=total_expenses,
        total_revenue=total_revenue,
        success_rate=success_rate(total_jobs, succeeded_jobs),
        avg_cost_per_job=avg_cost_per_job(total_expenses, total_jobs),
        roas=roas(total_revenue, total_expenses),
        net_profit=total_revenue - total_expenses,
        top_apps=rank_apps(job_totals, app_names, settings.STATS_TOP_APPS_LIMIT),
    )
