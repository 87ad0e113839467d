from datetime import timedelta
from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from aihub.core.auth import require_admin
from aihub.core.database import get_db
from aihub.models.generation_job import JobStatus
from aihub.models.shared import start_of_day, utc_now
from aihub.repositories.statistics_repository import StatisticsRepository
from aihub.schemas.statistics import (
    AmountBreakdownItem,
    AppItem,
    DailyAmountPoint,
    DailyCountPoint,
    DailyJobPoint,
    DailySeriesResponse,
    ExpenseSummary,
    OverviewResponse,
    ProjectionResponse,
    ProviderUsageItem,
    RecentJobItem,
    RevenueSummary,
    StatisticsResponse,
    TokenStatItem,
    TopAppItem,
    TopPayingUserItem,
)
from aihub.services.statistics_projection import Projection, parse_range, project
from aihub.services.statistics_rollup import (
    WEEK_DAYS,
    AmountBreakdown,
    AppJobCount,
    DailyAmount,
    DailyCount,
    DailyJobStat,
    DailySeries,
    FactSourceUnavailableError,
    Rollup,
    StatisticsRollupService,
)

router = APIRouter(dependencies=[Depends(require_admin)])

_UNAVAILABLE = {503: {"description": "Every statistics fact source is unavailable"}}
_UNAUTHORIZED = {401: {"description": "Unauthorized – invalid or missing admin token"}}


def _job_points(points: list[DailyJobStat]) -> list[DailyJobPoint]:
    return [
        DailyJobPoint(date=p.date, count=p.count, succeeded=p.succeeded, failed=p.failed)
        for p in points
    ]


def _count_points(points: list[DailyCount]) -> list[DailyCountPoint]:
    return [DailyCountPoint(date=p.date, count=p.count) for p in points]


def _amount_points(points: list[DailyAmount]) -> list[DailyAmountPoint]:
    return [DailyAmountPoint(date=p.date, amount=float(p.amount)) for p in points]


def _series(series: DailySeries) -> DailySeriesResponse:
    return DailySeriesResponse(
        jobs=_job_points(series.jobs),
        users=_count_points(series.users),
        expenses=_amount_points(series.expenses),
        revenue=_amount_points(series.revenue),
    )


def _breakdowns(items: list[AmountBreakdown]) -> list[AmountBreakdownItem]:
    return [
        AmountBreakdownItem(
            key=b.key, label=b.label, amount=float(b.amount), count=b.count, share=b.share
        )
        for b in items
    ]


def _top_apps(items: list[AppJobCount]) -> list[TopAppItem]:
    return [TopAppItem(app_id=a.app_id, name=a.name, jobs=a.jobs) for a in items]


def _projection_response(projection: Projection) -> ProjectionResponse:
    roas = projection.roas
    return ProjectionResponse(
        range_days=projection.range_days,
        app_id=projection.app_id,
        start_date=projection.start_date,
        end_date=projection.end_date,
        daily_jobs=_job_points(projection.daily_jobs),
        daily_users=_count_points(projection.daily_users),
        daily_expenses=_amount_points(projection.daily_expenses),
        daily_revenue=_amount_points(projection.daily_revenue),
        total_jobs=projection.total_jobs,
        succeeded_jobs=projection.succeeded_jobs,
        failed_jobs=projection.failed_jobs,
        new_users=projection.new_users,
        total_expenses=float(projection.total_expenses),
        total_revenue=float(projection.total_revenue),
        success_rate=projection.success_rate,
        avg_cost_per_job=float(projection.avg_cost_per_job),
        roas=float(roas) if isinstance(roas, Decimal) else roas,
        net_profit=float(projection.net_profit),
        top_apps=_top_apps(projection.top_apps),
    )


def _statistics_response(rollup: Rollup, projection: Projection) -> StatisticsResponse:
    return StatisticsResponse(
        as_of=rollup.as_of.isoformat(),
        lookback_days=rollup.lookback_days,
        series=_series(rollup.series),
        series_by_app={key: _series(s) for key, s in rollup.series_by_app.items()},
        apps=[AppItem(id=str(a.id), name=a.name) for a in rollup.apps],
        provider_usage=[
            ProviderUsageItem(
                provider_id=p.provider_id,
                provider=p.provider,
                count=p.count,
                avg_latency_ms=p.avg_latency_ms,
            )
            for p in rollup.provider_usage
        ],
        token_stats=[
            TokenStatItem(type=t.type, total=t.total, net=t.net, count=t.count)
            for t in rollup.token_stats
        ],
        top_apps=_top_apps(rollup.top_apps),
        expenses=ExpenseSummary(
            total=float(rollup.total_expenses),
            this_month=float(rollup.expenses_this_month),
            this_week=float(rollup.expenses_this_week),
            by_provider=_breakdowns(rollup.expenses_by_provider),
            by_model=_breakdowns(rollup.expenses_by_model),
        ),
        revenue=RevenueSummary(
            total=float(rollup.total_revenue),
            by_country=_breakdowns(rollup.revenue_by_country),
            by_product=_breakdowns(rollup.revenue_by_product),
            by_store=_breakdowns(rollup.revenue_by_store),
            by_event_type=_breakdowns(rollup.revenue_by_event_type),
            top_paying_users=[
                TopPayingUserItem(
                    app_id=u.app_id,
                    user_external_id=u.user_external_id,
                    amount=float(u.amount),
                    count=u.count,
                )
                for u in rollup.top_paying_users
            ],
        ),
        tokens_used=rollup.tokens_used,
        total_jobs=rollup.total_jobs,
        total_users=rollup.total_users,
        jobs_this_week=rollup.jobs_this_week,
        jobs_this_month=rollup.jobs_this_month,
        failed_sources=rollup.failed_sources,
        projection=_projection_response(projection),
    )


def _build_and_project(
    db: Session, range_token: str | None, app_id: str | None
) -> tuple[Rollup, Projection]:
    try:
        rollup = StatisticsRollupService(db).build()
    except FactSourceUnavailableError as e:
        raise HTTPException(status_code=503, detail=str(e)) from None
    try:
        projection = project(rollup, parse_range(range_token), app_id=app_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from None
    return rollup, projection


@router.get(
    "/statistics",
    response_model=StatisticsResponse,
    summary="Get platform usage, expense and revenue statistics",
    responses={**_UNAUTHORIZED, **_UNAVAILABLE},
)
async def get_statistics(
    db: Session = Depends(get_db),
    range: str | None = Query(None, description="Window: 7d, 14d, 30d, 90d or a day count"),
    app_id: str | None = Query(None, description="Restrict the projection to one app"),
) -> StatisticsResponse:
    """Full lookback rollup plus a projection for the requested window."""
    rollup, projection = _build_and_project(db, range, app_id)
    return _statistics_response(rollup, projection)


@router.get(
    "/statistics/projection",
    response_model=ProjectionResponse,
    summary="Get statistics for one window and app",
    responses={**_UNAUTHORIZED, **_UNAVAILABLE},
)
async def get_statistics_projection(
    db: Session = Depends(get_db),
    range: str | None = Query(None, description="Window: 7d, 14d, 30d, 90d or a day count"),
    app_id: str | None = Query(None, description="Restrict the projection to one app"),
) -> ProjectionResponse:
    """Windowed totals and ratios for one range and app.

    Convenience endpoint: it reads the facts again on every call. Clients that
    already hold a /statistics response re-project locally from its
    ``series_by_app`` instead.
    """
    _, projection = _build_and_project(db, range, app_id)
    return _projection_response(projection)


@router.get(
    "/overview",
    response_model=OverviewResponse,
    summary="Get dashboard overview counts",
    responses=_UNAUTHORIZED,
)
async def get_overview(db: Session = Depends(get_db)) -> OverviewResponse:
    """Headline counts and the most recent jobs for the console home page."""
    repo = StatisticsRepository(db)
    today = utc_now().date()
    today_start = start_of_day(today)
    # Same 7 calendar days, today included, as the rollup's jobs_this_week
    week_start = start_of_day(today - timedelta(days=WEEK_DAYS - 1))
    return OverviewResponse(
        total_apps=repo.count_apps(),
        total_users=repo.count_users(),
        jobs_today=repo.count_jobs(since=today_start),
        jobs_this_week=repo.count_jobs(since=week_start),
        succeeded_today=repo.count_jobs(since=today_start, status=JobStatus.SUCCEEDED),
        failed_today=repo.count_jobs(since=today_start, status=JobStatus.FAILED),
        jobs_in_flight=repo.count_jobs_in_flight(),
        recent_jobs=[
            RecentJobItem(
                id=str(j.id),
                app_name=j.app_name,
                model_name=j.model_name,
                status=j.status,
                created_at=j.created_at.isoformat() if j.created_at else "",
            )
            for j in repo.recent_jobs()
        ],
    )
