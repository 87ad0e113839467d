from pydantic import BaseModel


class DailyJobPoint(BaseModel):
    date: str
    count: int
    succeeded: int
    failed: int


class DailyCountPoint(BaseModel):
    date: str
    count: int


class DailyAmountPoint(BaseModel):
    date: str
    amount: float


class DailySeriesResponse(BaseModel):
    jobs: list[DailyJobPoint]
    users: list[DailyCountPoint]
    expenses: list[DailyAmountPoint]
    revenue: list[DailyAmountPoint]


class AmountBreakdownItem(BaseModel):
    key: str
    label: str
    amount: float
    count: int
    share: float  # percent of the dimension total


class ProviderUsageItem(BaseModel):
    provider_id: str
    provider: str
    count: int
    avg_latency_ms: int


class TokenStatItem(BaseModel):
    type: str
    total: int
    net: int
    count: int


class TopAppItem(BaseModel):
    app_id: str
    name: str
    jobs: int


class TopPayingUserItem(BaseModel):
    app_id: str
    user_external_id: str
    amount: float
    count: int


class AppItem(BaseModel):
    id: str
    name: str


class ExpenseSummary(BaseModel):
    total: float
    this_month: float
    this_week: float
    by_provider: list[AmountBreakdownItem]
    by_model: list[AmountBreakdownItem]


class RevenueSummary(BaseModel):
    total: float
    by_country: list[AmountBreakdownItem]
    by_product: list[AmountBreakdownItem]
    by_store: list[AmountBreakdownItem]
    by_event_type: list[AmountBreakdownItem]
    top_paying_users: list[TopPayingUserItem]


class ProjectionResponse(BaseModel):
    range_days: int
    app_id: str | None = None
    start_date: str
    end_date: str
    daily_jobs: list[DailyJobPoint]
    daily_users: list[DailyCountPoint]
    daily_expenses: list[DailyAmountPoint]
    daily_revenue: list[DailyAmountPoint]
    total_jobs: int
    succeeded_jobs: int
    failed_jobs: int
    new_users: int
    total_expenses: float
    total_revenue: float
    success_rate: float
    avg_cost_per_job: float
    roas: float | str  # "∞" when there is revenue but no spend
    net_profit: float
    top_apps: list[TopAppItem]
    currency: str = "USD"


class StatisticsResponse(BaseModel):
    as_of: str
    lookback_days: int
    series: DailySeriesResponse
    series_by_app: dict[str, DailySeriesResponse]
    apps: list[AppItem]
    provider_usage: list[ProviderUsageItem]
    token_stats: list[TokenStatItem]
    top_apps: list[TopAppItem]
    expenses: ExpenseSummary
    revenue: RevenueSummary
    tokens_used: int
    total_jobs: int
    total_users: int
    jobs_this_week: int
    jobs_this_month: int
    failed_sources: list[str]
    projection: ProjectionResponse
    currency: str = "USD"


class RecentJobItem(BaseModel):
    id: str
    app_name: str
    model_name: str
    status: str
    created_at: str


class OverviewResponse(BaseModel):
    total_apps: int
    total_users: int
    jobs_today: int
    jobs_this_week: int
    succeeded_today: int
    failed_today: int
    jobs_in_flight: int
    recent_jobs: list[RecentJobItem]
