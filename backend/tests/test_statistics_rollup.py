"""Tests for the statistics rollup engine."""

import uuid
from datetime import UTC, date, datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from aihub.core.database import get_db
from aihub.models.generation_job import JobStatus
from aihub.models.token_ledger_entry import TokenEntryType
from aihub.repositories.statistics_repository import (
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
from aihub.services.statistics_rollup import (
    UNKNOWN_BUCKET,
    AmountBreakdown,
    FactSourceUnavailableError,
    StatisticsRollupService,
    attribute_expenses,
    attribute_revenue,
    build_series,
    calendar_days,
    date_key,
    rank_apps,
    rank_breakdowns,
    share_of,
    summarize_provider_usage,
    summarize_tokens,
)
from tests.conftest import (
    create_app,
    create_app_user,
    create_job,
    create_model,
    create_pricing,
    create_provider,
    create_revenue_event,
    create_token_entry,
    create_usage_log,
    days_ago,
)

AS_OF = date(2026, 3, 15)
NOON = datetime(2026, 3, 15, 12, 0, tzinfo=UTC)

P1 = uuid.uuid4()
M1 = uuid.uuid4()
J1 = uuid.uuid4()
APP = uuid.uuid4()


@pytest.fixture
def db_session():
    gen = get_db()
    db = next(gen)
    try:
        yield db
    finally:
        for _ in gen:
            pass


def _log(job_id=J1, provider_id=P1, provider_name="Fal.ai", app_id=None, created_at=NOON):
    return UsageLogWithProvider(
        id=uuid.uuid4(),
        job_id=job_id,
        provider_id=provider_id,
        provider_name=provider_name,
        app_id=app_id,
        created_at=created_at,
    )


def _event(
    amount, country=None, user="user-1", product=None, store=None, created_at=NOON, app_id=APP
):
    return RevenueFactRow(
        id=uuid.uuid4(),
        app_id=app_id,
        user_external_id=user,
        event_type="INITIAL_PURCHASE",
        product_id=product,
        store=store,
        country_code=country,
        net_revenue_usd=Decimal(amount) if amount is not None else None,
        created_at=created_at,
    )


def _failing_query(*args, **kwargs):
    raise OperationalError("SELECT 1", {}, Exception("database is unavailable"))


class TestCalendar:
    def test_calendar_days_ends_at_as_of(self):
        days = calendar_days(AS_OF, 3)
        assert days == ["2026-03-13", "2026-03-14", "2026-03-15"]

    def test_calendar_days_crosses_month_boundary(self):
        assert calendar_days(date(2026, 3, 1), 2) == ["2026-02-28", "2026-03-01"]

    def test_calendar_days_rejects_non_positive(self):
        with pytest.raises(ValueError):
            calendar_days(AS_OF, 0)

    def test_date_key_uses_utc_day(self):
        late_evening_west = datetime(2026, 3, 14, 22, 0, tzinfo=timezone(timedelta(hours=-5)))
        assert date_key(late_evening_west) == "2026-03-15"
        assert date_key(datetime(2026, 3, 14, 23, 59)) == "2026-03-14"


class TestBreakdowns:
    def test_share_of_zero_total(self):
        assert share_of(Decimal("0"), Decimal("0")) == 0.0

    def test_share_of_percentage(self):
        assert share_of(Decimal("1"), Decimal("4")) == 25.0

    def test_rank_breakdowns_sorts_descending_with_stable_ties(self):
        buckets = {
            "a": AmountBreakdown(key="a", label="A", amount=Decimal("1"), count=1),
            "b": AmountBreakdown(key="b", label="B", amount=Decimal("3"), count=1),
            "c": AmountBreakdown(key="c", label="C", amount=Decimal("1"), count=1),
        }

        ranked = rank_breakdowns(buckets)

        assert [b.key for b in ranked] == ["b", "a", "c"]
        assert ranked[0].share == 60.0
        assert sum(b.share for b in ranked) == pytest.approx(100.0)


class TestAttributeExpenses:
    def test_basic_expense_rollup(self):
        jobs = {J1: JobModelRef(model_id=M1, model_name="Flux Dev", app_id=APP)}
        costs = {cost_key(M1, P1): Decimal("0.0025")}

        result = attribute_expenses([_log()], jobs, costs)

        assert result.total == Decimal("0.0025")
        assert len(result.by_provider) == 1
        assert result.by_provider[0].key == str(P1)
        assert result.by_provider[0].amount == Decimal("0.0025")
        assert result.by_provider[0].count == 1
        assert result.by_model[0].label == "Flux Dev"
        assert result.daily == {"2026-03-15": Decimal("0.0025")}
        assert result.daily_by_app == {str(APP): {"2026-03-15": Decimal("0.0025")}}

    def test_missing_pricing_costs_zero(self):
        jobs = {J1: JobModelRef(model_id=M1, model_name="Flux Dev", app_id=APP)}

        result = attribute_expenses([_log()], jobs, {})

        assert result.total == Decimal("0")
        assert result.by_provider[0].count == 1
        assert result.by_provider[0].amount == Decimal("0")

    def test_unresolved_job_counts_for_provider_but_not_model(self):
        costs = {cost_key(M1, P1): Decimal("0.0025")}

        result = attribute_expenses([_log(job_id=uuid.uuid4())], {}, costs)

        assert result.total == Decimal("0")
        assert result.by_provider[0].count == 1
        assert result.by_model == []

    def test_total_equals_provider_sum(self):
        p2 = uuid.uuid4()
        jobs = {J1: JobModelRef(model_id=M1, model_name="Flux Dev", app_id=APP)}
        costs = {cost_key(M1, P1): Decimal("0.0025"), cost_key(M1, p2): Decimal("0.01")}
        logs = [_log(), _log(), _log(provider_id=p2, provider_name="Replicate")]

        result = attribute_expenses(logs, jobs, costs)

        assert result.total == Decimal("0.015")
        assert sum(b.amount for b in result.by_provider) == result.total
        assert sum(b.amount for b in result.by_model) == result.total
        assert [b.label for b in result.by_provider] == ["Replicate", "Fal.ai"]

    def test_purged_jobs_mixed_with_resolved_jobs(self):
        j2 = uuid.uuid4()
        jobs = {
            J1: JobModelRef(model_id=M1, model_name="Flux Dev", app_id=APP),
            j2: JobModelRef(model_id=M1, model_name="Flux Dev", app_id=APP),
        }
        costs = {cost_key(M1, P1): Decimal("0.0025")}
        logs = [_log(), _log(job_id=j2), _log(job_id=uuid.uuid4()), _log(job_id=uuid.uuid4())]

        result = attribute_expenses(logs, jobs, costs)

        assert result.total == Decimal("0.0050")
        assert sum(b.amount for b in result.by_provider) == result.total
        assert sum(b.amount for b in result.by_model) == result.total
        assert sum(b.count for b in result.by_provider) == 4
        assert sum(b.count for b in result.by_model) == 2

    def test_log_app_id_takes_precedence(self):
        log_app = uuid.uuid4()
        jobs = {J1: JobModelRef(model_id=M1, model_name="Flux Dev", app_id=APP)}
        costs = {cost_key(M1, P1): Decimal("1")}

        result = attribute_expenses([_log(app_id=log_app)], jobs, costs)

        assert list(result.daily_by_app) == [str(log_app)]


class TestAttributeRevenue:
    def test_country_bucketing(self):
        events = [_event("10.00", "US"), _event("5.00", "US"), _event("2.00", None)]

        result = attribute_revenue(events)

        by_country = {b.key: b for b in result.by_country}
        assert by_country["US"].amount == Decimal("15.00")
        assert by_country["US"].count == 2
        assert by_country[UNKNOWN_BUCKET].amount == Decimal("2.00")
        assert by_country[UNKNOWN_BUCKET].count == 1
        assert result.total == Decimal("17.00")

    def test_missing_dimensions_go_to_unknown(self):
        result = attribute_revenue([_event("3.00")])

        assert [b.key for b in result.by_product] == [UNKNOWN_BUCKET]
        assert [b.key for b in result.by_store] == [UNKNOWN_BUCKET]
        assert [b.key for b in result.by_event_type] == ["INITIAL_PURCHASE"]

    def test_null_amount_counts_as_zero(self):
        result = attribute_revenue([_event(None, "DE"), _event("4.00", "DE")])

        assert result.total == Decimal("4.00")
        assert result.by_country[0].count == 2

    def test_top_paying_users_ranking(self):
        events = [
            _event("5", user="small"),
            _event("30", user="whale"),
            _event("20", user="whale"),
            _event("20", user="medium"),
        ]

        result = attribute_revenue(events)

        assert [u.amount for u in result.top_paying_users] == [
            Decimal("50"),
            Decimal("20"),
            Decimal("5"),
        ]
        assert result.top_paying_users[0].user_external_id == "whale"
        assert result.top_paying_users[0].count == 2

    def test_same_external_id_in_two_apps_stays_separate(self):
        other_app = uuid.uuid4()
        events = [
            _event("30.00", user="user-1"),
            _event("25.00", user="user-1", app_id=other_app),
            _event("40.00", user="user-2"),
        ]

        result = attribute_revenue(events)

        assert [(u.app_id, u.user_external_id, u.amount) for u in result.top_paying_users] == [
            (str(APP), "user-2", Decimal("40.00")),
            (str(APP), "user-1", Decimal("30.00")),
            (str(other_app), "user-1", Decimal("25.00")),
        ]

    def test_top_paying_users_limit(self):
        events = [_event(str(i + 1), user=f"user-{i}") for i in range(15)]

        result = attribute_revenue(events, top_users_limit=10)

        assert len(result.top_paying_users) == 10
        assert result.top_paying_users[0].amount == Decimal("15")


class TestSummaries:
    def test_provider_average_latency_rounds_half_up(self):
        rows = {P1: ProviderUsageRow(P1, "Fal.ai", count=2, total_latency_ms=301)}

        stats = summarize_provider_usage(rows)

        assert stats[0].avg_latency_ms == 151
        assert stats[0].provider == "Fal.ai"

    def test_token_totals_report_absolute_volume(self):
        totals = {"GENERATION_DEBIT": TokenLedgerTotal("GENERATION_DEBIT", -12, 2)}

        stats = summarize_tokens(totals)

        assert stats[0].total == 12
        assert stats[0].net == -12

    def test_rank_apps_drops_idle_apps_and_limits(self):
        totals = {"a": 3, "b": 0, "c": 7, "d": 3}

        ranked = rank_apps(totals, {"a": "Alpha", "c": "Gamma"}, limit=3)

        assert [(a.app_id, a.jobs) for a in ranked] == [("c", 7), ("a", 3), ("d", 3)]
        assert ranked[2].name == "d"


class TestBuildSeries:
    def test_gap_fill_and_per_app_split(self):
        calendar = calendar_days(AS_OF, 5)
        other = uuid.uuid4()
        job_rows = [
            DailyJobRow("2026-03-12", APP, 2, 1, 1),
            DailyJobRow("2026-03-15", other, 4, 4, 0),
            DailyJobRow("2026-01-01", APP, 9, 9, 0),
        ]
        user_rows = [DailyUserRow("2026-03-14", APP, 3)]
        expenses = attribute_expenses([], {}, {})
        revenue = attribute_revenue([_event("2.50")])

        overall, by_app = build_series(calendar, job_rows, user_rows, expenses, revenue)

        assert [p.date for p in overall.jobs] == calendar
        assert [p.count for p in overall.jobs] == [0, 2, 0, 0, 4]
        assert [p.count for p in overall.users] == [0, 0, 0, 3, 0]
        assert overall.revenue[-1].amount == Decimal("2.50")
        assert [p.count for p in by_app[str(APP)].jobs] == [0, 2, 0, 0, 0]
        assert [p.count for p in by_app[str(other)].jobs] == [0, 0, 0, 0, 4]
        assert all(len(s.expenses) == 5 for s in by_app.values())


class TestStatisticsRollupService:
    @pytest.fixture
    def seeded(self, db_session):
        app = create_app(db_session, "Photo Magic")
        other = create_app(db_session, "Voice Lab")
        provider = create_provider(db_session, "fal", "Fal.ai")
        model = create_model(db_session, "flux-dev", "Flux Dev")
        create_pricing(db_session, model, provider, "0.0025")

        user = create_app_user(db_session, app, "buyer-1", days_ago(1))
        create_app_user(db_session, other, "listener-1", days_ago(0))

        job = create_job(db_session, app, model, JobStatus.SUCCEEDED, days_ago(0))
        create_job(db_session, app, model, JobStatus.FAILED, days_ago(0))
        create_job(db_session, other, model, JobStatus.SUCCEEDED, days_ago(2))
        create_usage_log(db_session, job.id, provider, success=True, latency_ms=200)
        create_usage_log(db_session, job.id, provider, success=False, latency_ms=100)

        create_revenue_event(db_session, app, "10.00", user=user, country_code="US")
        create_revenue_event(db_session, app, "5.00", user=user, country_code="US")
        create_revenue_event(db_session, app, "2.00", revenue_cat_user_id="rc_2")

        create_token_entry(db_session, user, 100, TokenEntryType.GRANT.value)
        create_token_entry(db_session, user, -8, TokenEntryType.GENERATION_DEBIT.value)
        return app, other, provider, model

    def test_build_full_rollup(self, db_session, seeded):
        app, other, provider, model = seeded

        rollup = StatisticsRollupService(db_session, lookback_days=30).build()

        assert rollup.lookback_days == 30
        assert len(rollup.series.jobs) == 30
        assert rollup.calendar[-1] == datetime.now(UTC).date().isoformat()
        assert rollup.series.jobs[-1].count == 2
        assert rollup.series.jobs[-1].succeeded == 1
        assert rollup.series.jobs[-1].failed == 1
        assert rollup.total_jobs == 3
        assert rollup.total_users == 2
        assert rollup.jobs_this_week == 3
        assert rollup.total_expenses == Decimal("0.0025")
        assert rollup.expenses_by_provider[0].label == "Fal.ai"
        assert rollup.expenses_by_model[0].label == "Flux Dev"
        assert rollup.total_revenue == Decimal("17.00")
        assert rollup.revenue_by_country[0].key == "US"
        assert rollup.top_paying_users[0].user_external_id == "buyer-1"
        assert rollup.tokens_used == 8
        assert rollup.provider_usage[0].count == 2
        assert rollup.provider_usage[0].avg_latency_ms == 150
        assert [a.name for a in rollup.top_apps] == ["Photo Magic", "Voice Lab"]
        assert set(rollup.series_by_app) == {str(app.id), str(other.id)}
        assert rollup.failed_sources == []

    def test_top_payers_are_per_app_user(self, db_session):
        photo = create_app(db_session, "Photo Magic")
        voice = create_app(db_session, "Voice Lab")
        photo_user = create_app_user(db_session, photo, "user-1")
        voice_user = create_app_user(db_session, voice, "user-1")
        big_spender = create_app_user(db_session, photo, "user-2")
        create_revenue_event(db_session, photo, "30.00", user=photo_user)
        create_revenue_event(db_session, voice, "25.00", user=voice_user)
        create_revenue_event(db_session, photo, "40.00", user=big_spender)

        rollup = StatisticsRollupService(db_session, lookback_days=30).build()

        assert [
            (u.app_id, u.user_external_id, u.amount) for u in rollup.top_paying_users
        ] == [
            (str(photo.id), "user-2", Decimal("40.00")),
            (str(photo.id), "user-1", Decimal("30.00")),
            (str(voice.id), "user-1", Decimal("25.00")),
        ]

    def test_week_is_last_seven_calendar_days(self, db_session):
        app = create_app(db_session, "Photo Magic")
        model = create_model(db_session, "flux-dev", "Flux Dev")
        create_job(db_session, app, model, created_at=days_ago(6))
        create_job(db_session, app, model, created_at=days_ago(7))

        rollup = StatisticsRollupService(db_session, lookback_days=30).build()

        assert rollup.jobs_this_week == 1
        assert rollup.jobs_this_month == 2

    def test_empty_store_gives_zero_filled_series(self, db_session):
        rollup = StatisticsRollupService(db_session, lookback_days=7).build()

        assert [p.count for p in rollup.series.jobs] == [0] * 7
        assert rollup.total_revenue == Decimal("0")
        assert rollup.top_apps == []
        assert rollup.series_by_app == {}

    def test_default_lookback_from_settings(self, db_session):
        rollup = StatisticsRollupService(db_session).build()

        assert rollup.lookback_days == 90
        assert len(rollup.calendar) == 90

    def test_clock_sets_as_of(self, db_session):
        fixed = datetime(2025, 1, 10, 8, 30, tzinfo=UTC)

        rollup = StatisticsRollupService(db_session, lookback_days=3, clock=lambda: fixed).build()

        assert rollup.as_of == date(2025, 1, 10)
        assert rollup.calendar == ["2025-01-08", "2025-01-09", "2025-01-10"]

    def test_partial_failure_degrades_to_empty(self, db_session, seeded, monkeypatch):
        def failing_revenue(self, since):
            return self._guarded("revenue_events", lambda: _failing_query(), [])

        monkeypatch.setattr(StatisticsRepository, "revenue_events", failing_revenue)

        rollup = StatisticsRollupService(db_session, lookback_days=30).build()

        assert rollup.failed_sources == ["revenue_events"]
        assert rollup.total_revenue == Decimal("0")
        assert rollup.total_expenses == Decimal("0.0025")

    def test_all_sources_failing_raises(self, db_session, monkeypatch):
        monkeypatch.setattr(db_session, "query", _failing_query)

        with pytest.raises(FactSourceUnavailableError) as exc_info:
            StatisticsRollupService(db_session, lookback_days=7).build()

        assert "revenue_events" in exc_info.value.sources
        assert len(exc_info.value.sources) == 6
