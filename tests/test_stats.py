from datetime import datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from database import Base
from models import EntryKind
from periods import PeriodType
from schemas import ExpenseIn, IncomeIn, StatsPeriod
from services import EntryService, StatsService, financial_summary


NOW = datetime(2026, 10, 19, 12, 0)

THIS_MONTH = StatsPeriod(type=PeriodType.month, offset=0)
ALL_TIME = StatsPeriod(type=PeriodType.all)


def make_session():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:", connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return SessionLocal()


def add_expense(session, amount: float, when: datetime, category: str = "Food"):
    return EntryService(session, EntryKind.expense).create(
        ExpenseIn(amount=amount, date_time=when, category=category)
    )


def add_income(session, amount: float, when: datetime, source: str = "Salary"):
    return EntryService(session, EntryKind.income).create(
        IncomeIn(amount=amount, date_time=when, source=source)
    )


def test_single_expense_in_current_month() -> None:
    session = make_session()
    add_expense(session, 150, datetime(2026, 10, 5, 9, 30))

    stats = StatsService(session, EntryKind.expense).period_stats(THIS_MONTH, now=NOW)

    assert stats.total == 150
    assert stats.count == 1
    assert stats.max == 150
    assert stats.min == 150
    assert stats.top_key == "Food"
    # Expense stats divide by the whole month, even while it is running
    assert stats.days == 31
    assert stats.avg_per_day == round(150 / 31, 2)


def test_clamp_policy_differs_per_kind_and_can_be_overridden() -> None:
    session = make_session()
    add_expense(session, 150, datetime(2026, 10, 5, 9, 30))
    add_income(session, 150, datetime(2026, 10, 5, 9, 30))

    expenses = StatsService(session, EntryKind.expense)
    incomes = StatsService(session, EntryKind.income)

    income_stats = incomes.period_stats(THIS_MONTH, now=NOW)
    assert income_stats.days == 19
    assert income_stats.avg_per_day == 7.89

    clamped = expenses.period_stats(THIS_MONTH, now=NOW, clamp_rolling_end_to_now=True)
    assert clamped.days == 19
    assert clamped.avg_per_day == 7.89

    unclamped = incomes.period_stats(
        THIS_MONTH, now=NOW, clamp_rolling_end_to_now=False
    )
    assert unclamped.days == 31


def test_clamp_only_applies_to_in_progress_periods() -> None:
    session = make_session()
    add_income(session, 300, datetime(2026, 9, 12, 9, 0))
    add_income(session, 100, datetime(2026, 3, 2, 9, 0))
    incomes = StatsService(session, EntryKind.income)

    last_month = incomes.period_stats(
        StatsPeriod(type=PeriodType.month, offset=1), now=NOW
    )
    assert last_month.days == 30
    assert last_month.avg_per_day == 10

    this_year = incomes.period_stats(StatsPeriod(type=PeriodType.year), now=NOW)
    assert this_year.days == 292
    assert this_year.total == 400

    today = incomes.period_stats(StatsPeriod(type=PeriodType.today), now=NOW)
    assert today.days == 1
    assert today.count == 0


def test_average_per_day_is_rounded_to_two_places() -> None:
    session = make_session()
    add_expense(session, 40, datetime(2026, 1, 1, 0, 0))
    add_expense(session, 60, datetime(2026, 1, 3, 0, 0), category="Travel")

    stats = StatsService(session, EntryKind.expense).period_stats(ALL_TIME, now=NOW)

    assert stats.days == 3
    assert stats.total == 100
    assert stats.avg_per_day == 33.33
    assert stats.max == 60
    assert stats.min == 40


def test_open_bounds_resolve_to_data_extremes() -> None:
    session = make_session()
    add_income(session, 10, datetime(2024, 3, 5, 10, 0))
    add_income(session, 20, datetime(2025, 6, 1, 12, 0))
    add_income(session, 30, datetime(2026, 10, 10, 8, 0))

    stats = StatsService(session, EntryKind.income).period_stats(ALL_TIME, now=NOW)

    # 949 calendar days apart, minus two hours
    assert stats.days == 949
    assert stats.count == 3
    assert stats.total == 60


def test_trashed_entries_are_excluded_everywhere() -> None:
    session = make_session()
    add_expense(session, 10, datetime(2026, 10, 1, 8, 0))
    early = add_expense(session, 500, datetime(2026, 1, 1, 8, 0), category="Rent")
    big = add_expense(session, 900, datetime(2026, 10, 2, 8, 0), category="Rent")

    service = EntryService(session, EntryKind.expense)
    service.soft_delete(big.id)
    service.soft_delete(early.id)

    stats = StatsService(session, EntryKind.expense).period_stats(ALL_TIME, now=NOW)

    assert stats.total == 10
    assert stats.count == 1
    assert stats.max == 10
    assert stats.days == 1
    assert [g.key for g in stats.groups] == ["Food"]


def test_groups_sum_to_total_and_sort_descending() -> None:
    session = make_session()
    add_expense(session, 12.5, datetime(2026, 10, 1, 8, 0), category="Food")
    add_expense(session, 7.25, datetime(2026, 10, 2, 8, 0), category="Food")
    add_expense(session, 100, datetime(2026, 10, 3, 8, 0), category="Rent")
    add_expense(session, 0.75, datetime(2026, 10, 4, 8, 0), category="Misc")

    stats = StatsService(session, EntryKind.expense).period_stats(THIS_MONTH, now=NOW)

    assert [(g.key, g.total, g.count) for g in stats.groups] == [
        ("Rent", 100, 1),
        ("Food", 19.75, 2),
        ("Misc", 0.75, 1),
    ]
    assert stats.top_key == "Rent"
    assert stats.total == sum(g.total for g in stats.groups)
    assert stats.total_cents == sum(g.total_cents for g in stats.groups)
    assert stats.count == sum(g.count for g in stats.groups)


def test_cent_amounts_add_up_exactly() -> None:
    session = make_session()
    add_expense(session, 0.1, datetime(2026, 10, 1, 8, 0), category="Food")
    add_expense(session, 0.2, datetime(2026, 10, 2, 8, 0), category="Food")
    add_expense(session, 0.7, datetime(2026, 10, 3, 8, 0), category="Misc")

    service = StatsService(session, EntryKind.expense)
    stats = service.period_stats(THIS_MONTH, now=NOW)

    assert stats.total == 1.0
    assert stats.total_cents == 100
    assert [(g.key, g.total, g.total_cents) for g in stats.groups] == [
        ("Misc", 0.7, 70),
        ("Food", 0.3, 30),
    ]
    assert stats.total_cents == sum(g.total_cents for g in stats.groups)

    EntryService(session, EntryKind.expense).soft_delete_by_group("Misc")
    food = service.period_stats(THIS_MONTH, now=NOW)
    assert food.total == sum(g.total for g in food.groups) == 0.3


def test_tied_groups_break_on_key() -> None:
    session = make_session()
    add_expense(session, 50, datetime(2026, 10, 1, 8, 0), category="Travel")
    add_expense(session, 50, datetime(2026, 10, 2, 8, 0), category="Bills")

    stats = StatsService(session, EntryKind.expense).period_stats(THIS_MONTH, now=NOW)

    assert [g.key for g in stats.groups] == ["Bills", "Travel"]
    assert stats.top_key == "Bills"


def test_empty_ledger_yields_zeroes() -> None:
    session = make_session()
    service = StatsService(session, EntryKind.expense)

    everything = service.period_stats(ALL_TIME, now=NOW)
    assert everything.days == 0
    assert everything.total == 0
    assert everything.count == 0
    assert everything.avg_per_day == 0
    assert everything.max == 0
    assert everything.min == 0
    assert everything.groups == []
    assert everything.top_key is None

    month = service.period_stats(THIS_MONTH, now=NOW)
    assert month.days == 31
    assert month.total == 0
    assert month.avg_per_day == 0


def test_week_stats_use_calendar_week() -> None:
    session = make_session()
    add_expense(session, 70, datetime(2026, 10, 18, 9, 0))
    add_expense(session, 5, datetime(2026, 10, 17, 23, 0))

    stats = StatsService(session, EntryKind.expense).period_stats(
        StatsPeriod(type=PeriodType.week), now=NOW
    )

    assert stats.days == 7
    assert stats.total == 70
    assert stats.avg_per_day == 10


def test_financial_summary() -> None:
    session = make_session()
    add_income(session, 1000, datetime(2026, 10, 1, 9, 0))
    add_expense(session, 250, datetime(2026, 10, 2, 9, 0))

    expense_stats = StatsService(session, EntryKind.expense).period_stats(
        THIS_MONTH, now=NOW
    )
    income_stats = StatsService(session, EntryKind.income).period_stats(
        THIS_MONTH, now=NOW
    )
    summary = financial_summary(expense_stats, income_stats)
    assert summary.net_income == 750
    assert summary.savings_rate == 75

    empty_income = StatsService(session, EntryKind.income).period_stats(
        StatsPeriod(type=PeriodType.month, offset=1), now=NOW
    )
    empty_expense = StatsService(session, EntryKind.expense).period_stats(
        StatsPeriod(type=PeriodType.month, offset=1), now=NOW
    )
    assert financial_summary(empty_expense, empty_income).savings_rate == 0

    with pytest.raises(ValueError):
        financial_summary(expense_stats, empty_income)
