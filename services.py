from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from config import Settings, get_settings
from models import (
    Category,
    EntryKind,
    LedgerEntry,
    cents_to_amount,
    group_column,
    model_for,
    to_cents,
)
from periods import (
    ROLLING_PERIOD_TYPES,
    days_in_window,
    local_now,
    month_label,
    month_window,
    months_between,
    resolve_stats_period,
    start_of_month,
)
from schemas import (
    INPUT_BY_KIND,
    AvailableMonth,
    CategoryIn,
    EntryBase,
    EntryOut,
    FinancialSummary,
    GroupTotal,
    MonthPage,
    PeriodStats,
    StatsPeriod,
)


logger = logging.getLogger(__name__)

# Income stats stop counting days at "now" while the current week/month/year
# is still running; expense stats divide by the full period length.
CLAMP_ROLLING_END_DEFAULTS: dict[EntryKind, bool] = {
    EntryKind.expense: False,
    EntryKind.income: True,
}


class InvalidEntryId(ValueError):
    pass


class EntryNotFound(ValueError):
    pass


def parse_entry_id(entry_id: int | str) -> int:
    if isinstance(entry_id, bool):
        raise InvalidEntryId("Invalid ID format. ID must be a number.")
    if isinstance(entry_id, int):
        return entry_id
    try:
        return int(str(entry_id).strip())
    except ValueError as exc:
        raise InvalidEntryId("Invalid ID format. ID must be a number.") from exc


def live_filter(
    model,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    before: Optional[datetime] = None,
) -> list:
    """WHERE clauses shared by every read: never trashed, optionally windowed.

    ``start`` and ``end`` are inclusive, ``before`` is exclusive.
    """
    conditions = [model.is_trashed.is_(False)]
    if start is not None:
        conditions.append(model.date_time >= start)
    if end is not None:
        conditions.append(model.date_time <= end)
    if before is not None:
        conditions.append(model.date_time < before)
    return conditions


def entry_values(kind: EntryKind, data: EntryBase, default_currency: str) -> dict:
    expected = INPUT_BY_KIND[kind]
    if not isinstance(data, expected):
        raise ValueError(f"Expected {expected.__name__} for {kind.value} entries")
    values = data.model_dump()
    values["amount_cents"] = to_cents(values.pop("amount"))
    values["currency"] = values.get("currency") or default_currency
    return values


class _KindService:
    def __init__(
        self,
        session: Session,
        kind: EntryKind,
        settings: Optional[Settings] = None,
    ) -> None:
        self.session = session
        self.kind = EntryKind(kind)
        self.model = model_for(self.kind)
        self.group_col = group_column(self.kind)
        self.settings = settings or get_settings()

    def _now(self, now: Optional[datetime]) -> datetime:
        return now or local_now(self.settings.timezone)


class EntryService(_KindService):
    """Insert, edit and trash ledger entries of one kind."""

    def has_any(self) -> bool:
        stmt = select(func.count(self.model.id)).where(*live_filter(self.model))
        return (self.session.execute(stmt).scalar_one() or 0) > 0

    def create(self, data: EntryBase) -> LedgerEntry:
        values = entry_values(self.kind, data, self.settings.default_currency)
        entry = self.model(**values)
        self.session.add(entry)
        try:
            self.session.commit()
        except SQLAlchemyError:
            logger.exception(f"entry_create: failed kind={self.kind.value}")
            self.session.rollback()
            raise
        self.session.refresh(entry)
        logger.info(
            f"entry_created: kind={self.kind.value} id={entry.id} amount={entry.amount}"
        )
        return entry

    def get(self, entry_id: int | str, *, include_trashed: bool = False) -> LedgerEntry:
        numeric_id = parse_entry_id(entry_id)
        stmt = select(self.model).where(self.model.id == numeric_id)
        if not include_trashed:
            stmt = stmt.where(*live_filter(self.model))
        entry = self.session.scalar(stmt)
        if not entry:
            raise EntryNotFound(f"{self.kind.value.title()} with ID {entry_id} not found.")
        return entry

    def update(self, entry_id: int | str, data: EntryBase) -> LedgerEntry:
        numeric_id = parse_entry_id(entry_id)
        values = entry_values(self.kind, data, self.settings.default_currency)
        stmt = (
            update(self.model)
            .where(self.model.id == numeric_id, *live_filter(self.model))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        try:
            result = self.session.execute(stmt)
            if result.rowcount == 0:
                self.session.rollback()
                raise EntryNotFound(
                    f"{self.kind.value.title()} with ID {entry_id} not found or no changes made."
                )
            self.session.commit()
        except SQLAlchemyError:
            logger.exception(
                f"entry_update: failed kind={self.kind.value} id={numeric_id}"
            )
            self.session.rollback()
            raise
        logger.info(f"entry_updated: kind={self.kind.value} id={numeric_id}")
        entry = self.get(numeric_id)
        self.session.refresh(entry)
        return entry

    def soft_delete(self, entry_id: int | str) -> None:
        numeric_id = parse_entry_id(entry_id)
        stmt = (
            update(self.model)
            .where(self.model.id == numeric_id, *live_filter(self.model))
            .values(is_trashed=True)
            .execution_options(synchronize_session=False)
        )
        try:
            result = self.session.execute(stmt)
            if result.rowcount == 0:
                self.session.rollback()
                raise EntryNotFound(
                    f"{self.kind.value.title()} with ID {entry_id} not found or already deleted."
                )
            self.session.commit()
        except SQLAlchemyError:
            logger.exception(
                f"entry_trash: failed kind={self.kind.value} id={numeric_id}"
            )
            self.session.rollback()
            raise
        logger.info(f"entry_trashed: kind={self.kind.value} id={numeric_id}")

    def soft_delete_by_group(self, key: str) -> int:
        stmt = (
            update(self.model)
            .where(self.group_col == key, *live_filter(self.model))
            .values(is_trashed=True)
            .execution_options(synchronize_session=False)
        )
        try:
            result = self.session.execute(stmt)
            self.session.commit()
        except SQLAlchemyError:
            logger.exception(f"group_trash: failed kind={self.kind.value} key={key}")
            self.session.rollback()
            raise
        logger.info(
            f"group_trashed: kind={self.kind.value} key={key} changes={result.rowcount}"
        )
        return result.rowcount

    def group_usage_counts(self) -> dict[str, int]:
        count = func.count(self.model.id).label("entry_count")
        stmt = (
            select(self.group_col.label("key"), count)
            .where(*live_filter(self.model))
            .group_by(self.group_col)
            .order_by(count.desc(), self.group_col.asc())
        )
        return {row.key: int(row.entry_count) for row in self.session.execute(stmt)}


class MonthPageService(_KindService):
    """Month-sized pages over the ledger and discovery of populated months."""

    def _count_between(self, start: datetime, end: datetime) -> int:
        stmt = select(func.count(self.model.id)).where(
            *live_filter(self.model, start=start, end=end)
        )
        return int(self.session.execute(stmt).scalar_one() or 0)

    def _newest_before(self, moment: datetime) -> Optional[datetime]:
        stmt = (
            select(self.model.date_time)
            .where(*live_filter(self.model, before=moment))
            .order_by(self.model.date_time.desc())
            .limit(1)
        )
        return self.session.scalar(stmt)

    def _any_before(self, moment: datetime) -> bool:
        stmt = (
            select(self.model.id)
            .where(*live_filter(self.model, before=moment))
            .limit(1)
        )
        return self.session.scalar(stmt) is not None

    def page(self, offset_month: int = 0, now: Optional[datetime] = None) -> MonthPage:
        now = self._now(now)
        start, end = month_window(offset_month, now)
        label = month_label(start)
        logger.debug(
            f"month_page: kind={self.kind.value} offset_month={offset_month} month={label}"
        )

        stmt = (
            select(self.model)
            .where(*live_filter(self.model, start=start, end=end))
            .order_by(self.model.date_time.desc(), self.model.id.desc())
        )
        entries = self.session.scalars(stmt).all()
        has_more = self._any_before(start)

        logger.debug(
            f"month_page: kind={self.kind.value} count={len(entries)} has_more={has_more}"
        )
        return MonthPage(
            entries=[EntryOut.model_validate(entry) for entry in entries],
            has_more=has_more,
            offset_month=offset_month,
            month=label,
        )

    def available_months(self, now: Optional[datetime] = None) -> list[AvailableMonth]:
        now = self._now(now)
        months: list[AvailableMonth] = []
        offset = 0

        while True:
            start, end = month_window(offset, now)
            count = self._count_between(start, end)
            if count > 0:
                months.append(
                    AvailableMonth(
                        offset_month=offset, month=month_label(start), count=count
                    )
                )

            older = self._newest_before(start)
            if older is None:
                break
            # Jump straight to the month holding the next older entry.
            offset = months_between(now, start_of_month(older))

        months.sort(key=lambda item: item.offset_month)
        logger.debug(f"available_months: kind={self.kind.value} months={len(months)}")
        return months


class StatsService(_KindService):
    def _oldest_date_time(self) -> Optional[datetime]:
        stmt = (
            select(self.model.date_time)
            .where(*live_filter(self.model))
            .order_by(self.model.date_time.asc())
            .limit(1)
        )
        return self.session.scalar(stmt)

    def _newest_date_time(self) -> Optional[datetime]:
        stmt = (
            select(self.model.date_time)
            .where(*live_filter(self.model))
            .order_by(self.model.date_time.desc())
            .limit(1)
        )
        return self.session.scalar(stmt)

    def period_stats(
        self,
        period: StatsPeriod,
        *,
        now: Optional[datetime] = None,
        clamp_rolling_end_to_now: Optional[bool] = None,
    ) -> PeriodStats:
        """Totals, extrema, per-day average and group breakdown for a period.

        Open bounds (the all-time period) are resolved against the oldest and
        newest live entries. When ``clamp_rolling_end_to_now`` is on, the day
        count of an in-progress week/month/year stops at ``now``; it defaults
        per entry kind, see ``CLAMP_ROLLING_END_DEFAULTS``.
        """
        now = self._now(now)
        if clamp_rolling_end_to_now is None:
            clamp_rolling_end_to_now = CLAMP_ROLLING_END_DEFAULTS[self.kind]
        logger.debug(
            f"period_stats: kind={self.kind.value} period={period.type.value}/{period.offset}"
        )

        window = resolve_stats_period(
            period.type,
            period.offset,
            now=now,
            week_start=self.settings.week_start,
        )
        start = window.start if window.start is not None else self._oldest_date_time()
        end = window.end if window.end is not None else self._newest_date_time()

        days = 0
        if start is not None and end is not None:
            effective_end = end
            if (
                clamp_rolling_end_to_now
                and period.type in ROLLING_PERIOD_TYPES
                and period.offset == 0
                and end > now
            ):
                effective_end = now
            days = days_in_window(start, effective_end)

        conditions = live_filter(self.model, start=start, end=end)
        row = self.session.execute(
            select(
                func.sum(self.model.amount_cents).label("total_cents"),
                func.count(self.model.id).label("entry_count"),
                func.max(self.model.amount_cents).label("max_cents"),
                func.min(self.model.amount_cents).label("min_cents"),
            ).where(*conditions)
        ).one()
        total_cents = int(row.total_cents or 0)
        count = int(row.entry_count or 0)

        group_total = func.sum(self.model.amount_cents).label("total_cents")
        group_rows = self.session.execute(
            select(
                self.group_col.label("key"),
                group_total,
                func.count(self.model.id).label("entry_count"),
            )
            .where(*conditions)
            .group_by(self.group_col)
            .order_by(group_total.desc(), self.group_col.asc())
        ).all()
        groups = [
            GroupTotal(
                key=r.key,
                total=cents_to_amount(int(r.total_cents)),
                total_cents=int(r.total_cents),
                count=int(r.entry_count),
            )
            for r in group_rows
        ]

        total = cents_to_amount(total_cents)
        avg_per_day = round(total / days, 2) if days > 0 else 0
        result = PeriodStats(
            period=period,
            total=total,
            total_cents=total_cents,
            count=count,
            avg_per_day=avg_per_day,
            max=cents_to_amount(row.max_cents or 0),
            min=cents_to_amount(row.min_cents or 0),
            days=days,
            groups=groups,
            top_key=groups[0].key if groups else None,
        )
        logger.debug(
            f"period_stats: kind={self.kind.value} count={count} total={result.total} "
            f"days={days} top_key={result.top_key}"
        )
        return result


def financial_summary(
    expense_stats: PeriodStats, income_stats: PeriodStats
) -> FinancialSummary:
    if expense_stats.period != income_stats.period:
        raise ValueError("Expense and income stats must cover the same period")
    net_income = cents_to_amount(income_stats.total_cents - expense_stats.total_cents)
    savings_rate = 0.0
    if income_stats.total > 0:
        savings_rate = round(net_income / income_stats.total * 100, 2)
    return FinancialSummary(
        period=income_stats.period,
        net_income=net_income,
        savings_rate=savings_rate,
    )


class CategoryNotFound(ValueError):
    pass


# (name, label, icon, color) of the built-in taxonomy per entry kind
DEFAULT_CATEGORIES: dict[EntryKind, list[tuple[str, str, str, str]]] = {
    EntryKind.expense: [
        ("food", "Food", "utensils", "#F97316"),
        ("transport", "Transport", "car", "#3B82F6"),
        ("shopping", "Shopping", "shopping-bag", "#EC4899"),
        ("bills", "Bills", "receipt", "#EF4444"),
        ("entertainment", "Entertainment", "film", "#8B5CF6"),
        ("health", "Health", "heart-pulse", "#10B981"),
        ("education", "Education", "book", "#0EA5E9"),
        ("other", "Other", "ellipsis", "#6B7280"),
    ],
    EntryKind.income: [
        ("salary", "Salary", "briefcase", "#22C55E"),
        ("freelance", "Freelance", "laptop", "#14B8A6"),
        ("business", "Business", "store", "#F59E0B"),
        ("investments", "Investments", "trending-up", "#6366F1"),
        ("gift", "Gift", "gift", "#F43F5E"),
        ("other", "Other", "ellipsis", "#6B7280"),
    ],
}


class CategoryService:
    """Expense categories and income sources offered to pickers."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def list_all(
        self, kind: Optional[EntryKind] = None, include_disabled: bool = False
    ) -> list[Category]:
        stmt = select(Category).order_by(Category.type, Category.label)
        if kind is not None:
            stmt = stmt.where(Category.type == EntryKind(kind))
        if not include_disabled:
            stmt = stmt.where(Category.enabled.is_(True))
        return self.session.scalars(stmt).all()

    def get(self, kind: EntryKind, name: str) -> Category:
        category = self.session.get(Category, (name, EntryKind(kind)))
        if not category:
            raise CategoryNotFound(f"Category {name} not found")
        return category

    def create(self, data: CategoryIn) -> Category:
        name = data.name.strip().lower()
        existing = self.session.get(Category, (name, data.type))
        if existing:
            raise ValueError("Category with this name already exists")
        category = Category(**data.model_dump(exclude={"name"}), name=name)
        self.session.add(category)
        try:
            self.session.commit()
        except SQLAlchemyError:
            logger.exception(
                f"category_create: failed type={data.type.value} name={name}"
            )
            self.session.rollback()
            raise
        self.session.refresh(category)
        logger.info(f"category_created: type={data.type.value} name={name}")
        return category

    def set_enabled(self, kind: EntryKind, name: str, enabled: bool) -> Category:
        category = self.get(kind, name)
        category.enabled = enabled
        try:
            self.session.commit()
        except SQLAlchemyError:
            logger.exception(
                f"category_toggle: failed type={category.type.value} name={name}"
            )
            self.session.rollback()
            raise
        logger.info(
            f"category_toggled: type={category.type.value} name={name} enabled={enabled}"
        )
        return category


def seed_default_categories(session: Session) -> int:
    """Add any missing built-in categories; user edits to existing ones are kept.

    Does not commit, so it composes with ``session_scope``.
    """
    added = 0
    for kind, rows in DEFAULT_CATEGORIES.items():
        for name, label, icon, color in rows:
            if session.get(Category, (name, kind)) is not None:
                continue
            session.add(
                Category(
                    name=name,
                    type=kind,
                    label=label,
                    icon=icon,
                    color=color,
                    enabled=True,
                    is_custom=False,
                )
            )
            added += 1
    logger.info(f"categories_seeded: added={added}")
    return added
