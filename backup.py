from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from config import Settings, get_settings
from models import Category, EntryKind, Expense, Income
from periods import local_now
from schemas import BackupData, CategoryIn, ExpenseIn, IncomeIn
from services import entry_values, live_filter


logger = logging.getLogger(__name__)

WIPED_TABLES = (
    ("expenses", Expense),
    ("incomes", Income),
    ("categories", Category),
)


class BackupService:
    """Bulk read, bulk replace and wipe of both ledgers and the taxonomy.

    Serializing a ``BackupData`` to a file, and checking such files, is up to
    the caller.
    """

    def __init__(self, session: Session, settings: Optional[Settings] = None) -> None:
        self.session = session
        self.settings = settings or get_settings()

    def _wipe(self) -> dict[str, int]:
        removed = {}
        for key, model in WIPED_TABLES:
            result = self.session.execute(
                delete(model).execution_options(synchronize_session=False)
            )
            removed[key] = result.rowcount
        # Rows loaded before the wipe no longer exist
        self.session.expunge_all()
        return removed

    def export(self, now: Optional[datetime] = None) -> BackupData:
        expenses = self.session.scalars(
            select(Expense)
            .where(*live_filter(Expense))
            .order_by(Expense.date_time.asc(), Expense.id.asc())
        ).all()
        incomes = self.session.scalars(
            select(Income)
            .where(*live_filter(Income))
            .order_by(Income.date_time.asc(), Income.id.asc())
        ).all()
        categories = self.session.scalars(
            select(Category).order_by(Category.type, Category.name)
        ).all()
        logger.info(
            f"backup_export: expenses={len(expenses)} incomes={len(incomes)} "
            f"categories={len(categories)}"
        )
        return BackupData(
            created_at=now or local_now(self.settings.timezone),
            expenses=[ExpenseIn.model_validate(e, from_attributes=True) for e in expenses],
            incomes=[IncomeIn.model_validate(i, from_attributes=True) for i in incomes],
            categories=[CategoryIn.model_validate(c) for c in categories],
        )

    def restore(self, data: BackupData) -> dict[str, int]:
        """Replace all ledger rows, trashed ones too, and the taxonomy with ``data``.

        Restored rows get fresh ids. Runs as one transaction.
        """
        currency = self.settings.default_currency
        try:
            self._wipe()
            self.session.add_all(
                Expense(**entry_values(EntryKind.expense, item, currency))
                for item in data.expenses
            )
            self.session.add_all(
                Income(**entry_values(EntryKind.income, item, currency))
                for item in data.incomes
            )
            self.session.add_all(
                Category(**item.model_dump()) for item in data.categories
            )
            self.session.commit()
        except SQLAlchemyError:
            logger.exception("backup_restore: failed")
            self.session.rollback()
            raise
        counts = {
            "expenses": len(data.expenses),
            "incomes": len(data.incomes),
            "categories": len(data.categories),
        }
        logger.info(
            f"backup_restore: expenses={counts['expenses']} "
            f"incomes={counts['incomes']} "
            f"categories={counts['categories']}"
        )
        return counts

    def reset(self) -> dict[str, int]:
        """Hard-delete every row of every table, trashed ledger rows included."""
        try:
            removed = self._wipe()
            self.session.commit()
        except SQLAlchemyError:
            logger.exception("database_reset: failed")
            self.session.rollback()
            raise
        logger.info(
            f"database_reset: expenses={removed['expenses']} "
            f"incomes={removed['incomes']} "
            f"categories={removed['categories']}"
        )
        return removed
