from datetime import datetime
from typing import Optional
from zoneinfo import ZoneInfo

from pydantic import BaseModel, ConfigDict, Field, field_validator

from config import get_settings
from models import EntryKind, to_cents
from periods import PeriodType


class StatsPeriod(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: PeriodType
    offset: int = Field(default=0, ge=0)


class EntryBase(BaseModel):
    amount: float = Field(..., gt=0)
    date_time: datetime
    description: Optional[str] = Field(default=None, max_length=500)
    receipt: Optional[str] = None
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)

    @field_validator("amount")
    @classmethod
    def _whole_cents(cls, value: float) -> float:
        if to_cents(value) != round(value * 100, 6):
            raise ValueError("Amount can have at most two decimal places")
        return value

    @field_validator("currency")
    @classmethod
    def _upper_currency(cls, value: Optional[str]) -> Optional[str]:
        return value.upper() if value else value

    @field_validator("date_time")
    @classmethod
    def _local_date_time(cls, value: datetime) -> datetime:
        # Stored as naive wall-clock time in the configured zone
        if value.tzinfo is not None:
            value = value.astimezone(ZoneInfo(get_settings().timezone))
        return value.replace(tzinfo=None)


class ExpenseIn(EntryBase):
    category: str = Field(..., min_length=1, max_length=100)
    payment_method: Optional[str] = Field(default=None, max_length=50)


class IncomeIn(EntryBase):
    source: str = Field(..., min_length=1, max_length=100)


INPUT_BY_KIND: dict[EntryKind, type[EntryBase]] = {
    EntryKind.expense: ExpenseIn,
    EntryKind.income: IncomeIn,
}


class EntryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    amount: float
    date_time: datetime
    description: Optional[str] = None
    receipt: Optional[str] = None
    currency: str
    is_trashed: bool = False
    category: Optional[str] = None
    payment_method: Optional[str] = None
    source: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class CategoryIn(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    name: str = Field(..., min_length=1, max_length=100)
    type: EntryKind
    label: str = Field(..., min_length=1, max_length=100)
    icon: str = Field(..., min_length=1, max_length=50)
    color: str = Field(..., pattern=r"^#[0-9A-Fa-f]{6}$")
    enabled: bool = True
    is_custom: bool = True


class AvailableMonth(BaseModel):
    offset_month: int
    month: str
    count: int


class MonthPage(BaseModel):
    entries: list[EntryOut]
    has_more: bool
    offset_month: int
    month: str


class GroupTotal(BaseModel):
    key: str
    total: float
    total_cents: int
    count: int


class PeriodStats(BaseModel):
    period: StatsPeriod
    total: float = 0
    total_cents: int = 0
    count: int = 0
    avg_per_day: float = 0
    max: float = 0
    min: float = 0
    days: int = 0
    groups: list[GroupTotal] = Field(default_factory=list)
    top_key: Optional[str] = None


class FinancialSummary(BaseModel):
    period: StatsPeriod
    net_income: float
    savings_rate: float


class BackupData(BaseModel):
    created_at: datetime
    expenses: list[ExpenseIn] = Field(default_factory=list)
    incomes: list[IncomeIn] = Field(default_factory=list)
    categories: list[CategoryIn] = Field(default_factory=list)
