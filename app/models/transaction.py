from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class ExpenseCreate(BaseModel):
    amount: Decimal
    category: str
    description: Optional[str] = ""
    date: Optional[datetime] = None

    @field_validator("date")
    @classmethod
    def date_to_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value) if value is not None else None


class IncomeCreate(ExpenseCreate):
    title: Optional[str] = None
    icon: Optional[str] = ""


class ExpenseUpdate(BaseModel):
    amount: Optional[Decimal] = None
    category: Optional[str] = None
    description: Optional[str] = None
    date: Optional[datetime] = None

    @field_validator("date")
    @classmethod
    def date_to_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value) if value is not None else None


class IncomeUpdate(ExpenseUpdate):
    title: Optional[str] = None
    icon: Optional[str] = None


class ExpenseInDB(BaseModel):
    transaction_id: str = Field(default_factory=lambda: str(uuid4()))
    user_id: str
    amount: Decimal
    category: str
    description: Optional[str] = ""
    date: datetime = Field(default_factory=utcnow)
    created_at: datetime = Field(default_factory=utcnow)

    @field_validator("date", "created_at")
    @classmethod
    def dates_to_utc(cls, value: datetime) -> datetime:
        return as_utc(value)


class IncomeInDB(ExpenseInDB):
    title: Optional[str] = None
    icon: Optional[str] = ""
