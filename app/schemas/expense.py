"""Expense schemas."""
import datetime as dt
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ExpenseCategoryCreate(BaseModel):
    """Schema for creating an expense category."""

    name: str = Field(min_length=1)


class ExpenseCategoryInDB(ExpenseCategoryCreate):
    """Schema for expense category from database."""

    id: int
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ExpenseBase(BaseModel):
    """Base expense schema."""

    title: str = Field(min_length=2)
    amount: Decimal = Field(gt=0, decimal_places=2)
    date: date
    category_id: Optional[int] = None
    notes: Optional[str] = None


class ExpenseCreate(ExpenseBase):
    """Schema for creating an expense."""

    pass


class ExpenseUpdate(BaseModel):
    """Schema for updating an expense."""

    title: Optional[str] = Field(default=None, min_length=2)
    amount: Optional[Decimal] = Field(default=None, gt=0, decimal_places=2)
    date: Optional[dt.date] = None
    category_id: Optional[int] = None
    notes: Optional[str] = None


class ExpenseInDB(ExpenseBase):
    """Schema for expense from database."""

    id: int
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
