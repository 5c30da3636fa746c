"""Reservation schemas."""
import datetime as dt
from datetime import date, datetime, time
from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator, model_validator

CreatorRole = Literal["admin", "manager", "employee"]
Tender = Literal["cash", "card", "wallet"]


def whole_minutes(value: Optional[time]) -> Optional[time]:
    if value is not None and (value.second or value.microsecond):
        raise ValueError("times must be whole minutes")
    return value


class ReservationCreate(BaseModel):
    """Schema for booking a court."""

    court_id: int
    client_id: int
    date: date
    start_time: time
    end_time: time
    cash_amount: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=2)
    card_amount: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=2)
    wallet_amount: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=2)
    created_by_role: CreatorRole = "employee"
    created_by_name: Optional[str] = None
    allow_overlap: bool = False

    @field_validator("start_time", "end_time")
    @classmethod
    def check_whole_minutes(cls, value):
        return whole_minutes(value)

    @model_validator(mode="after")
    def check_interval(self):
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self


class ReservationUpdate(BaseModel):
    """Schema for editing a reservation. Only set fields are applied."""

    court_id: Optional[int] = None
    client_id: Optional[int] = None
    date: Optional[dt.date] = None
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    cash_amount: Optional[Decimal] = Field(default=None, ge=0, decimal_places=2)
    card_amount: Optional[Decimal] = Field(default=None, ge=0, decimal_places=2)
    wallet_amount: Optional[Decimal] = Field(default=None, ge=0, decimal_places=2)
    expected_version: Optional[int] = None
    allow_overlap: bool = False

    @field_validator("start_time", "end_time")
    @classmethod
    def check_whole_minutes(cls, value):
        return whole_minutes(value)


class ReservationInDB(BaseModel):
    """Schema for reservation from database."""

    id: int
    court_id: int
    client_id: int
    date: date
    start_time: time
    end_time: time
    cash_amount: Decimal
    card_amount: Decimal
    wallet_amount: Decimal
    created_by_role: str
    created_by_name: Optional[str] = None
    version: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @computed_field
    @property
    def total(self) -> Decimal:
        return self.cash_amount + self.card_amount + self.wallet_amount


class ReservationListItem(ReservationInDB):
    """Reservation with its status relative to today."""

    status: Literal["past", "today", "future"]


class ScheduleCell(BaseModel):
    """One court/slot cell of the schedule grid."""

    court_id: int
    court_name: str
    slot: time
    reservation: Optional[ReservationInDB] = None


class ScheduleGrid(BaseModel):
    """Schedule grid for one date."""

    date: date
    granularity_minutes: int
    cells: List[ScheduleCell]
