"""Court and court group schemas."""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class CourtGroupCreate(BaseModel):
    """Schema for creating a court group."""

    name: str = Field(min_length=1)


class CourtGroupUpdate(BaseModel):
    """Schema for renaming a court group."""

    name: Optional[str] = Field(default=None, min_length=1)


class CourtGroupInDB(BaseModel):
    """Schema for court group from database."""

    id: int
    name: str
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class CourtCreate(BaseModel):
    """Schema for creating a court."""

    name: str = Field(min_length=1)
    group_id: Optional[int] = None


class CourtUpdate(BaseModel):
    """Schema for updating a court."""

    name: Optional[str] = Field(default=None, min_length=1)
    group_id: Optional[int] = None


class CourtInDB(BaseModel):
    """Schema for court from database."""

    id: int
    name: str
    group_id: Optional[int] = None
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
