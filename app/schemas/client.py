"""Client schemas."""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ClientBase(BaseModel):
    """Base client schema."""

    name: str = Field(min_length=1)
    client_code: str = Field(min_length=1)
    phone: Optional[str] = None


class ClientCreate(ClientBase):
    """Schema for creating a client."""

    pass


class ClientUpdate(BaseModel):
    """Schema for updating a client."""

    name: Optional[str] = Field(default=None, min_length=1)
    client_code: Optional[str] = Field(default=None, min_length=1)
    phone: Optional[str] = None


class ClientInDB(ClientBase):
    """Schema for client from database."""

    id: int
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
