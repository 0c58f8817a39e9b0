from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlmodel import SQLModel, Field

from .user import utcnow


class Activity(SQLModel, table=True):
    """
    Catalog entry a poll option can point at. Read-only from the poll engine.
    """

    __tablename__ = "activities"

    id: Optional[int] = Field(default=None, primary_key=True)

    name: str = Field(index=True)
    description: str = Field(default="")

    latitude: float
    longitude: float
    address: str = Field(default="")

    category: str = Field(default="other", index=True)

    is_active: bool = Field(default=True)
    rating: int = Field(default=0)

    created_at: datetime = Field(default_factory=utcnow, index=True)
