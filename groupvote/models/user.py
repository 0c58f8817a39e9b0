from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlmodel import SQLModel, Field


def utcnow() -> datetime:
    # timezone-aware UTC; SQLite hands it back naive, see services.polls.as_utc
    return datetime.now(timezone.utc)


class User(SQLModel, table=True):
    """
    A registered person, as seen by the group/poll core.

    Registration and credentials live with the identity provider; this row
    only carries what memberships, votes and poll read-outs need.
    """

    __tablename__ = "users"

    id: Optional[int] = Field(default=None, primary_key=True)

    first_name: str
    last_name: str = Field(default="")
    email: Optional[str] = Field(default=None, index=True, unique=True)

    # "user" | "admin" (platform role, unrelated to group admin flags)
    role: str = Field(default="user", index=True)

    created_at: datetime = Field(default_factory=utcnow)
