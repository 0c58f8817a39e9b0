from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlmodel import SQLModel, Field

from .user import utcnow


class Group(SQLModel, table=True):
    __tablename__ = "groups"

    id: Optional[int] = Field(default=None, primary_key=True)

    name: str

    # Shared join code; uniqueness is enforced here and re-rolled on collision
    invite_code: str = Field(index=True, unique=True)

    created_by: Optional[int] = Field(default=None, foreign_key="users.id", index=True)

    created_at: datetime = Field(default_factory=utcnow, index=True)


class GroupMember(SQLModel, table=True):
    """
    Membership of one user in one group. The composite primary key makes a
    second row for the same (user_id, group_id) impossible.
    """

    __tablename__ = "group_members"

    user_id: int = Field(foreign_key="users.id", primary_key=True)
    group_id: int = Field(foreign_key="groups.id", primary_key=True, index=True)

    is_admin: bool = Field(default=False, index=True)

    joined_at: datetime = Field(default_factory=utcnow, index=True)
