from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlmodel import SQLModel, Field

from .user import utcnow


class Poll(SQLModel, table=True):
    """
    Time-bounded question scoped to a group.

    There is no status column: a poll is open while now <= expires_at and
    expired afterwards (see services.polls.is_expired).
    """

    __tablename__ = "polls"

    id: Optional[int] = Field(default=None, primary_key=True)

    question: str

    group_id: int = Field(foreign_key="groups.id", index=True)
    created_by: int = Field(foreign_key="users.id", index=True)

    expires_at: datetime = Field(index=True)
    created_at: datetime = Field(default_factory=utcnow, index=True)


class PollOption(SQLModel, table=True):
    __tablename__ = "poll_options"

    id: Optional[int] = Field(default=None, primary_key=True)

    # Snapshot of the activity name at poll creation; not kept in sync
    text: str

    activity_id: int = Field(foreign_key="activities.id", index=True)
    poll_id: int = Field(foreign_key="polls.id", index=True)


class PollVote(SQLModel, table=True):
    """
    One user's choice on a poll. One-vote-per-(poll, user) is a configurable
    policy (settings.vote_policy), so it is not a table constraint.
    """

    __tablename__ = "poll_votes"

    id: Optional[int] = Field(default=None, primary_key=True)

    poll_id: int = Field(foreign_key="polls.id", index=True)
    poll_option_id: int = Field(foreign_key="poll_options.id", index=True)
    user_id: int = Field(foreign_key="users.id", index=True)

    created_at: datetime = Field(default_factory=utcnow, index=True)
