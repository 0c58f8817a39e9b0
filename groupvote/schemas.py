from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field as PydField


# -----------------------------
# Inputs (do NOT use DB models as input)
# -----------------------------

class GroupCreate(BaseModel):
    name: str = PydField(..., min_length=1, max_length=120)


class GroupPatch(BaseModel):
    """
    Partial update. Only `name` is mutable; unknown fields are rejected.
    """
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = PydField(default=None, min_length=1, max_length=120)


class JoinGroupRequest(BaseModel):
    code: str = PydField(..., min_length=1, max_length=32)


class LeaveGroupRequest(BaseModel):
    group_id: int = PydField(..., ge=1)


class AdminFlagUpdate(BaseModel):
    is_admin: bool


class PollCreate(BaseModel):
    question: str = PydField(..., min_length=1)
    group_id: int = PydField(..., ge=1)
    expires_at: datetime
    activity_ids: List[int] = PydField(..., min_length=1)


class PollPatch(BaseModel):
    """
    Partial update of a poll. Options are fixed at creation and cannot be patched.
    """
    model_config = ConfigDict(extra="forbid")

    question: Optional[str] = PydField(default=None, min_length=1)
    expires_at: Optional[datetime] = None


class VoteRequest(BaseModel):
    poll_option_id: int = PydField(..., ge=1)


# -----------------------------
# Read models
# -----------------------------

class UserSummary(BaseModel):
    id: int
    first_name: str
    last_name: str


class GroupSummary(BaseModel):
    id: int
    name: str


class MemberRead(BaseModel):
    user_id: int
    group_id: int
    is_admin: bool
    joined_at: datetime
    user: Optional[UserSummary] = None


class GroupRead(BaseModel):
    id: int
    name: str
    invite_code: str
    created_by: Optional[int] = None
    created_at: datetime


class GroupDetail(GroupRead):
    members: List[MemberRead] = []
    poll_ids: List[int] = []


class ActivityRead(BaseModel):
    id: int
    name: str
    description: str
    latitude: float
    longitude: float
    address: str
    category: str
    rating: int
    created_at: datetime


class VoteRead(BaseModel):
    id: int
    poll_id: int
    poll_option_id: int
    user_id: int
    created_at: datetime


class PollOptionRead(BaseModel):
    id: int
    text: str
    activity_id: int
    poll_id: int
    activity: Optional[ActivityRead] = None
    votes: List[VoteRead] = []
    vote_count: int = 0


class PollRead(BaseModel):
    id: int
    question: str
    group_id: int
    created_by: int
    expires_at: datetime
    created_at: datetime
    is_expired: bool
    total_votes: int = 0
    options: List[PollOptionRead] = []
    creator: Optional[UserSummary] = None
    group: Optional[GroupSummary] = None


class VoteResult(BaseModel):
    message: str
    vote: VoteRead


class Message(BaseModel):
    message: str
