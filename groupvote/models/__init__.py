# groupvote/models/__init__.py
# Central import surface for SQLModel table registration.

from .user import User
from .activity import Activity
from .group import Group, GroupMember
from .poll import Poll, PollOption, PollVote

__all__ = [
    "User",
    "Activity",
    "Group",
    "GroupMember",
    "Poll",
    "PollOption",
    "PollVote",
]
