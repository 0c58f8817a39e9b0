from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from ..config import VotePolicy, settings
from ..errors import BadRequestError, ConflictError, InternalError, NotFoundError
from ..models.activity import Activity
from ..models.group import Group
from ..models.poll import Poll, PollOption, PollVote
from ..models.user import User, utcnow
from ..schemas import (
    ActivityRead,
    GroupSummary,
    PollCreate,
    PollOptionRead,
    PollPatch,
    PollRead,
    UserSummary,
    VoteRead,
)
from .activities import find_many_by_ids
from .groups import require_member

logger = logging.getLogger(__name__)


# -------------------------
# Expiration (pure)
# -------------------------

def as_utc(dt: datetime) -> datetime:
    """
    SQLite returns naive datetimes; everything stored here is UTC, so a
    naive value is read as UTC.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def is_expired(poll: Poll, now: datetime) -> bool:
    """
    A poll is expired once now is strictly past expires_at.
    """
    return as_utc(poll.expires_at) < as_utc(now)


# -------------------------
# Read assembly
# -------------------------

def get_poll(session: Session, poll_id: int) -> Poll:
    poll = session.get(Poll, poll_id)
    if not poll:
        raise NotFoundError("Poll not found")
    return poll


def to_user_summary(user: Optional[User]) -> Optional[UserSummary]:
    if not user:
        return None
    return UserSummary(id=user.id, first_name=user.first_name, last_name=user.last_name)


def to_activity_read(activity: Optional[Activity]) -> Optional[ActivityRead]:
    if not activity:
        return None
    return ActivityRead(
        id=activity.id,
        name=activity.name,
        description=activity.description,
        latitude=activity.latitude,
        longitude=activity.longitude,
        address=activity.address,
        category=activity.category,
        rating=activity.rating,
        created_at=activity.created_at,
    )


def to_vote_read(vote: PollVote) -> VoteRead:
    return VoteRead(
        id=vote.id,
        poll_id=vote.poll_id,
        poll_option_id=vote.poll_option_id,
        user_id=vote.user_id,
        created_at=vote.created_at,
    )


def assemble_poll(session: Session, poll: Poll, now: Optional[datetime] = None) -> PollRead:
    """
    Poll + options (each with its activity and votes) + creator and group display fields.
    """
    now = now or utcnow()

    options = session.exec(select(PollOption).where(PollOption.poll_id == poll.id).order_by(PollOption.id)).all()

    activity_ids = [o.activity_id for o in options]
    activities: Dict[int, Activity] = {}
    if activity_ids:
        rows = session.exec(select(Activity).where(Activity.id.in_(activity_ids))).all()
        activities = {a.id: a for a in rows}

    votes_by_option: Dict[int, List[VoteRead]] = {}
    votes = session.exec(select(PollVote).where(PollVote.poll_id == poll.id).order_by(PollVote.id)).all()
    for v in votes:
        votes_by_option.setdefault(v.poll_option_id, []).append(to_vote_read(v))

    option_reads = []
    for o in options:
        option_votes = votes_by_option.get(o.id, [])
        option_reads.append(
            PollOptionRead(
                id=o.id,
                text=o.text,
                activity_id=o.activity_id,
                poll_id=o.poll_id,
                activity=to_activity_read(activities.get(o.activity_id)),
                votes=option_votes,
                vote_count=len(option_votes),
            )
        )

    group = session.get(Group, poll.group_id)

    return PollRead(
        id=poll.id,
        question=poll.question,
        group_id=poll.group_id,
        created_by=poll.created_by,
        expires_at=as_utc(poll.expires_at),
        created_at=as_utc(poll.created_at),
        is_expired=is_expired(poll, now),
        total_votes=len(votes),
        options=option_reads,
        creator=to_user_summary(session.get(User, poll.created_by)),
        group=GroupSummary(id=group.id, name=group.name) if group else None,
    )


def find_poll(session: Session, poll_id: int, *, now: Optional[datetime] = None) -> PollRead:
    return assemble_poll(session, get_poll(session, poll_id), now)


def find_most_recent_poll(
    session: Session,
    group_id: int,
    *,
    now: Optional[datetime] = None,
) -> Optional[PollRead]:
    """
    "Most recent" means the latest expires_at in the group, not the latest created.
    """
    poll = session.exec(
        select(Poll).where(Poll.group_id == group_id).order_by(Poll.expires_at.desc(), Poll.id.desc())
    ).first()
    if not poll:
        return None
    return assemble_poll(session, poll, now)


# -------------------------
# Mutations
# -------------------------

def _insert_options(session: Session, poll: Poll, activities: Sequence[Activity]) -> List[PollOption]:
    options = [PollOption(text=a.name, activity_id=a.id, poll_id=poll.id) for a in activities]
    session.add_all(options)
    session.flush()
    return options


def create_poll(
    session: Session,
    payload: PollCreate,
    creator_id: int,
    *,
    now: Optional[datetime] = None,
) -> PollRead:
    """
    Create a poll and one option per resolved activity in a single transaction.

    Unknown activity ids are dropped silently. Readers never see a poll
    without its options: either everything commits or nothing does.
    """
    now = now or utcnow()

    require_member(session, payload.group_id, creator_id)

    if as_utc(payload.expires_at) <= as_utc(now):
        raise BadRequestError("expires_at must be in the future")

    try:
        activities = find_many_by_ids(session, payload.activity_ids)

        poll = Poll(
            question=payload.question.strip(),
            group_id=payload.group_id,
            created_by=creator_id,
            expires_at=as_utc(payload.expires_at),
        )
        session.add(poll)
        session.flush()

        _insert_options(session, poll, activities)
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        logger.exception("Failed to create poll in group %s", payload.group_id)
        raise InternalError("Failed to create poll due to a server error.")

    session.refresh(poll)
    logger.info(
        "Poll %s created in group %s by user %s with %s options",
        poll.id,
        poll.group_id,
        creator_id,
        len(activities),
    )
    return assemble_poll(session, poll, now)


def vote_on_poll(
    session: Session,
    poll_id: int,
    poll_option_id: int,
    user_id: int,
    *,
    now: Optional[datetime] = None,
    policy: Optional[VotePolicy] = None,
) -> PollVote:
    """
    Record a vote. Checks run in this order and each one short-circuits:

    1. poll and user exist (NotFoundError)
    2. poll not expired (BadRequestError)
    3. option belongs to the poll (BadRequestError)
    4. user is a member of the poll's group (ForbiddenError)
    5. vote policy for repeat voters (ConflictError under SINGLE)
    """
    now = now or utcnow()
    policy = VotePolicy(policy or settings.vote_policy)

    poll = session.get(Poll, poll_id)
    user = session.get(User, user_id)
    if not poll or not user:
        raise NotFoundError("The poll, option or user was not found")

    if is_expired(poll, now):
        raise BadRequestError("This poll has already expired.")

    option = session.exec(
        select(PollOption).where(PollOption.id == poll_option_id, PollOption.poll_id == poll_id)
    ).first()
    if not option:
        raise BadRequestError(f'Poll option with ID "{poll_option_id}" does not belong to poll "{poll_id}".')

    require_member(
        session,
        poll.group_id,
        user_id,
        detail="You must be a member of this group to vote on this poll.",
        # serializes concurrent votes by the same user before the repeat-vote check
        lock=policy != VotePolicy.MULTIPLE,
    )

    existing = None
    if policy != VotePolicy.MULTIPLE:
        existing = session.exec(
            select(PollVote).where(PollVote.poll_id == poll_id, PollVote.user_id == user_id)
        ).first()

    if existing and policy == VotePolicy.SINGLE:
        raise ConflictError("You have already voted on this poll.")

    if existing:
        existing.poll_option_id = option.id
        existing.created_at = now
        vote = existing
    else:
        vote = PollVote(poll_id=poll_id, poll_option_id=option.id, user_id=user_id, created_at=now)

    session.add(vote)
    try:
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        logger.exception("Failed to record vote on poll %s", poll_id)
        raise InternalError("Failed to record vote")

    session.refresh(vote)
    logger.info("User %s voted option %s on poll %s", user_id, option.id, poll_id)
    return vote


def update_poll(session: Session, poll_id: int, patch: PollPatch, *, now: Optional[datetime] = None) -> PollRead:
    poll = get_poll(session, poll_id)

    changes = patch.model_dump(exclude_unset=True)
    if changes.get("question") is not None:
        poll.question = changes["question"].strip()
    if changes.get("expires_at") is not None:
        poll.expires_at = as_utc(changes["expires_at"])

    session.add(poll)
    try:
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        logger.exception("Failed to update poll %s", poll_id)
        raise InternalError("Error updating poll")

    session.refresh(poll)
    return assemble_poll(session, poll, now)


def delete_poll(session: Session, poll_id: int) -> None:
    """
    Same contract as update_poll: NotFoundError when missing, InternalError on store failure.
    """
    get_poll(session, poll_id)

    try:
        session.exec(delete(PollVote).where(PollVote.poll_id == poll_id))
        session.exec(delete(PollOption).where(PollOption.poll_id == poll_id))
        session.exec(delete(Poll).where(Poll.id == poll_id))
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        logger.exception("Failed to delete poll %s", poll_id)
        raise InternalError("Error deleting poll")

    logger.info("Poll %s deleted", poll_id)
