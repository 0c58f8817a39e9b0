from __future__ import annotations

import logging
import random
from contextlib import contextmanager
from typing import Iterator, List, Optional

from sqlalchemy import delete, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select

from ..config import settings
from ..errors import ConflictError, ForbiddenError, InternalError, NotFoundError, is_unique_violation
from ..models.group import Group, GroupMember
from ..models.poll import Poll, PollOption, PollVote
from ..models.user import User
from ..schemas import GroupCreate, GroupDetail, GroupPatch, MemberRead, UserSummary
from .invite_codes import allocate_invite_code

logger = logging.getLogger(__name__)


# -------------------------
# Lookups / capability checks
# -------------------------

def get_group(session: Session, group_id: int) -> Group:
    group = session.get(Group, group_id)
    if not group:
        raise NotFoundError("Group not found")
    return group


def get_membership(session: Session, user_id: int, group_id: int, *, lock: bool = False) -> Optional[GroupMember]:
    """
    lock=True re-reads the row with SELECT ... FOR UPDATE (a no-op on SQLite).
    """
    return session.get(GroupMember, (user_id, group_id), with_for_update=True if lock else None)


def require_member(
    session: Session,
    group_id: int,
    user_id: int,
    detail: str = "You are not a member of this group.",
    *,
    lock: bool = False,
) -> GroupMember:
    member = get_membership(session, user_id, group_id, lock=lock)
    if not member:
        raise ForbiddenError(detail)
    return member


def require_admin(session: Session, group_id: int, user_id: int) -> GroupMember:
    """
    Single capability check for every group-mutating operation.

    - NotFoundError if the group does not exist
    - ForbiddenError if the caller is not an admin member of it
    """
    get_group(session, group_id)
    member = get_membership(session, user_id, group_id)
    if not member or not member.is_admin:
        raise ForbiddenError("You must be a group admin to perform this action")
    return member


def _count_members(session: Session, group_id: int, *, admins_only: bool = False) -> int:
    q = select(func.count()).select_from(GroupMember).where(GroupMember.group_id == group_id)
    if admins_only:
        q = q.where(GroupMember.is_admin == True)  # noqa: E712
    return int(session.exec(q).one() or 0)


def _ensure_not_last_admin(session: Session, member: GroupMember, allow_last_admin: Optional[bool]) -> None:
    """
    Block the last admin from leaving while other members remain.
    A sole remaining member may always leave.
    """
    if allow_last_admin is None:
        allow_last_admin = settings.allow_last_admin_leave
    if allow_last_admin or not member.is_admin:
        return

    admins = _count_members(session, member.group_id, admins_only=True)
    members = _count_members(session, member.group_id)
    if admins <= 1 and members > 1:
        raise ConflictError("The last admin cannot step down; promote another member first")


def _ensure_not_demoting_last_admin(session: Session, member: GroupMember) -> None:
    # the member stays, so the group would keep members and lose every admin
    if _count_members(session, member.group_id, admins_only=True) <= 1:
        raise ConflictError("The last admin cannot step down; promote another member first")


@contextmanager
def _store_errors(session: Session, failure_detail: str) -> Iterator[None]:
    """
    Wrap store failures (outside of handled integrity cases) as InternalError.
    """
    try:
        yield
    except SQLAlchemyError:
        session.rollback()
        logger.exception(failure_detail)
        raise InternalError(failure_detail)


def _commit(session: Session, failure_detail: str) -> None:
    try:
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        logger.exception(failure_detail)
        raise InternalError(failure_detail)


# -------------------------
# Operations
# -------------------------

def create_group(
    session: Session,
    payload: GroupCreate,
    creator_id: int,
    *,
    rng: Optional[random.Random] = None,
) -> Group:
    """
    Create a group with a fresh invite code; the creator becomes its first admin.

    Group row and admin membership are committed together.
    """
    with _store_errors(session, "Failed to create group"):
        code = allocate_invite_code(session, rng=rng)

    group = Group(name=payload.name.strip(), invite_code=code, created_by=creator_id)
    try:
        session.add(group)
        session.flush()
        session.add(GroupMember(user_id=creator_id, group_id=group.id, is_admin=True))
        session.commit()
    except IntegrityError as exc:
        session.rollback()
        if is_unique_violation(exc, "invite_code"):
            raise ConflictError("Group code already exists")
        logger.exception("Failed to create group")
        raise InternalError("Failed to create group")
    except SQLAlchemyError:
        session.rollback()
        logger.exception("Failed to create group")
        raise InternalError("Failed to create group")

    session.refresh(group)
    logger.info("Group %s created by user %s (code %s)", group.id, creator_id, group.invite_code)
    return group


def join_group(session: Session, user_id: int, code: str) -> GroupMember:
    normalized = (code or "").strip().upper()
    with _store_errors(session, "Failed to join group"):
        group = session.exec(select(Group).where(Group.invite_code == normalized)).first()
        if not group:
            raise NotFoundError("Group not found")

        if get_membership(session, user_id, group.id):
            raise ConflictError("User already a member")

    member = GroupMember(user_id=user_id, group_id=group.id, is_admin=False)
    try:
        session.add(member)
        session.commit()
    except IntegrityError as exc:
        session.rollback()
        # lost a race against a concurrent join of the same user
        if is_unique_violation(exc, "group_members"):
            raise ConflictError("User already a member")
        logger.exception("Failed to join group %s", group.id)
        raise InternalError("Failed to join group")
    except SQLAlchemyError:
        session.rollback()
        logger.exception("Failed to join group %s", group.id)
        raise InternalError("Failed to join group")

    session.refresh(member)
    logger.info("User %s joined group %s", user_id, group.id)
    return member


def leave_group(
    session: Session,
    user_id: int,
    group_id: int,
    *,
    allow_last_admin: Optional[bool] = None,
) -> None:
    with _store_errors(session, "Failed to leave group"):
        member = get_membership(session, user_id, group_id)
        if not member:
            raise NotFoundError("Member not found")

        _ensure_not_last_admin(session, member, allow_last_admin)

    session.delete(member)
    _commit(session, "Failed to leave group")
    logger.info("User %s left group %s", user_id, group_id)


def set_admin(
    session: Session,
    group_id: int,
    user_id: int,
    is_admin: bool,
) -> GroupMember:
    """
    Promote or demote a member. Caller standing is checked with require_admin
    at the boundary.

    Demoting the group's only admin is always a ConflictError, whatever the
    member count and ALLOW_LAST_ADMIN_LEAVE.
    """
    get_group(session, group_id)
    member = get_membership(session, user_id, group_id)
    if not member:
        raise NotFoundError("Member not found")

    if member.is_admin == is_admin:
        return member

    if not is_admin:
        _ensure_not_demoting_last_admin(session, member)

    member.is_admin = is_admin
    session.add(member)
    _commit(session, "Failed to update member")
    session.refresh(member)
    logger.info("User %s admin=%s in group %s", user_id, is_admin, group_id)
    return member


def find_group(session: Session, group_id: int) -> GroupDetail:
    group = get_group(session, group_id)

    rows = session.exec(
        select(GroupMember, User)
        .join(User, User.id == GroupMember.user_id)
        .where(GroupMember.group_id == group_id)
        .order_by(GroupMember.joined_at)
    ).all()
    members: List[MemberRead] = [
        MemberRead(
            user_id=m.user_id,
            group_id=m.group_id,
            is_admin=m.is_admin,
            joined_at=m.joined_at,
            user=UserSummary(id=u.id, first_name=u.first_name, last_name=u.last_name),
        )
        for m, u in rows
    ]

    poll_ids = list(session.exec(select(Poll.id).where(Poll.group_id == group_id).order_by(Poll.created_at)).all())

    return GroupDetail(
        id=group.id,
        name=group.name,
        invite_code=group.invite_code,
        created_by=group.created_by,
        created_at=group.created_at,
        members=members,
        poll_ids=poll_ids,
    )


def update_group(session: Session, group_id: int, patch: GroupPatch) -> Group:
    group = get_group(session, group_id)

    changes = patch.model_dump(exclude_unset=True)
    if changes.get("name") is not None:
        group.name = changes["name"].strip()

    session.add(group)
    _commit(session, "Failed to update group")
    session.refresh(group)
    return group


def delete_group(session: Session, group_id: int) -> None:
    """
    Delete a group together with its memberships, polls, options and votes
    in one transaction.
    """
    get_group(session, group_id)

    poll_ids = select(Poll.id).where(Poll.group_id == group_id)
    try:
        session.exec(delete(PollVote).where(PollVote.poll_id.in_(poll_ids)))
        session.exec(delete(PollOption).where(PollOption.poll_id.in_(poll_ids)))
        session.exec(delete(Poll).where(Poll.group_id == group_id))
        session.exec(delete(GroupMember).where(GroupMember.group_id == group_id))
        session.exec(delete(Group).where(Group.id == group_id))
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        logger.exception("Failed to delete group %s", group_id)
        raise InternalError("Failed to delete group")

    logger.info("Group %s deleted", group_id)
