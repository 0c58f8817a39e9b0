from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError
from sqlalchemy.exc import OperationalError
from sqlmodel import select

from groupvote.config import VotePolicy
from groupvote.errors import BadRequestError, ConflictError, ForbiddenError, InternalError, NotFoundError
from groupvote.models.poll import Poll, PollOption, PollVote
from groupvote.schemas import GroupCreate, PollCreate, PollPatch
from groupvote.services import groups as group_service
from groupvote.services import polls as poll_service


@pytest.fixture
def alice(make_user):
    return make_user("Alice", "Admin")


@pytest.fixture
def bob(make_user):
    return make_user("Bob", "Member")


@pytest.fixture
def group(session, alice, bob):
    g = group_service.create_group(session, GroupCreate(name="Trip"), alice.id)
    group_service.join_group(session, bob.id, g.invite_code)
    return g


@pytest.fixture
def activities(make_activity):
    return [make_activity("Taco Stand"), make_activity("Art Museum", category="historical")]


@pytest.fixture
def poll(session, alice, group, activities, now):
    payload = PollCreate(
        question="What next?",
        group_id=group.id,
        expires_at=now + timedelta(hours=1),
        activity_ids=[a.id for a in activities],
    )
    return poll_service.create_poll(session, payload, alice.id, now=now)


# -------------------------
# is_expired
# -------------------------

def test_is_expired_boundary(now) -> None:
    p = Poll(question="q", group_id=1, created_by=1, expires_at=now)
    assert poll_service.is_expired(p, now - timedelta(seconds=1)) is False
    assert poll_service.is_expired(p, now) is False
    assert poll_service.is_expired(p, now + timedelta(seconds=1)) is True


def test_is_expired_reads_naive_timestamps_as_utc(now) -> None:
    naive = now.replace(tzinfo=None)
    p = Poll(question="q", group_id=1, created_by=1, expires_at=naive)
    assert poll_service.is_expired(p, now + timedelta(minutes=1)) is True
    assert poll_service.is_expired(p, now - timedelta(minutes=1)) is False


# -------------------------
# create
# -------------------------

def test_create_fans_out_one_option_per_activity(poll, activities, alice, group) -> None:
    assert poll.question == "What next?"
    assert poll.created_by == alice.id
    assert poll.group.name == "Trip"
    assert poll.creator.first_name == "Alice"
    assert poll.is_expired is False

    assert [o.text for o in poll.options] == ["Taco Stand", "Art Museum"]
    assert [o.activity_id for o in poll.options] == [a.id for a in activities]
    assert all(o.activity is not None for o in poll.options)
    assert all(o.vote_count == 0 for o in poll.options)


def test_create_drops_unknown_activity_ids(session, alice, group, activities, now) -> None:
    payload = PollCreate(
        question="Where?",
        group_id=group.id,
        expires_at=now + timedelta(hours=1),
        activity_ids=[activities[0].id, 9999],
    )
    created = poll_service.create_poll(session, payload, alice.id, now=now)
    assert [o.activity_id for o in created.options] == [activities[0].id]


def test_option_text_is_a_snapshot(session, poll, activities) -> None:
    activities[0].name = "Renamed Taco Stand"
    session.add(activities[0])
    session.commit()

    reread = poll_service.find_poll(session, poll.id)
    assert reread.options[0].text == "Taco Stand"
    assert reread.options[0].activity.name == "Renamed Taco Stand"


def test_create_requires_membership(session, make_user, group, activities, now) -> None:
    outsider = make_user("Olly")
    payload = PollCreate(
        question="Where?",
        group_id=group.id,
        expires_at=now + timedelta(hours=1),
        activity_ids=[activities[0].id],
    )
    with pytest.raises(ForbiddenError):
        poll_service.create_poll(session, payload, outsider.id, now=now)


def test_create_rejects_past_expiry(session, alice, group, activities, now) -> None:
    payload = PollCreate(
        question="Where?",
        group_id=group.id,
        expires_at=now - timedelta(minutes=5),
        activity_ids=[activities[0].id],
    )
    with pytest.raises(BadRequestError):
        poll_service.create_poll(session, payload, alice.id, now=now)


def test_create_payload_requires_activity_ids(group, now) -> None:
    with pytest.raises(ValidationError):
        PollCreate(question="Where?", group_id=group.id, expires_at=now, activity_ids=[])


def test_create_is_all_or_nothing(session, alice, group, activities, now, monkeypatch) -> None:
    def _boom(*args, **kwargs):
        raise OperationalError("INSERT INTO poll_options", {}, Exception("disk I/O error"))

    monkeypatch.setattr(poll_service, "_insert_options", _boom)

    payload = PollCreate(
        question="Where?",
        group_id=group.id,
        expires_at=now + timedelta(hours=1),
        activity_ids=[a.id for a in activities],
    )
    with pytest.raises(InternalError):
        poll_service.create_poll(session, payload, alice.id, now=now)

    assert session.exec(select(Poll)).all() == []
    assert session.exec(select(PollOption)).all() == []


# -------------------------
# vote
# -------------------------

def test_vote_is_recorded_and_tallied(session, poll, bob, now) -> None:
    vote = poll_service.vote_on_poll(session, poll.id, poll.options[0].id, bob.id, now=now)
    assert vote.id is not None
    assert vote.user_id == bob.id

    reread = poll_service.find_poll(session, poll.id, now=now)
    assert [o.vote_count for o in reread.options] == [1, 0]
    assert reread.options[0].votes[0].user_id == bob.id
    assert reread.total_votes == 1


def test_vote_strictly_before_expiry_is_accepted(session, poll, bob) -> None:
    just_before = poll.expires_at - timedelta(microseconds=1)
    poll_service.vote_on_poll(session, poll.id, poll.options[0].id, bob.id, now=just_before)


def test_vote_after_expiry_is_bad_request(session, poll, bob) -> None:
    later = poll.expires_at + timedelta(seconds=1)
    with pytest.raises(BadRequestError, match="expired"):
        poll_service.vote_on_poll(session, poll.id, poll.options[0].id, bob.id, now=later)


def test_vote_with_option_from_another_poll_is_bad_request(session, poll, alice, group, activities, bob, now) -> None:
    other = poll_service.create_poll(
        session,
        PollCreate(question="Other", group_id=group.id, expires_at=now + timedelta(hours=2), activity_ids=[activities[1].id]),
        alice.id,
        now=now,
    )
    with pytest.raises(BadRequestError) as exc:
        poll_service.vote_on_poll(session, poll.id, other.options[0].id, bob.id, now=now)

    assert str(other.options[0].id) in exc.value.detail
    assert str(poll.id) in exc.value.detail


def test_vote_by_non_member_is_forbidden(session, poll, make_user, now) -> None:
    outsider = make_user("Olly")
    with pytest.raises(ForbiddenError):
        poll_service.vote_on_poll(session, poll.id, poll.options[0].id, outsider.id, now=now)


def test_vote_after_leaving_is_forbidden(session, poll, group, bob, now) -> None:
    group_service.leave_group(session, bob.id, group.id)
    with pytest.raises(ForbiddenError):
        poll_service.vote_on_poll(session, poll.id, poll.options[0].id, bob.id, now=now)


def test_vote_on_missing_poll_or_user_is_not_found(session, poll, bob, now) -> None:
    with pytest.raises(NotFoundError):
        poll_service.vote_on_poll(session, 9999, poll.options[0].id, bob.id, now=now)
    with pytest.raises(NotFoundError):
        poll_service.vote_on_poll(session, poll.id, poll.options[0].id, 9999, now=now)


def test_expiry_is_checked_before_option_and_membership(session, poll, make_user) -> None:
    outsider = make_user("Olly")
    later = poll.expires_at + timedelta(hours=1)
    with pytest.raises(BadRequestError, match="expired"):
        poll_service.vote_on_poll(session, poll.id, 9999, outsider.id, now=later)


def test_single_policy_rejects_second_vote(session, poll, bob, now) -> None:
    poll_service.vote_on_poll(session, poll.id, poll.options[0].id, bob.id, now=now, policy=VotePolicy.SINGLE)
    with pytest.raises(ConflictError):
        poll_service.vote_on_poll(session, poll.id, poll.options[1].id, bob.id, now=now, policy=VotePolicy.SINGLE)

    assert len(session.exec(select(PollVote)).all()) == 1


@pytest.mark.parametrize(
    "policy, locked",
    [(VotePolicy.SINGLE, True), (VotePolicy.REPLACE, True), (VotePolicy.MULTIPLE, False)],
)
def test_repeat_vote_check_locks_the_voter_membership(session, poll, bob, now, monkeypatch, policy, locked) -> None:
    seen = []

    def _recording_require_member(*args, **kwargs):
        seen.append(kwargs.get("lock", False))
        return group_service.require_member(*args, **kwargs)

    monkeypatch.setattr(poll_service, "require_member", _recording_require_member)

    poll_service.vote_on_poll(session, poll.id, poll.options[0].id, bob.id, now=now, policy=policy)

    assert seen == [locked]


def test_replace_policy_moves_the_existing_vote(session, poll, bob, now) -> None:
    first = poll_service.vote_on_poll(session, poll.id, poll.options[0].id, bob.id, now=now, policy=VotePolicy.REPLACE)
    second = poll_service.vote_on_poll(
        session, poll.id, poll.options[1].id, bob.id, now=now + timedelta(minutes=1), policy=VotePolicy.REPLACE
    )

    assert second.id == first.id
    reread = poll_service.find_poll(session, poll.id, now=now)
    assert [o.vote_count for o in reread.options] == [0, 1]


def test_multiple_policy_keeps_duplicates(session, poll, bob, now) -> None:
    for _ in range(2):
        poll_service.vote_on_poll(session, poll.id, poll.options[0].id, bob.id, now=now, policy=VotePolicy.MULTIPLE)

    reread = poll_service.find_poll(session, poll.id, now=now)
    assert reread.options[0].vote_count == 2


# -------------------------
# reads
# -------------------------

def test_find_missing_poll_is_not_found(session) -> None:
    with pytest.raises(NotFoundError):
        poll_service.find_poll(session, 9999)


def test_most_recent_poll_orders_by_expiry(session, alice, group, activities, now) -> None:
    def _create(question, hours):
        return poll_service.create_poll(
            session,
            PollCreate(question=question, group_id=group.id, expires_at=now + timedelta(hours=hours), activity_ids=[activities[0].id]),
            alice.id,
            now=now,
        )

    _create("later expiry, created first", 5)
    _create("earlier expiry, created second", 2)

    latest = poll_service.find_most_recent_poll(session, group.id, now=now)
    assert latest.question == "later expiry, created first"


def test_most_recent_poll_for_empty_group_is_none(session, alice) -> None:
    g = group_service.create_group(session, GroupCreate(name="Empty"), alice.id)
    assert poll_service.find_most_recent_poll(session, g.id) is None


def test_read_reports_expired_flag(session, poll) -> None:
    later = poll.expires_at + timedelta(seconds=1)
    assert poll_service.find_poll(session, poll.id, now=later).is_expired is True


# -------------------------
# update / delete
# -------------------------

def test_update_poll_question_and_expiry(session, poll, now) -> None:
    new_expiry = datetime(2026, 12, 31, 23, 59, tzinfo=timezone.utc)
    updated = poll_service.update_poll(session, poll.id, PollPatch(question="Dinner?", expires_at=new_expiry), now=now)

    assert updated.question == "Dinner?"
    assert updated.expires_at == new_expiry
    assert len(updated.options) == 2


def test_update_missing_poll_is_not_found(session) -> None:
    with pytest.raises(NotFoundError):
        poll_service.update_poll(session, 9999, PollPatch(question="x"))


def test_poll_patch_rejects_unknown_fields() -> None:
    with pytest.raises(ValidationError):
        PollPatch(question="x", group_id=3)


def test_delete_poll_removes_options_and_votes(session, poll, bob, now) -> None:
    poll_service.vote_on_poll(session, poll.id, poll.options[0].id, bob.id, now=now)

    poll_service.delete_poll(session, poll.id)

    assert session.get(Poll, poll.id) is None
    assert session.exec(select(PollOption)).all() == []
    assert session.exec(select(PollVote)).all() == []


def test_delete_missing_poll_is_not_found(session) -> None:
    with pytest.raises(NotFoundError):
        poll_service.delete_poll(session, 9999)
