from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlmodel import Session

from ..auth import Principal, get_principal
from ..database import get_db
from ..errors import NotFoundError
from ..schemas import Message, PollCreate, PollPatch, PollRead, VoteRequest, VoteResult
from ..services import groups as group_service
from ..services import polls as poll_service

router = APIRouter(prefix="/polls", tags=["polls"])


@router.get("/group/{group_id}", response_model=PollRead)
def get_poll_by_group(group_id: int, db: Session = Depends(get_db)) -> PollRead:
    """
    Most recent poll of a group (latest expires_at).
    """
    group_service.get_group(db, group_id)
    poll = poll_service.find_most_recent_poll(db, group_id)
    if poll is None:
        raise NotFoundError("No poll found for this group")
    return poll


@router.get("/{poll_id}", response_model=PollRead)
def get_poll(poll_id: int, db: Session = Depends(get_db)) -> PollRead:
    return poll_service.find_poll(db, poll_id)


@router.post("/", response_model=PollRead, status_code=201)
def create_poll(
    payload: PollCreate,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
) -> PollRead:
    return poll_service.create_poll(db, payload, principal.id)


@router.post("/{poll_id}/vote", response_model=VoteResult)
def vote_on_poll(
    poll_id: int,
    payload: VoteRequest,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
) -> VoteResult:
    vote = poll_service.vote_on_poll(db, poll_id, payload.poll_option_id, principal.id)
    return VoteResult(message="Successfully voted", vote=poll_service.to_vote_read(vote))


@router.put("/{poll_id}", response_model=PollRead)
def update_poll(
    poll_id: int,
    payload: PollPatch,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
) -> PollRead:
    poll = poll_service.get_poll(db, poll_id)
    group_service.require_admin(db, poll.group_id, principal.id)
    return poll_service.update_poll(db, poll_id, payload)


@router.delete("/{poll_id}", response_model=Message)
def delete_poll(
    poll_id: int,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
) -> Message:
    poll = poll_service.get_poll(db, poll_id)
    group_service.require_admin(db, poll.group_id, principal.id)
    poll_service.delete_poll(db, poll_id)
    return Message(message="Poll deleted")
