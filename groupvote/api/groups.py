from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlmodel import Session

from ..auth import Principal, get_principal
from ..database import get_db
from ..models.group import Group, GroupMember
from ..schemas import (
    AdminFlagUpdate,
    GroupCreate,
    GroupDetail,
    GroupPatch,
    JoinGroupRequest,
    LeaveGroupRequest,
    Message,
)
from ..services import groups as group_service

router = APIRouter(prefix="/groups", tags=["groups"])


@router.post("/", response_model=Group, status_code=201)
def create_group(
    payload: GroupCreate,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
) -> Group:
    return group_service.create_group(db, payload, principal.id)


@router.post("/join", response_model=GroupMember, status_code=201)
def join_group(
    payload: JoinGroupRequest,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
) -> GroupMember:
    return group_service.join_group(db, principal.id, payload.code)


@router.post("/leave", response_model=Message)
def leave_group(
    payload: LeaveGroupRequest,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
) -> Message:
    group_service.leave_group(db, principal.id, payload.group_id)
    return Message(message="Successfully left group")


@router.get("/{group_id}", response_model=GroupDetail)
def get_group(group_id: int, db: Session = Depends(get_db)) -> GroupDetail:
    return group_service.find_group(db, group_id)


@router.put("/{group_id}", response_model=Group)
def update_group(
    group_id: int,
    payload: GroupPatch,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
) -> Group:
    group_service.require_admin(db, group_id, principal.id)
    return group_service.update_group(db, group_id, payload)


@router.delete("/{group_id}", response_model=Message)
def delete_group(
    group_id: int,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
) -> Message:
    group_service.require_admin(db, group_id, principal.id)
    group_service.delete_group(db, group_id)
    return Message(message="Group deleted")


@router.put("/{group_id}/members/{user_id}/admin", response_model=GroupMember)
def set_member_admin(
    group_id: int,
    user_id: int,
    payload: AdminFlagUpdate,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
) -> GroupMember:
    group_service.require_admin(db, group_id, principal.id)
    return group_service.set_admin(db, group_id, user_id, payload.is_admin)
