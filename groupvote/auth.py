from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, HTTPException
from sqlmodel import Session

from .database import get_db
from .models.user import User


@dataclass(frozen=True)
class Principal:
    """
    Caller identity as handed over by the upstream identity provider.
    """
    id: int
    role: str = "user"


def get_principal(
    x_user_id: Optional[str] = Header(default=None),
    db: Session = Depends(get_db),
) -> Principal:
    """
    FastAPI dependency. The gateway in front of this service authenticates the
    request and forwards the user id in X-User-Id; we only check that the
    user exists here.
    """
    raw = (x_user_id or "").strip()
    if not raw:
        raise HTTPException(status_code=401, detail="Login required")
    try:
        user_id = int(raw)
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid user id")

    user = db.get(User, user_id)
    if not user:
        raise HTTPException(status_code=401, detail="Unknown user")
    return Principal(id=user.id, role=user.role)
