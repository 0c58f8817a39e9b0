from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from ..database import get_db
from ..schemas import ActivityRead
from ..services import activities as activity_service
from ..services.polls import to_activity_read

router = APIRouter(prefix="/activities", tags=["activities"])


@router.get("/", response_model=List[ActivityRead])
def search_activities(
    q: Optional[str] = None,
    categories: Optional[str] = None,
    latitude: Optional[float] = Query(default=None, ge=-90, le=90),
    longitude: Optional[float] = Query(default=None, ge=-180, le=180),
    limit: int = Query(default=4, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
) -> List[ActivityRead]:
    """
    Search the catalog; nearest first when both latitude and longitude are given.
    """
    rows = activity_service.search_activities(
        db,
        query=q,
        categories=categories,
        latitude=latitude,
        longitude=longitude,
        limit=limit,
        offset=offset,
    )
    return [to_activity_read(a) for a in rows]


@router.get("/{activity_id}", response_model=ActivityRead)
def get_activity(activity_id: int, db: Session = Depends(get_db)) -> ActivityRead:
    return to_activity_read(activity_service.find_activity(db, activity_id))
