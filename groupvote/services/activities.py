from __future__ import annotations

import math
from typing import Iterable, List, Optional, Sequence

from sqlalchemy import func, or_
from sqlmodel import Session, select

from ..errors import NotFoundError
from ..models.activity import Activity

EARTH_RADIUS_KM = 6371.0


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Great-circle distance in km between two points given in degrees.
    """
    to_rad = math.pi / 180
    d_lat = (lat2 - lat1) * to_rad
    d_lon = (lon2 - lon1) * to_rad
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(lat1 * to_rad) * math.cos(lat2 * to_rad) * math.sin(d_lon / 2) ** 2
    )
    return 2 * EARTH_RADIUS_KM * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def sort_by_distance(activities: Iterable[Activity], latitude: float, longitude: float) -> List[Activity]:
    """
    Nearest first. The distance is only a sort key and is not attached to the rows.
    sorted() is stable, so ties keep their incoming order.
    """
    return sorted(
        activities,
        key=lambda a: haversine_km(latitude, longitude, float(a.latitude), float(a.longitude)),
    )


def find_activity(session: Session, activity_id: int) -> Activity:
    activity = session.get(Activity, activity_id)
    if not activity:
        raise NotFoundError("Activity not found")
    return activity


def find_many_by_ids(session: Session, ids: Sequence[int]) -> List[Activity]:
    """
    Resolve ids against the catalog. Unknown ids are dropped, duplicates collapse.
    Results follow the order of first appearance in `ids`.
    """
    wanted = list(dict.fromkeys(ids))
    if not wanted:
        return []
    rows = session.exec(select(Activity).where(Activity.id.in_(wanted))).all()
    by_id = {a.id: a for a in rows}
    return [by_id[i] for i in wanted if i in by_id]


def _split_categories(categories: Optional[str]) -> List[str]:
    if not categories:
        return []
    parts = [c.strip().lower() for c in categories.split(",")]
    return [c for c in parts if c]


def search_activities(
    session: Session,
    *,
    query: Optional[str] = None,
    categories: Optional[str] = None,
    latitude: Optional[float] = None,
    longitude: Optional[float] = None,
    limit: int = 4,
    offset: int = 0,
) -> List[Activity]:
    """
    Catalog search used when building poll options.

    - query: case-insensitive substring on name or description
    - categories: comma-separated, case-insensitive
    - default order is newest first; when both latitude and longitude are
      given the page is re-ranked by distance from that point
    """
    q = select(Activity).where(Activity.is_active == True)  # noqa: E712

    term = (query or "").strip().lower()
    if term:
        like = f"%{term}%"
        q = q.where(
            or_(
                func.lower(Activity.name).like(like),
                func.lower(Activity.description).like(like),
            )
        )

    cats = _split_categories(categories)
    if cats:
        q = q.where(func.lower(Activity.category).in_(cats))

    q = q.order_by(Activity.created_at.desc(), Activity.id.desc()).offset(max(offset, 0)).limit(max(limit, 0))
    activities = list(session.exec(q).all())

    if latitude is not None and longitude is not None:
        return sort_by_distance(activities, latitude, longitude)
    return activities
