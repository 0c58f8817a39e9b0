from __future__ import annotations

from typing import Any, Dict, List, Optional

from sqlmodel import select

from groupvote.database import init_db, session_scope
from groupvote.models.activity import Activity


SAMPLE_ACTIVITIES: List[Dict[str, Any]] = [
    {
        "name": "Grand Central Market",
        "description": "Food hall with dozens of stalls",
        "latitude": 34.0508,
        "longitude": -118.2490,
        "address": "317 S Broadway, Los Angeles",
        "category": "food",
    },
    {
        "name": "Griffith Observatory",
        "description": "Telescopes and city views",
        "latitude": 34.1184,
        "longitude": -118.3004,
        "address": "2800 E Observatory Rd, Los Angeles",
        "category": "photo-ops",
    },
    {
        "name": "Union Station",
        "description": "Historic 1939 rail terminal",
        "latitude": 34.0562,
        "longitude": -118.2365,
        "address": "800 N Alameda St, Los Angeles",
        "category": "historical",
    },
    {
        "name": "Verve Coffee Roasters",
        "description": "Single-origin pour overs",
        "latitude": 34.0434,
        "longitude": -118.2541,
        "address": "833 S Spring St, Los Angeles",
        "category": "coffee",
    },
    {
        "name": "Echo Park Lake",
        "description": "Pedal boats and a lotus bed",
        "latitude": 34.0728,
        "longitude": -118.2606,
        "address": "751 Echo Park Ave, Los Angeles",
        "category": "outdoors",
    },
]


def normalize_row(row: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "name": str(row["name"]).strip(),
        "description": str(row.get("description") or "").strip(),
        "latitude": float(row["latitude"]),
        "longitude": float(row["longitude"]),
        "address": str(row.get("address") or "").strip(),
        "category": str(row.get("category") or "other").strip().lower(),
    }


def upsert_activity(session, row: Dict[str, Any]) -> Activity:
    """
    Upsert by name. Existing rows keep their id so poll options stay valid.
    """
    row_n = normalize_row(row)

    existing: Optional[Activity] = session.exec(select(Activity).where(Activity.name == row_n["name"])).first()
    if existing:
        for key, value in row_n.items():
            setattr(existing, key, value)
        existing.is_active = True
        session.add(existing)
        return existing

    activity = Activity(**row_n)
    session.add(activity)
    return activity


def main() -> None:
    init_db()

    with session_scope() as session:
        for row in SAMPLE_ACTIVITIES:
            upsert_activity(session, row)
        session.flush()
        total = session.exec(select(Activity)).all()

    print(f"Seeded/updated activities: {len(total)}")


if __name__ == "__main__":
    main()
