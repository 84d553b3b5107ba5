"""
Resolve expedition location references to coordinates.

A reference is a `(type, id)` pair: `("waypoint", 12)` or
`("entry", "k3j2...")`. Each type is loaded with a single query.
"""

from typing import Dict, Iterable, List, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from saga.models.entry import Entry
from saga.models.expedition import Waypoint

WAYPOINT = "waypoint"
ENTRY = "entry"
LOCATION_TYPES = (WAYPOINT, ENTRY)


def location_key(ref_type: str, ref_id) -> str:
    return f"{ref_type}:{ref_id}"


async def resolve_locations(
    db: AsyncSession, refs: Iterable[Tuple[str, object]]
) -> Dict[str, Dict[str, object]]:
    """Map `"type:id"` → `{lat, lon, name}`; unresolvable refs are left out."""
    waypoint_ids: List[int] = []
    entry_ids: List[str] = []
    for ref_type, ref_id in refs:
        if ref_type == WAYPOINT:
            try:
                waypoint_ids.append(int(ref_id))
            except (TypeError, ValueError):
                continue
        elif ref_type == ENTRY and ref_id:
            entry_ids.append(str(ref_id))

    resolved: Dict[str, Dict[str, object]] = {}

    if waypoint_ids:
        result = await db.execute(
            select(Waypoint).where(
                Waypoint.id.in_(set(waypoint_ids)), Waypoint.deleted_at.is_(None)
            )
        )
        for waypoint in result.scalars().all():
            if waypoint.lat is None or waypoint.lon is None:
                continue
            resolved[location_key(WAYPOINT, waypoint.id)] = {
                "lat": waypoint.lat,
                "lon": waypoint.lon,
                "name": waypoint.title or "Waypoint",
            }

    if entry_ids:
        result = await db.execute(
            select(Entry).where(Entry.public_id.in_(set(entry_ids)), Entry.deleted_at.is_(None))
        )
        for entry in result.scalars().all():
            if entry.lat is None or entry.lon is None:
                continue
            resolved[location_key(ENTRY, entry.public_id)] = {
                "lat": entry.lat,
                "lon": entry.lon,
                "name": entry.place or "Entry location",
            }

    return resolved
