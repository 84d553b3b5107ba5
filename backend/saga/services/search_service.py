"""
Heimursaga API — Search & Map
===============================

Search and the global map read only public, published content of unblocked
explorers. An explorer's own map also shows sponsors-only entries, and
private ones to the explorer themself.
"""

import logging
from typing import Optional

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from saga.exceptions import NotFoundError, ValidationError
from saga.models.entry import Entry
from saga.models.enums import Visibility
from saga.models.expedition import Expedition, Waypoint
from saga.models.user import User
from saga.schemas.common import UserSummary
from saga.schemas.search import (
    MapEntry,
    MapResponse,
    MapWaypoint,
    SearchEntry,
    SearchResponse,
)

logger = logging.getLogger(__name__)

MIN_QUERY_LENGTH = 2
SEARCH_LIMIT = 10
MAP_LIMIT = 500


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class SearchService:
    async def search(self, db: AsyncSession, q: str) -> SearchResponse:
        query = (q or "").strip()
        if len(query) < MIN_QUERY_LENGTH:
            return SearchResponse(explorers=[], entries=[])
        pattern = f"%{_escape_like(query)}%"

        users = await db.execute(
            select(User)
            .where(
                User.username.ilike(pattern, escape="\\"),
                User.blocked.is_(False),
                User.deleted_at.is_(None),
            )
            .order_by(User.followers_count.desc(), User.id.asc())
            .limit(SEARCH_LIMIT)
        )
        entries = await db.execute(
            select(Entry)
            .join(User, User.id == Entry.author_id)
            .where(
                or_(Entry.title.ilike(pattern, escape="\\"), Entry.place.ilike(pattern, escape="\\")),
                Entry.visibility == Visibility.PUBLIC.value,
                Entry.is_draft.is_(False),
                Entry.deleted_at.is_(None),
                User.blocked.is_(False),
            )
            .order_by(Entry.id.desc())
            .limit(SEARCH_LIMIT)
        )

        return SearchResponse(
            explorers=[UserSummary.from_user(u) for u in users.scalars().all()],
            entries=[
                SearchEntry(
                    id=e.public_id,
                    title=e.title,
                    place=e.place,
                    author=UserSummary.from_user(e.author),
                    date=e.date,
                )
                for e in entries.scalars().all()
            ],
        )

    async def map_query(
        self,
        db: AsyncSession,
        sw_lat: float,
        sw_lon: float,
        ne_lat: float,
        ne_lon: float,
        limit: int = MAP_LIMIT,
    ) -> MapResponse:
        if sw_lat > ne_lat or sw_lon > ne_lon:
            raise ValidationError("south-west corner must not exceed north-east corner", field="bounds")
        limit = max(1, min(limit, MAP_LIMIT))

        entries = await db.execute(
            select(Entry)
            .join(User, User.id == Entry.author_id)
            .where(
                Entry.lat.between(sw_lat, ne_lat),
                Entry.lon.between(sw_lon, ne_lon),
                Entry.visibility == Visibility.PUBLIC.value,
                Entry.is_draft.is_(False),
                Entry.deleted_at.is_(None),
                User.blocked.is_(False),
            )
            .order_by(Entry.id.desc())
            .limit(limit)
        )
        waypoints = await db.execute(
            select(Waypoint, Expedition.public_id)
            .join(Expedition, Expedition.id == Waypoint.expedition_id)
            .where(
                Waypoint.lat.between(sw_lat, ne_lat),
                Waypoint.lon.between(sw_lon, ne_lon),
                Expedition.visibility == Visibility.PUBLIC.value,
                Expedition.deleted_at.is_(None),
            )
            .order_by(Waypoint.id.desc())
            .limit(limit)
        )

        return MapResponse(
            entries=[
                MapEntry(
                    id=e.public_id,
                    title=e.title,
                    place=e.place,
                    lat=e.lat,
                    lon=e.lon,
                    date=e.date,
                    author=e.author.username,
                )
                for e in entries.scalars().all()
            ],
            waypoints=[
                MapWaypoint(id=w.id, expedition_id=expedition_id, title=w.title, lat=w.lat, lon=w.lon)
                for w, expedition_id in waypoints.all()
            ],
        )

    async def explorer_map(
        self, db: AsyncSession, username: str, viewer: Optional[User] = None
    ) -> MapResponse:
        """Every located entry and waypoint of one explorer."""
        author = (
            await db.execute(
                select(User).where(
                    User.username == (username or "").strip().lower(),
                    User.blocked.is_(False),
                    User.deleted_at.is_(None),
                )
            )
        ).scalar_one_or_none()
        if author is None:
            raise NotFoundError("explorer", username)
        own = viewer is not None and viewer.id == author.id

        entry_query = select(Entry).where(
            Entry.author_id == author.id,
            Entry.lat.is_not(None),
            Entry.lon.is_not(None),
            Entry.is_draft.is_(False),
            Entry.deleted_at.is_(None),
        )
        expedition_query = select(Waypoint, Expedition.public_id).join(
            Expedition, Expedition.id == Waypoint.expedition_id
        ).where(Expedition.author_id == author.id, Expedition.deleted_at.is_(None))
        if not own:
            entry_query = entry_query.where(Entry.visibility != Visibility.PRIVATE.value)
            expedition_query = expedition_query.where(Expedition.visibility != Visibility.PRIVATE.value)

        entries = await db.execute(entry_query.order_by(Entry.id.desc()).limit(MAP_LIMIT))
        waypoints = await db.execute(
            expedition_query.order_by(Waypoint.expedition_id, Waypoint.sequence).limit(MAP_LIMIT)
        )
        return MapResponse(
            entries=[
                MapEntry(
                    id=e.public_id,
                    title=e.title,
                    place=e.place,
                    lat=e.lat,
                    lon=e.lon,
                    date=e.date,
                    author=author.username,
                )
                for e in entries.scalars().all()
            ],
            waypoints=[
                MapWaypoint(id=w.id, expedition_id=expedition_id, title=w.title, lat=w.lat, lon=w.lon)
                for w, expedition_id in waypoints.all()
            ],
        )


# Singleton instance
search_service = SearchService()
