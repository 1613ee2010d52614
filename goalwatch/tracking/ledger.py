"""Append-only goal line history (odds_history)."""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from goalwatch.models import LineHistory, utc_now

logger = logging.getLogger(__name__)

UNIQUE_COLUMNS = ["match_id", "line", "over_odds"]


class HistoryLedger:
    """
    Insert-or-ignore history keyed by (match_id, line, over_odds).

    Existing rows are never updated. Rows are removed only by
    `delete_for_matches`, which retention calls before deleting the matches.
    """

    async def append(
        self,
        session: AsyncSession,
        match_id: str,
        line: float,
        over_odds: float,
        recorded_at: Optional[datetime] = None,
    ) -> bool:
        """Returns True when a new row was stored, False when it was a duplicate."""
        values = {
            "match_id": match_id,
            "line": line,
            "over_odds": over_odds,
            "recorded_at": recorded_at or utc_now(),
        }

        dialect = session.get_bind().dialect.name
        if dialect == "postgresql":
            stmt = pg_insert(LineHistory).values(**values)
        elif dialect == "sqlite":
            stmt = sqlite_insert(LineHistory).values(**values)
        else:
            return await self._append_generic(session, values)

        stmt = stmt.on_conflict_do_nothing(index_elements=UNIQUE_COLUMNS)
        result = await session.execute(stmt)
        return (result.rowcount or 0) > 0

    async def _append_generic(self, session: AsyncSession, values: dict) -> bool:
        """SELECT + INSERT for dialects without ON CONFLICT."""
        filters = [getattr(LineHistory, col) == values[col] for col in UNIQUE_COLUMNS]
        existing = await session.execute(select(LineHistory.id).where(*filters))
        if existing.first() is not None:
            return False
        session.add(LineHistory(**values))
        await session.flush()
        return True

    async def read_all(self, session: AsyncSession, match_id: str) -> list[LineHistory]:
        """History of one match ordered by recorded_at ascending."""
        result = await session.execute(
            select(LineHistory)
            .where(LineHistory.match_id == match_id)
            .order_by(LineHistory.recorded_at.asc(), LineHistory.id.asc())
        )
        return list(result.scalars().all())

    async def delete_for_matches(self, session: AsyncSession, match_ids: list[str]) -> int:
        if not match_ids:
            return 0
        result = await session.execute(delete(LineHistory).where(LineHistory.match_id.in_(match_ids)))
        return result.rowcount or 0
