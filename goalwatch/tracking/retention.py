"""Rolling database: cap the number of tracked matches."""

import logging
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from goalwatch.models import STATUS_FINISHED, TrackedMatch
from goalwatch.tracking.ledger import HistoryLedger

logger = logging.getLogger(__name__)


@dataclass
class EnforcementResult:
    total_before: int = 0
    excess: int = 0
    matches_deleted: int = 0
    history_deleted: int = 0
    evicted_ids: list[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class RetentionEnforcer:
    """
    Evict the oldest finished matches (by detection_time) above the cap.

    Live matches are never evicted, even when that leaves the store above
    the cap. History rows go first, then the matches, in one transaction.
    """

    def __init__(self, session_factory: async_sessionmaker, ledger: HistoryLedger):
        self._session_factory = session_factory
        self._ledger = ledger

    async def enforce(self, max_matches: int) -> EnforcementResult:
        result = EnforcementResult()
        try:
            async with self._session_factory() as session:
                total = (await session.execute(select(func.count(TrackedMatch.id)))).scalar() or 0
                result.total_before = total
                if total <= max_matches:
                    return result

                result.excess = total - max_matches
                rows = await session.execute(
                    select(TrackedMatch.match_id)
                    .where(TrackedMatch.status == STATUS_FINISHED)
                    .order_by(TrackedMatch.detection_time.asc(), TrackedMatch.id.asc())
                    .limit(result.excess)
                )
                match_ids = [row[0] for row in rows.all()]
                if not match_ids:
                    logger.warning(
                        f"[RETENTION] {total} matches above cap {max_matches} but none finished; skipping"
                    )
                    return result

                result.history_deleted = await self._ledger.delete_for_matches(session, match_ids)
                deleted = await session.execute(delete(TrackedMatch).where(TrackedMatch.match_id.in_(match_ids)))
                await session.commit()

                result.matches_deleted = deleted.rowcount or 0
                result.evicted_ids = match_ids

        except SQLAlchemyError as e:
            result.error = str(e)
            logger.error(f"[RETENTION] Error enforcing match limit: {e}", exc_info=True)
            return result

        logger.info(
            f"[RETENTION] Rolling DB: deleted {result.matches_deleted} oldest finished matches, "
            f"{result.history_deleted} history rows (limit: {max_matches})"
        )
        return result
