"""
Activity Repository: User Activity, Questions & Collections

Read-side access to the behavioral history the profile analyzer and the
recommendation engine consume, plus activity recording.
"""

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional
from uuid import uuid4

from loguru import logger
from sqlalchemy import delete, func, select

from infrastructure.database import DatabaseManager
from infrastructure.schema import ai_questions_table, books_table, user_activities_table


class ActivityRepository:
    """Repository for user activity, assistant questions and book collections."""

    def __init__(self, db_manager: DatabaseManager):
        self.db = db_manager
        logger.debug("ActivityRepository initialized")

    async def get_recent_activity(
        self,
        since: datetime,
        limit: int = 500,
        actions: Optional[Iterable[str]] = None,
    ) -> List[Dict[str, Any]]:
        """
        Activity records newer than ``since``, newest first.

        Args:
            since: Lower bound on created_at
            limit: Maximum rows
            actions: Optional action filter
        """
        query = select(user_activities_table).where(user_activities_table.c.created_at >= since)
        if actions:
            query = query.where(user_activities_table.c.action.in_(list(actions)))
        query = query.order_by(user_activities_table.c.created_at.desc()).limit(limit)
        return await self.db.fetch_all(query)

    async def count_since(self, since: datetime) -> int:
        query = select(func.count(user_activities_table.c.id).label("activity_count")).where(
            user_activities_table.c.created_at >= since
        )
        row = await self.db.fetch_one(query)
        return int(row["activity_count"]) if row else 0

    async def get_read_article_ids(self) -> List[str]:
        """Distinct ids of every article the reader has opened."""
        query = (
            select(user_activities_table.c.target_id)
            .where(user_activities_table.c.action == "article_read")
            .where(user_activities_table.c.target_id.isnot(None))
            .distinct()
        )
        rows = await self.db.fetch_all(query)
        return [row["target_id"] for row in rows]

    async def get_recent_questions(
        self, limit: int = 50, since: Optional[datetime] = None
    ) -> List[Dict[str, Any]]:
        query = select(ai_questions_table)
        if since is not None:
            query = query.where(ai_questions_table.c.created_at >= since)
        query = query.order_by(ai_questions_table.c.created_at.desc()).limit(limit)
        return await self.db.fetch_all(query)

    async def get_collections(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """Book collections, most recently updated first."""
        query = select(books_table).order_by(books_table.c.updated_at.desc())
        if limit is not None:
            query = query.limit(limit)
        return await self.db.fetch_all(query)

    async def record(
        self,
        action: str,
        target_type: str,
        target_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """
        Record a user action.

        Tracking failures never break the calling flow.

        Returns:
            True if the record was stored
        """
        values = {
            "id": str(uuid4()),
            "action": action,
            "target_type": target_type,
            "target_id": target_id,
            "metadata": metadata,
        }
        try:
            await self.db.execute(user_activities_table.insert().values(values))
            return True
        except Exception as e:
            logger.error(f"Failed to track activity {action}: {e}")
            return False

    async def delete_older_than(self, cutoff: datetime) -> int:
        query = delete(user_activities_table).where(user_activities_table.c.created_at < cutoff)
        deleted = await self.db.execute(query)
        logger.info(f"Deleted {deleted} activity records older than {cutoff:%Y-%m-%d}")
        return deleted


__all__ = ["ActivityRepository"]
