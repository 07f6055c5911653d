"""
Insight Repository: Persisted Insight Records

Lightweight records written alongside generated articles and document
analyses, pruned by age and type.
"""

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional
from uuid import uuid4

from loguru import logger
from sqlalchemy import delete, select

from core.enums import InsightType
from infrastructure.database import DatabaseManager
from infrastructure.schema import insights_table


class InsightRepository:
    """Repository for insight records."""

    def __init__(self, db_manager: DatabaseManager):
        self.db = db_manager
        logger.debug("InsightRepository initialized")

    async def create(
        self,
        insight_type: InsightType,
        title: str,
        content: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Store an insight record.

        Args:
            insight_type: Record kind
            title: Short title
            content: Human-readable body
            metadata: Structured payload

        Returns:
            Stored record
        """
        values = {
            "id": str(uuid4()),
            "type": insight_type.value,
            "title": title[:500],
            "content": content,
            "metadata": metadata or {},
        }
        await self.db.execute(insights_table.insert().values(values))
        return values

    async def get_recent(
        self, insight_type: Optional[InsightType] = None, limit: int = 20
    ) -> List[Dict[str, Any]]:
        query = select(insights_table)
        if insight_type is not None:
            query = query.where(insights_table.c.type == insight_type.value)
        query = query.order_by(insights_table.c.created_at.desc()).limit(limit)
        return await self.db.fetch_all(query)

    async def delete_older_than(self, types: Iterable[InsightType], cutoff: datetime) -> int:
        """
        Delete insights of the given kinds created before ``cutoff``.

        Returns:
            Number of deleted records
        """
        type_values = [t.value for t in types]
        query = (
            delete(insights_table)
            .where(insights_table.c.type.in_(type_values))
            .where(insights_table.c.created_at < cutoff)
        )
        deleted = await self.db.execute(query)
        logger.info(f"Deleted {deleted} insights ({', '.join(type_values)}) older than {cutoff:%Y-%m-%d}")
        return deleted


__all__ = ["InsightRepository"]
